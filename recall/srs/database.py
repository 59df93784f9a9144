"""
Database - engine and session management for the review store.

Uses SQLAlchemy ORM; Postgres in production, SQLite for local runs and tests.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recall.config import get_database_url
from recall.srs.models import Base

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ('review_state', 'review_log')

_engines: dict[str, Engine] = {}


def create_store_engine(db_url: Optional[str] = None) -> Engine:
    """
    Create a SQLAlchemy engine for the review store.

    SQLite URLs get thread-safe connection arguments; an in-memory SQLite
    database shares one connection so every session sees the same data.

    Args:
        db_url: Connection string (defaults to DATABASE_URL)

    Returns:
        SQLAlchemy Engine instance
    """
    db_url = db_url or get_database_url()
    # SQLAlchemy prefers postgresql:// over postgres://
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        database = url.database
        if not database or database == ":memory:":
            return create_engine(
                db_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

    return create_engine(
        db_url,
        pool_size=5,           # Keep 5 connections open
        max_overflow=10,       # Allow up to 10 extra connections
        pool_pre_ping=True,    # Verify connections before use
        echo=False
    )


def get_engine(db_url: Optional[str] = None) -> Engine:
    """
    Get (and cache) the engine for a connection string.
    """
    key = db_url or get_database_url()
    engine = _engines.get(key)
    if engine is None:
        engine = create_store_engine(key)
        _engines[key] = engine
        logger.info("Created review store engine for %s", make_url(key).render_as_string(hide_password=True))
    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """Session factory that keeps loaded rows usable after commit."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Initialize database schema if tables don't exist.

    Safe to call multiple times - only creates missing tables.
    """
    engine = engine or get_engine()
    existing_tables = set(inspect(engine).get_table_names())
    if not set(REQUIRED_TABLES) <= existing_tables:
        Base.metadata.create_all(engine)
        logger.info("Created review store tables")


def reset_db(engine: Optional[Engine] = None) -> None:
    """
    DANGEROUS: Delete all data and recreate tables.

    Only use this for testing or when you want to start fresh.
    All review history will be lost!
    """
    engine = engine or get_engine()
    Base.metadata.drop_all(engine)
    logger.warning("Dropped review store tables")
    init_db(engine)
