"""
Configuration for the scheduling engine.

Values come from environment variables (a local .env file is loaded first).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment
load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///logs/recall.sqlite"
DEFAULT_DB_NAME = "recall"


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for stores, repositories and scheduling.
    """
    database_url: str
    mongo_uri: Optional[str]
    mongo_db_name: str
    algorithm: str
    store_max_retries: int
    store_timeout_seconds: float
    default_timezone: str
    log_level: str


def is_test_mode() -> bool:
    """Check if running in test mode."""
    return os.getenv("TEST_MODE", "false").lower() == "true"


def get_database_url() -> str:
    """
    Get the database URL from environment variables.

    In test mode the database name is prefixed with ``test_`` so that a test
    run never touches the production schedule.

    Returns:
        SQLAlchemy connection string
    """
    base_url = os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if is_test_mode():
        # Replace the last path segment (database name or sqlite file)
        head, sep, name = base_url.rpartition("/")
        if sep and name and not name.startswith("test_"):
            return f"{head}/test_{name}"
    return base_url


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """
    Build a Settings object from the current environment.
    """
    return Settings(
        database_url=get_database_url(),
        mongo_uri=os.getenv("MONGO_URI"),
        mongo_db_name=os.getenv("MONGO_DB_NAME", DEFAULT_DB_NAME),
        algorithm=os.getenv("SCHEDULER_ALGORITHM", "sm2").lower(),
        store_max_retries=_int_env("STORE_MAX_RETRIES", 5),
        store_timeout_seconds=_float_env("STORE_TIMEOUT_SECONDS", 10.0),
        default_timezone=os.getenv("DEFAULT_TIMEZONE", "UTC"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
