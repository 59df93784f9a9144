"""
Reset the scheduler database.

DANGEROUS: This deletes all review history!
Only use when you want to start fresh for testing.

Usage:
    python -m scripts.maintenance.reset_scheduler_db

    # Another database, no prompt
    python -m scripts.maintenance.reset_scheduler_db --database-url sqlite:///logs/dev.sqlite --yes
"""

import argparse

from recall.config import load_settings
from recall.logging_setup import setup_logging
from recall.srs import get_engine, reset_db


def main():
    parser = argparse.ArgumentParser(description="Drop and recreate the review store tables")
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: DATABASE_URL)")
    parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    args = parser.parse_args()

    settings = load_settings()
    setup_logging(settings.log_level)
    engine = get_engine(args.database_url or settings.database_url)

    print("=" * 60)
    print("WARNING: Reset Scheduler Database")
    print("=" * 60)
    print()
    print(f"Database: {engine.url.render_as_string(hide_password=True)}")
    print()
    print("This will DELETE all review history:")
    print("  - All review states (interval, ease, stability, etc.)")
    print("  - All review log entries")
    print()

    if not args.yes:
        response = input("Are you sure you want to reset? (type 'yes' to confirm): ")
        if response.lower() != "yes":
            print("\nCancelled. No changes made.")
            return

    print("\nResetting database...")
    reset_db(engine)
    print("✓ Database reset complete!")
    print("\nThe database now has empty tables ready for new reviews.")


if __name__ == "__main__":
    main()
