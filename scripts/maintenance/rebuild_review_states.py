"""
Rebuild review states from the review log.

Replays every logged review of a learner, in chronological order, through
the chosen algorithm and overwrites the stored states. Use after switching
SCHEDULER_ALGORITHM or after fixing an update function.

The log itself is not modified: entries keep the snapshot they were written with.

Usage:
    # Dry run for one learner
    python -m scripts.maintenance.rebuild_review_states --user user-1

    # Rewrite states under FSRS-style scheduling
    python -m scripts.maintenance.rebuild_review_states --user user-1 --algorithm fsrs --apply

    # Single card
    python -m scripts.maintenance.rebuild_review_states --user user-1 --card card-9 --apply
"""

import argparse
import logging
from collections import defaultdict
from typing import Optional

from recall.config import load_settings
from recall.logging_setup import setup_logging
from recall.srs import ALGORITHMS, SqlReviewStore, get_engine, replay_reviews
from recall.srs.store import ReviewStore

logger = logging.getLogger(__name__)


def rebuild_states(
    store: ReviewStore,
    user_id: str,
    algorithm: str,
    card_id: Optional[str] = None,
    apply: bool = False
) -> dict:
    """
    Replay a learner's log and (optionally) write the resulting states.

    Returns:
        Stats dict with cards, reviews and changed counts
    """
    entries = store.list_reviews(user_id, card_ids=[card_id] if card_id else None)
    by_card = defaultdict(list)
    for entry in entries:
        by_card[entry.card_id].append(entry)

    stats = {"cards": len(by_card), "reviews": len(entries), "changed": 0}

    for cid, card_entries in sorted(by_card.items()):
        rebuilt = replay_reviews(user_id, cid, card_entries, algorithm)
        if rebuilt is None:
            continue

        current = store.get_state(user_id, cid)
        if current is not None and current.next_review_at == rebuilt.next_review_at \
                and current.algorithm == rebuilt.algorithm:
            continue

        stats["changed"] += 1
        old_due = current.next_review_at.isoformat() if current and current.next_review_at else "-"
        print(f"  {cid}: next review {old_due} -> {rebuilt.next_review_at.isoformat()}")
        if apply:
            store.replace_state(rebuilt)

    return stats


def main():
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Recompute review states from the review log")
    parser.add_argument("--user", required=True, help="Learner id")
    parser.add_argument("--card", help="Only rebuild this card")
    parser.add_argument(
        "--algorithm",
        default=settings.algorithm,
        choices=sorted(ALGORITHMS),
        help=f"Update function to replay with (default: {settings.algorithm})"
    )
    parser.add_argument("--database-url", help="SQLAlchemy URL (default: DATABASE_URL)")
    parser.add_argument("--apply", action="store_true", help="Write states (default: dry run)")
    args = parser.parse_args()

    setup_logging(settings.log_level)

    store = SqlReviewStore(
        get_engine(args.database_url or settings.database_url),
        algorithm=args.algorithm,
        max_retries=settings.store_max_retries,
        default_timeout=settings.store_timeout_seconds,
    )

    print("=" * 60)
    print(f"Rebuild review states for {args.user} ({args.algorithm})")
    print("=" * 60)
    if not args.apply:
        print("DRY RUN - no states will be written\n")

    stats = rebuild_states(store, args.user, args.algorithm, card_id=args.card, apply=args.apply)

    print()
    print(f"Cards replayed:  {stats['cards']}")
    print(f"Reviews read:    {stats['reviews']}")
    print(f"States changed:  {stats['changed']}")
    if stats["changed"] and not args.apply:
        print("\nRe-run with --apply to write these states.")
    logger.info("Rebuild finished for %s: %s", args.user, stats)


if __name__ == "__main__":
    main()
