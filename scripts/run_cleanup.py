"""
Face ID Retention Sweep

Removes biometric profiles that have not been used (or, if never used,
created) within the retention window. Meant to run from cron or a
scheduler against the same database the API serves from.

Usage:
    # Use storage.db_path and storage.retention_days from config.yaml
    python scripts/run_cleanup.py

    # Explicit database and window
    python scripts/run_cleanup.py --db-path storage/faceid.sqlite --retention-days 30

    # Only report what a sweep would remove
    python scripts/run_cleanup.py --dry-run --show-logs 20
"""

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.config import get_matching_config, get_storage_config  # noqa: E402
from core.errors import FaceIdError  # noqa: E402
from core.profile_store import SQLiteProfileStore  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def resolve_db_path(db_path: str) -> str:
    path = Path(db_path)
    if db_path == ":memory:" or path.is_absolute():
        return db_path
    return str(PROJECT_ROOT / path)


def print_stats(store: SQLiteProfileStore) -> None:
    stats = store.get_stats()
    print("\nProfile store:")
    for key, value in stats.items():
        print(f"  {key:<22} {value}")


def print_logs(store: SQLiteProfileStore, limit: int) -> None:
    entries = store.get_attempt_logs(limit=limit)
    print(f"\nLast {len(entries)} attempt(s):")
    for entry in entries:
        outcome = "ok  " if entry["success"] else "FAIL"
        similarity = f"{entry['similarity']:.3f}" if entry["similarity"] is not None else "-"
        print(
            f"  {entry['timestamp']:%Y-%m-%d %H:%M:%S} {outcome} {entry['action']:<8} "
            f"owner={entry['owner_id'] or '-'} sim={similarity} {entry['processing_time_ms']}ms"
        )


def main():
    storage_config = get_storage_config()

    parser = argparse.ArgumentParser(
        description="Delete Face ID profiles unused for longer than the retention window"
    )
    parser.add_argument(
        "--retention-days", type=float, default=storage_config.get("retention_days", 90),
        help="Remove profiles whose last activity is older than this (default: from config.yaml)",
    )
    parser.add_argument(
        "--db-path", type=str, default=storage_config.get("db_path", "storage/faceid.sqlite"),
        help="SQLite database file (default: from config.yaml)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Report how many profiles would be removed without deleting anything",
    )
    parser.add_argument(
        "--show-logs", type=int, default=0, metavar="N",
        help="Also print the N most recent authentication attempts",
    )
    args = parser.parse_args()

    if args.retention_days < 0:
        parser.error("--retention-days must be >= 0")

    db_path = resolve_db_path(args.db_path)
    descriptor_dim = get_matching_config().get("descriptor_dim", 128)
    store = SQLiteProfileStore(db_path=db_path, descriptor_dim=descriptor_dim)

    try:
        cutoff = store.now() - timedelta(days=args.retention_days)
        logger.info(f"Database: {db_path}")
        logger.info(f"Retention: {args.retention_days} days (cutoff {cutoff:%Y-%m-%d %H:%M:%S} UTC)")

        if args.dry_run:
            stale = store.count_stale(args.retention_days)
            logger.info(f"Dry run: {stale} profile(s) would be removed, nothing deleted")
        else:
            removed = store.cleanup(args.retention_days)
            logger.info(f"Removed {removed} stale profile(s)")

        print_stats(store)
        if args.show_logs > 0:
            print_logs(store, args.show_logs)
    except FaceIdError as e:
        logger.error(f"Cleanup failed: {e}")
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
