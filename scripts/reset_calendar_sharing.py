#!/usr/bin/env python3
"""
Maintenance script: reset isCalendarShared on every account.

Use after calendar grants were revoked out-of-band (or calendars recreated)
so the next booking / shareBranchCalendar call re-shares calendars with every
authorized account.

Usage:
    # Show how many accounts would be reset
    python scripts/reset_calendar_sharing.py --dry-run

    # Reset all flags
    python scripts/reset_calendar_sharing.py
"""

import argparse
import asyncio
import logging
import sys

from database.connection import get_firestore_client
from database.models import Collections
from salon.services.permission_tracker import PermissionTracker
from shared.logging_config import configure_logging

logger = logging.getLogger(__name__)


async def count_flagged_accounts() -> dict[str, int]:
    """Count accounts whose isCalendarShared flag is not already False."""
    db = get_firestore_client()
    counts = {"total": 0, "to_reset": 0}
    async for doc in db.collection(Collections.ACCOUNTS).stream():
        counts["total"] += 1
        if (doc.to_dict() or {}).get("isCalendarShared") is not False:
            counts["to_reset"] += 1
    return counts


async def main(dry_run: bool) -> int:
    if dry_run:
        counts = await count_flagged_accounts()
        logger.info(f"Dry run: {counts['to_reset']} of {counts['total']} accounts would be reset")
        return 0

    tracker = PermissionTracker(db=get_firestore_client())
    stats = await tracker.reset_sharing_flags()
    logger.info(
        f"Reset complete: updated={stats['updated']} skipped={stats['skipped']} "
        f"errors={stats['errors']} total={stats['total']}"
    )
    return 1 if stats["errors"] else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reset isCalendarShared on all accounts")
    parser.add_argument("--dry-run", action="store_true", help="Only count accounts that would be reset")
    args = parser.parse_args()

    configure_logging()
    sys.exit(asyncio.run(main(args.dry_run)))
