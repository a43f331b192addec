"""
Calendar Permission Tracker.

Shares branch calendars with the staff accounts that should see them and
records the grant on the account (isCalendarShared) so later calls skip it:

- master_admin / super_admin: every branch calendar, owner access
- branch: its own branch calendar, writer access
- cashier: its own branch calendar, reader access

Only active accounts with isCalendarShared == False are considered, so a
second pass over the same calendar issues no provider calls. The flag is
never cleared automatically; reset_sharing_flags() is the maintenance escape
hatch (scripts/reset_calendar_sharing.py).

A failed grant is reported in the ShareResult and never raised.
"""

import asyncio
import logging
from typing import Any

from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import (
    ROLE_ACCESS_LEVELS,
    AccountRole,
    BRANCH_SCOPED_ROLES,
    Collections,
    ShareResult,
)
from salon.utils.time_utils import format_timestamp

logger = logging.getLogger(__name__)

# Firestore batch write limit
RESET_BATCH_SIZE = 500

ALL_ROLES = (
    AccountRole.MASTER_ADMIN,
    AccountRole.SUPER_ADMIN,
    AccountRole.BRANCH,
    AccountRole.CASHIER,
)


class PermissionTracker:
    """Grants calendar ACLs to accounts that lack them."""

    def __init__(self, calendar_client: Any = None, db: Any = None):
        self._calendar_client = calendar_client
        self._db = db

    @property
    def calendar_client(self) -> Any:
        if self._calendar_client is None:
            from shared.google_calendar import get_calendar_client

            self._calendar_client = get_calendar_client()
        return self._calendar_client

    @property
    def db(self) -> Any:
        if self._db is None:
            from database.connection import get_firestore_client

            self._db = get_firestore_client()
        return self._db

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ensure_shared(
        self,
        calendar_id: str,
        branch_id: str | None,
        branch_name: str,
    ) -> ShareResult:
        """
        Share a branch calendar with every authorized account lacking access.

        Args:
            calendar_id: Google Calendar ID
            branch_id: Branch whose branch/cashier accounts get access
                       (None = branch/cashier accounts of all branches)
            branch_name: Branch name, recorded on the account

        Returns:
            ShareResult with counts, newly shared e-mails and failures
        """
        return await self._share(calendar_id, ALL_ROLES, branch_id, branch_name)

    async def share_with_master_admins(self, calendar_id: str, branch_name: str) -> ShareResult:
        """Share a freshly created calendar with master_admin accounts only."""
        return await self._share(calendar_id, (AccountRole.MASTER_ADMIN,), None, branch_name)

    async def reset_sharing_flags(self) -> dict[str, int]:
        """
        Set isCalendarShared = False on every account not already False.

        Returns:
            {"updated": n, "skipped": n, "errors": n, "total": n}
        """
        stats = {"updated": 0, "skipped": 0, "errors": 0, "total": 0}
        pending: list[Any] = []

        async for doc in self.db.collection(Collections.ACCOUNTS).stream():
            stats["total"] += 1
            data = doc.to_dict() or {}
            if data.get("isCalendarShared") is False:
                stats["skipped"] += 1
                continue

            pending.append(doc.reference)
            if len(pending) >= RESET_BATCH_SIZE:
                await self._commit_reset_batch(pending, stats)
                pending = []

        if pending:
            await self._commit_reset_batch(pending, stats)

        logger.info(
            f"Calendar sharing flags reset: {stats['updated']} updated, "
            f"{stats['skipped']} already false, {stats['errors']} errors"
        )
        return stats

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _commit_reset_batch(self, refs: list[Any], stats: dict[str, int]) -> None:
        batch = self.db.batch()
        for ref in refs:
            batch.update(ref, {"isCalendarShared": False})
        try:
            await batch.commit()
            stats["updated"] += len(refs)
            logger.info(f"Committed reset batch of {len(refs)} accounts")
        except Exception as e:
            stats["errors"] += len(refs)
            logger.error(f"Failed to commit reset batch of {len(refs)} accounts: {e}", exc_info=True)

    async def _find_accounts_needing_access(
        self,
        roles: tuple[AccountRole, ...],
        branch_id: str | None,
    ) -> list[dict[str, str]]:
        """
        Active accounts in `roles` with isCalendarShared == False.

        Branch-scoped roles are filtered to branch_id when given. Duplicate
        e-mails collapse to the first role in `roles` order.
        """
        wanted = [role.value for role in roles]
        scoped = {role.value for role in BRANCH_SCOPED_ROLES}

        query = (
            self.db.collection(Collections.ACCOUNTS)
            .where(filter=FieldFilter("status", "==", "active"))
            .where(filter=FieldFilter("isCalendarShared", "==", False))
        )

        candidates = []
        async for doc in query.stream():
            data = doc.to_dict() or {}
            role = data.get("role")
            email = (data.get("email") or "").strip()
            if role not in wanted or not email:
                continue
            if role in scoped and branch_id and data.get("branch_id") != branch_id:
                continue
            candidates.append({"account_id": doc.id, "email": email, "role": role})

        candidates.sort(key=lambda c: wanted.index(c["role"]))

        seen: set[str] = set()
        accounts = []
        for candidate in candidates:
            key = candidate["email"].lower()
            if key in seen:
                continue
            seen.add(key)
            accounts.append(candidate)
        return accounts

    async def _share_with_account(
        self,
        calendar_id: str,
        account: dict[str, str],
        branch_name: str,
    ) -> dict[str, Any]:
        access_level = ROLE_ACCESS_LEVELS[AccountRole(account["role"])].value
        outcome: dict[str, Any] = {
            "email": account["email"],
            "role": account["role"],
            "access_level": access_level,
        }

        try:
            await self.calendar_client.insert_acl(calendar_id, access_level, account["email"])
        except Exception as e:
            logger.warning(
                f"Failed to share calendar with {account['email']} ({account['role']}): {e}",
                extra={"calendar_id": calendar_id},
            )
            return {**outcome, "success": False, "error": str(e)}

        try:
            await self.db.collection(Collections.ACCOUNTS).document(account["account_id"]).update(
                {
                    "isCalendarShared": True,
                    "calendar_shared": True,
                    "calendar_shared_at": format_timestamp(),
                    "calendar_shared_calendar_id": calendar_id,
                    "calendar_shared_branch": branch_name,
                }
            )
        except Exception as e:
            # Grant already happened; the next pass re-issues an idempotent ACL insert
            logger.error(f"Shared calendar with {account['email']} but failed to flag account: {e}")

        logger.info(f"Shared calendar with {account['email']} as {access_level}", extra={"calendar_id": calendar_id})
        return {**outcome, "success": True}

    async def _share(
        self,
        calendar_id: str,
        roles: tuple[AccountRole, ...],
        branch_id: str | None,
        branch_name: str,
    ) -> ShareResult:
        try:
            accounts = await self._find_accounts_needing_access(roles, branch_id)
        except Exception as e:
            logger.error(f"Failed to load accounts for calendar sharing: {e}", exc_info=True)
            return ShareResult(error=str(e))

        if not accounts:
            logger.info(f"All authorized accounts already have access to {branch_name} calendar")
            return ShareResult(skipped=True)

        outcomes = await asyncio.gather(
            *(self._share_with_account(calendar_id, account, branch_name) for account in accounts)
        )

        result = ShareResult(total_attempts=len(outcomes))
        for outcome in outcomes:
            role_stats = result.by_role.setdefault(outcome["role"], {"shared": 0, "failed": 0})
            if outcome["success"]:
                result.shared_count += 1
                result.newly_shared_emails.append(outcome["email"])
                role_stats["shared"] += 1
            else:
                role_stats["failed"] += 1
                result.failed_shares.append(
                    {
                        "email": outcome["email"],
                        "role": outcome["role"],
                        "access_level": outcome["access_level"],
                        "error": outcome["error"],
                    }
                )

        logger.info(
            f"Calendar sharing for {branch_name}: {result.shared_count} shared, "
            f"{len(result.failed_shares)} failed",
            extra={"calendar_id": calendar_id, "branch_id": branch_id},
        )
        return result
