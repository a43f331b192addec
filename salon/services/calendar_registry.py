"""
Calendar Registry - branch -> Google Calendar ID.

Resolves the calendar that holds a branch's booking events, creating it on
first use. Resolution order for get_or_create_calendar():

    1. CalendarIdCache (keyed by sanitized branch name)
    2. branch_calendars/{branch_id} in Firestore (durable mapping)
    3. Provider calendar list (title match)
    4. Create "{name} - Bookings Calendar" and share it with master admins

Any provider failure during 3-4 degrades to a deterministic synthetic ID so
booking creation never blocks on Google Calendar. Synthetic IDs are cached
but never persisted.

Also provides explicit branch-level provisioning, rename and delete used by
the branches API.
"""

import logging
import re
from typing import Any

from database.models import BranchCalendarRecord, Collections
from salon.utils.time_utils import format_timestamp
from shared.config import Settings, get_settings
from shared.google_calendar import describe_calendar_error

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_NAME = "Default Branch"

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\s-]")


def sanitize_branch_name(branch_name: str | None) -> str:
    """
    Strip everything except ASCII letters, digits, whitespace and hyphens.

    Examples:
        >>> sanitize_branch_name("  Makati (Main) ")
        'Makati Main'
        >>> sanitize_branch_name("###")
        'Default Branch'
    """
    sanitized = _UNSAFE_NAME_CHARS.sub("", branch_name or "").strip()
    return sanitized or DEFAULT_BRANCH_NAME


def calendar_title(sanitized_name: str) -> str:
    return f"{sanitized_name} - Bookings Calendar"


def calendar_body(sanitized_name: str, timezone: str | None = None) -> dict[str, Any]:
    """Provider calendar resource for a branch (timeZone omitted on rename)."""
    body = {
        "summary": calendar_title(sanitized_name),
        "description": f"Calendar for managing booking appointments at {sanitized_name}",
        "location": f"Branch: {sanitized_name}",
    }
    if timezone:
        body["timeZone"] = timezone
    return body


class CalendarRegistry:
    """
    Branch calendar provisioning.

    Collaborators are injected; anything omitted falls back to the process
    singletons (Google Calendar client, Firestore client, calendar cache,
    PermissionTracker).
    """

    def __init__(
        self,
        calendar_client: Any = None,
        db: Any = None,
        cache: Any = None,
        permission_tracker: Any = None,
        settings: Settings | None = None,
    ):
        self._calendar_client = calendar_client
        self._db = db
        self._cache = cache
        self._permission_tracker = permission_tracker
        self.settings = settings or get_settings()

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

    @property
    def cache(self) -> Any:
        if self._cache is None:
            from shared.calendar_cache import get_calendar_cache

            self._cache = get_calendar_cache()
        return self._cache

    @property
    def permission_tracker(self) -> Any:
        if self._permission_tracker is None:
            from salon.services.permission_tracker import PermissionTracker

            self._permission_tracker = PermissionTracker(self._calendar_client, self._db)
        return self._permission_tracker

    def fallback_calendar_id(self, sanitized_name: str) -> str:
        """
        Deterministic synthetic calendar ID used when the provider is unavailable.

        Example:
            "Makati Main" + "svc@proj.iam.gserviceaccount.com"
            -> "bookings-makati-main-svc-proj-iam-gserviceaccount-com"
        """
        email = self.settings.GOOGLE_CLIENT_EMAIL
        suffix = email.replace("@", "-").replace(".", "-") if email else "default"
        slug = re.sub(r"\s+", "-", sanitized_name).lower()
        return f"bookings-{slug}-{suffix}"

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def get_or_create_calendar(self, branch_name: str, branch_id: str | None = None) -> str:
        """
        Resolve the calendar ID for a branch, creating the calendar if needed.

        Args:
            branch_name: Display name of the branch (sanitized internally)
            branch_id: Branch document ID; enables the durable lookup and
                       persisting newly resolved IDs

        Returns:
            Calendar ID (real or synthetic fallback). Never raises for
            provider errors.
        """
        name = sanitize_branch_name(branch_name)

        cached = self.cache.get(name)
        if cached:
            return cached

        if branch_id:
            record = await self.get_calendar_info(branch_id)
            if record and record.get("calendar_id"):
                self.cache.set(name, record["calendar_id"])
                return record["calendar_id"]

        try:
            calendar_id, is_new = await self._find_or_create_provider_calendar(name)
        except Exception as e:
            fallback_id = self.fallback_calendar_id(name)
            logger.error(
                f"Calendar lookup/create failed for {name}, using fallback {fallback_id}: "
                f"{describe_calendar_error(e)}",
                extra={"branch_id": branch_id},
            )
            self.cache.set(name, fallback_id)
            return fallback_id

        self.cache.set(name, calendar_id)
        if branch_id:
            await self._save_record(branch_id, branch_name, calendar_id, is_new)
        return calendar_id

    async def _find_or_create_provider_calendar(self, name: str, share_on_create: bool = True) -> tuple[str, bool]:
        """Return (calendar_id, is_new) for the branch's provider calendar."""
        title = calendar_title(name)

        for calendar in await self.calendar_client.list_calendars():
            summary = calendar.get("summary") or ""
            if summary == title or (name in summary and "Booking" in summary):
                logger.info(f"Using existing calendar for {name}: {calendar['id']}")
                return calendar["id"], False

        created = await self.calendar_client.insert_calendar(calendar_body(name, self.settings.TIMEZONE))
        calendar_id = created["id"]
        logger.info(f"Created new calendar for {name}: {calendar_id}", extra={"calendar_id": calendar_id})

        if share_on_create:
            try:
                await self.permission_tracker.share_with_master_admins(calendar_id, name)
            except Exception as e:
                logger.error(f"Failed to share new calendar {calendar_id} with master admins: {e}")

        return calendar_id, True

    # ------------------------------------------------------------------
    # Durable mapping
    # ------------------------------------------------------------------

    async def lookup_branch_name(self, branch_id: str) -> str | None:
        """Name of a branch from the branches collection, or None if it does not exist."""
        snapshot = await self.db.collection(Collections.BRANCHES).document(branch_id).get()
        if not snapshot.exists:
            return None
        return (snapshot.to_dict() or {}).get("name") or DEFAULT_BRANCH_NAME

    async def get_calendar_info(self, branch_id: str) -> dict[str, Any] | None:
        """Stored branch_calendars record for a branch, or None."""
        try:
            snapshot = await self.db.collection(Collections.BRANCH_CALENDARS).document(branch_id).get()
        except Exception as e:
            logger.error(f"Error reading calendar info for branch {branch_id}: {e}")
            return None
        return snapshot.to_dict() if snapshot.exists else None

    async def _save_record(self, branch_id: str, branch_name: str, calendar_id: str, is_new: bool) -> None:
        now = format_timestamp()
        record = BranchCalendarRecord(
            branch_id=branch_id,
            branch_name=branch_name,
            calendar_id=calendar_id,
            calendar_name=calendar_title(sanitize_branch_name(branch_name)),
            is_new_calendar=is_new,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.db.collection(Collections.BRANCH_CALENDARS).document(branch_id).set(record.to_document())
            logger.info(f"Stored calendar info for branch {branch_name}", extra={"branch_id": branch_id})
        except Exception as e:
            logger.error(f"Error storing calendar info for branch {branch_name}: {e}", extra={"branch_id": branch_id})

    # ------------------------------------------------------------------
    # Branch lifecycle
    # ------------------------------------------------------------------

    async def provision_branch_calendar(self, branch_name: str, branch_id: str) -> dict[str, Any]:
        """
        Explicitly provision (or adopt) the calendar for a branch and share it.

        Returns:
            Success:
                {"success": True, "calendar_id", "calendar_name",
                 "is_new_calendar", "sharing_result", "message"}
            Failure:
                {"success": False, "error", "message"}
        """
        name = sanitize_branch_name(branch_name)
        record = await self.get_calendar_info(branch_id)

        if record and record.get("calendar_id"):
            calendar_id, is_new = record["calendar_id"], False
        else:
            try:
                calendar_id, is_new = await self._find_or_create_provider_calendar(name, share_on_create=False)
            except Exception as e:
                logger.error(f"Error creating calendar for branch {branch_name}: {e}", extra={"branch_id": branch_id})
                return {
                    "success": False,
                    "error": str(e),
                    "message": f"Failed to create calendar for {branch_name}",
                }
            await self._save_record(branch_id, branch_name, calendar_id, is_new)

        self.cache.set(name, calendar_id)
        sharing_result = await self.permission_tracker.ensure_shared(calendar_id, branch_id, name)

        return {
            "success": True,
            "calendar_id": calendar_id,
            "calendar_name": calendar_title(name),
            "is_new_calendar": is_new,
            "sharing_result": sharing_result.to_dict(),
            "message": (
                f"Calendar created successfully for {name}"
                if is_new
                else f"Calendar already exists for {name}"
            ),
        }

    async def rename_branch_calendar(self, branch_id: str, old_name: str, new_name: str) -> dict[str, Any]:
        """
        Follow a branch rename: provider title, stored record and cache key.

        The calendar ID never changes. If no calendar is stored for the
        branch, one is provisioned under the new name instead.
        """
        record = await self.get_calendar_info(branch_id)
        if not record or not record.get("calendar_id"):
            logger.info(f"No existing calendar for branch {old_name}, provisioning one", extra={"branch_id": branch_id})
            return await self.provision_branch_calendar(new_name, branch_id)

        calendar_id = record["calendar_id"]
        old_sanitized = sanitize_branch_name(old_name)
        new_sanitized = sanitize_branch_name(new_name)
        new_title = calendar_title(new_sanitized)

        if calendar_title(old_sanitized) != new_title:
            try:
                await self.calendar_client.update_calendar(calendar_id, calendar_body(new_sanitized))
                logger.info(f"Renamed calendar {calendar_id} to {new_title!r}")
            except Exception as e:
                logger.error(f"Failed to rename provider calendar {calendar_id}: {e}", extra={"calendar_id": calendar_id})

        try:
            await self.db.collection(Collections.BRANCH_CALENDARS).document(branch_id).update(
                {
                    "branch_name": new_name,
                    "calendar_name": new_title,
                    "updated_at": format_timestamp(),
                }
            )
        except Exception as e:
            logger.error(f"Error updating calendar info for branch {new_name}: {e}", extra={"branch_id": branch_id})

        self.cache.delete(old_sanitized)
        self.cache.set(new_sanitized, calendar_id)

        return {
            "success": True,
            "calendar_id": calendar_id,
            "calendar_name": new_title,
            "is_new_calendar": False,
            "message": f"Calendar updated successfully for {new_sanitized}",
        }

    async def delete_branch_calendar(self, branch_id: str, branch_name: str | None = None) -> dict[str, Any]:
        """
        Delete the provider calendar, evict the cache and drop the stored record.

        branch_name defaults to the name in the stored record. A branch with
        no stored calendar is a successful no-op.
        """
        record = await self.get_calendar_info(branch_id)
        if not record or not record.get("calendar_id"):
            return {"success": True, "message": f"No calendar found for {branch_name or branch_id}"}

        calendar_id = record["calendar_id"]
        branch_name = branch_name or record.get("branch_name") or ""
        try:
            await self.calendar_client.delete_calendar(calendar_id)
            self.cache.delete(sanitize_branch_name(branch_name))
            await self.db.collection(Collections.BRANCH_CALENDARS).document(branch_id).delete()
        except Exception as e:
            logger.error(f"Error deleting calendar for branch {branch_name}: {e}", extra={"branch_id": branch_id})
            return {
                "success": False,
                "error": str(e),
                "message": f"Failed to delete calendar for {branch_name}",
            }

        logger.info(f"Deleted calendar for branch {branch_name}", extra={"calendar_id": calendar_id})
        return {"success": True, "message": f"Calendar deleted successfully for {branch_name}"}
