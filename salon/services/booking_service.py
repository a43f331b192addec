"""
Booking Orchestrator.

Coordinates booking persistence with Google Calendar event creation.

create_booking() runs strictly in order:
    1. Validate required fields and branch existence
    2. Reject a taken (branch_id, date, time) slot
    3. Parse date + time in the business time zone
    4. Fetch client / branch / services snapshots and total cost
    5. Resolve the branch calendar and ensure staff access
    6. Build the colour-coded event
    7. Insert the event and persist the booking with its calendar fields
    8. On provider failure, persist the booking without calendar fields

The booking is the source of truth: a calendar failure never fails the
request (calendar_created=False plus calendar_error in the response).

The duplicate-slot check (2) is not atomic with the write (7/8); two
concurrent requests for the same slot can both succeed.
"""

import logging
from datetime import timedelta
from typing import Any
from uuid import uuid4

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import BookingStatus, Collections
from salon.exceptions import ConflictError, NotFoundError, ValidationError
from salon.services.booking_details import (
    branch_details_from,
    get_client_details,
    get_services_details,
)
from salon.services.calendar_colors import apply_status_colors, get_status_background, get_status_color_id
from salon.utils.time_utils import format_timestamp, parse_booking_datetime
from shared.config import Settings, get_settings
from shared.google_calendar import describe_calendar_error

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("client_id", "branch_id", "date", "time")

# Fields a caller may change through update_booking()
UPDATABLE_FIELDS = ("client_id", "branch_id", "date", "time", "service_ids", "status", "notes")


def normalize_status(status: str | None) -> str:
    """
    Lower-case/trim a status; blank means scheduled.

    Statuses outside BookingStatus are kept as given and get the default
    event colour from calendar_colors.
    """
    normalized = (status or "").strip().lower()
    return normalized or BookingStatus.SCHEDULED.value


def build_event_description(
    client: dict[str, str],
    branch: dict[str, str],
    services: list[dict[str, Any]],
    total_cost: float,
    notes: str | None,
) -> str:
    lines = [
        f"Client: {client['name']}",
        f"Contact: {client['email'] or 'N/A'} | {client['phone'] or 'N/A'}",
        f"Branch: {branch['name']}",
    ]
    if branch.get("address"):
        lines.append(f"Address: {branch['address']}")

    lines.append("")
    lines.append("Services:")
    if services:
        lines.extend(f"- {s['name']} ({s['category']}): ₱{s['price']:.2f}" for s in services)
    else:
        lines.append("- None")

    lines.append("")
    lines.append(f"Total Cost: ₱{total_cost:.2f}")
    if notes:
        lines.append(f"Notes: {notes}")

    return "\n".join(lines)


class BookingOrchestrator:
    """Booking creation and CRUD over the bookings collection."""

    def __init__(
        self,
        db: Any = None,
        calendar_client: Any = None,
        calendar_registry: Any = None,
        permission_tracker: Any = None,
        settings: Settings | None = None,
    ):
        self._db = db
        self._calendar_client = calendar_client
        self._calendar_registry = calendar_registry
        self._permission_tracker = permission_tracker
        self.settings = settings or get_settings()

    @property
    def db(self) -> Any:
        if self._db is None:
            from database.connection import get_firestore_client

            self._db = get_firestore_client()
        return self._db

    @property
    def calendar_client(self) -> Any:
        if self._calendar_client is None:
            from shared.google_calendar import get_calendar_client

            self._calendar_client = get_calendar_client()
        return self._calendar_client

    @property
    def calendar_registry(self) -> Any:
        if self._calendar_registry is None:
            from salon.services.calendar_registry import CalendarRegistry

            self._calendar_registry = CalendarRegistry(
                calendar_client=self._calendar_client,
                db=self._db,
                permission_tracker=self._permission_tracker,
                settings=self.settings,
            )
        return self._calendar_registry

    @property
    def permission_tracker(self) -> Any:
        if self._permission_tracker is None:
            from salon.services.permission_tracker import PermissionTracker

            self._permission_tracker = PermissionTracker(self._calendar_client, self._db)
        return self._permission_tracker

    @property
    def bookings(self) -> Any:
        return self.db.collection(Collections.BOOKINGS)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(self, request: dict[str, Any]) -> dict[str, Any]:
        """
        Create a booking and its Google Calendar event.

        Args:
            request: {client_id, branch_id, date, time, service_ids?, status?, notes?}

        Returns:
            {
                "message": str,
                "booking_id": str,
                "booking": dict,
                "calendar": dict | None,
                "calendar_created": bool,
                "calendar_error": str (only when calendar_created is False),
                "total_cost": float,
                "client": dict,
                "branch": dict,
                "services": list[dict],
            }

        Raises:
            ValidationError: Missing fields or unparseable date/time
            NotFoundError: Branch does not exist
            ConflictError: Slot already booked (extra: existing_booking_id)
        """
        # Step 1: Validate request
        missing = [name for name in REQUIRED_FIELDS if not request.get(name)]
        if missing:
            raise ValidationError(
                "Missing required fields: client_id, branch_id, date, time",
                {"missing_fields": missing},
            )

        client_id = request["client_id"]
        branch_id = request["branch_id"]
        date = str(request["date"]).strip()
        time = str(request["time"]).strip()
        service_ids = list(request.get("service_ids") or [])
        notes = request.get("notes") or ""
        status = normalize_status(request.get("status"))

        branch_snapshot = await self.db.collection(Collections.BRANCHES).document(branch_id).get()
        if not branch_snapshot.exists:
            raise NotFoundError("Branch not found", {"branch_id": branch_id})

        # Step 2: Slot availability
        existing_booking_id = await self._find_slot_conflict(branch_id, date, time)
        if existing_booking_id:
            logger.warning(
                f"Slot {date} {time} already booked by {existing_booking_id}",
                extra={"branch_id": branch_id},
            )
            raise ConflictError(
                "Time slot already booked for this branch",
                {"existing_booking_id": existing_booking_id},
            )

        # Step 3: Parse date/time
        branch_data = branch_snapshot.to_dict() or {}
        timezone_name = self.settings.TIMEZONE
        try:
            start = parse_booking_datetime(date, time)
        except ValueError as e:
            raise ValidationError(
                "Invalid date or time format",
                {"details": str(e), "expected": "date YYYY-MM-DD, time HH:MM or HH:MM:SS"},
            ) from e
        end = start + timedelta(minutes=self.settings.DEFAULT_BOOKING_DURATION_MINUTES)

        # Step 4: Snapshots
        client = await get_client_details(self.db, client_id)
        branch = branch_details_from(branch_data)
        services, total_cost = await get_services_details(self.db, service_ids)

        booking_id = str(uuid4())
        log_extra = {"booking_id": booking_id, "branch_id": branch_id}
        logger.info(f"Creating booking for {client['name']} at {branch['name']} on {date} {time}", extra=log_extra)

        # Step 5: Calendar + access
        calendar_id = await self.calendar_registry.get_or_create_calendar(branch["name"], branch_id)
        try:
            await self.permission_tracker.ensure_shared(calendar_id, branch_id, branch["name"])
        except Exception as e:
            logger.error(f"Calendar sharing failed for {calendar_id}: {e}", extra=log_extra)

        # Step 6: Event
        service_names = ", ".join(s["name"] for s in services) or "No services"
        event = apply_status_colors(
            {
                "summary": f"{client['name']} - {branch['name']} ({service_names})",
                "description": build_event_description(client, branch, services, total_cost, notes),
                "start": {"dateTime": start.isoformat(), "timeZone": timezone_name},
                "end": {"dateTime": end.isoformat(), "timeZone": timezone_name},
                "location": branch["address"] or branch["name"],
            },
            status,
            booking_id,
        )

        # Step 7/8: Insert event, then persist
        calendar_info: dict[str, Any] | None = None
        calendar_error: str | None = None
        try:
            created = await self.calendar_client.insert_event(calendar_id, event)
            calendar_info = {
                "calendar_id": calendar_id,
                "event_id": created.get("id"),
                "event_link": created.get("htmlLink"),
                "start": event["start"]["dateTime"],
                "end": event["end"]["dateTime"],
                "color_id": event["colorId"],
                "background_color": get_status_background(status),
            }
            logger.info(f"Calendar event {created.get('id')} created", extra={**log_extra, "calendar_id": calendar_id})
        except Exception as e:
            calendar_error = str(e)
            logger.error(
                f"Calendar event creation failed, storing booking without event: {describe_calendar_error(e)}",
                extra={**log_extra, "calendar_id": calendar_id},
            )

        now = format_timestamp()
        booking = {
            "booking_id": booking_id,
            "client_id": client_id,
            "branch_id": branch_id,
            "date": date,
            "time": time,
            "service_ids": service_ids,
            "status": status,
            "notes": notes,
            "calendar_event_id": calendar_info["event_id"] if calendar_info else None,
            "calendar_id": calendar_id if calendar_info else None,
            "calendar_event_link": calendar_info["event_link"] if calendar_info else None,
            "total_cost": total_cost,
            "created_at": now,
            "updated_at": now,
        }
        await self.bookings.document(booking_id).set(booking)

        response: dict[str, Any] = {
            "message": (
                "Booking created successfully"
                if calendar_info
                else "Booking created successfully (calendar event not created)"
            ),
            "booking_id": booking_id,
            "booking": booking,
            "calendar": calendar_info,
            "calendar_created": calendar_info is not None,
            "total_cost": total_cost,
            "client": client,
            "branch": branch,
            "services": services,
        }
        if calendar_error is not None:
            response["calendar_error"] = calendar_error
        return response

    async def _find_slot_conflict(self, branch_id: str, date: str, time: str) -> str | None:
        """ID of a non-cancelled booking holding the slot, or None."""
        query = (
            self.bookings.where(filter=FieldFilter("branch_id", "==", branch_id))
            .where(filter=FieldFilter("date", "==", date))
            .where(filter=FieldFilter("time", "==", time))
        )
        async for doc in query.stream():
            data = doc.to_dict() or {}
            if (data.get("status") or "").lower() != BookingStatus.CANCELLED.value:
                return data.get("booking_id") or doc.id
        return None

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: str) -> dict[str, Any]:
        snapshot = await self.bookings.document(booking_id).get()
        if not snapshot.exists:
            raise NotFoundError("Booking not found")
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    async def list_bookings(
        self,
        status: str | None = None,
        client_id: str | None = None,
        branch_id: str | None = None,
        date: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Bookings matching all given filters, newest first."""
        query = self.bookings
        for field_name, value in (
            ("status", status),
            ("client_id", client_id),
            ("branch_id", branch_id),
            ("date", date),
        ):
            if value:
                query = query.where(filter=FieldFilter(field_name, "==", value))

        query = query.order_by("created_at", direction=firestore.Query.DESCENDING).offset(offset).limit(limit)
        return [{"id": doc.id, **(doc.to_dict() or {})} async for doc in query.stream()]

    async def list_bookings_by_date_range(
        self,
        start_date: str | None,
        end_date: str | None,
        branch_id: str | None = None,
        status: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Bookings with start_date <= date <= end_date, ordered by (date, time).

        Raises:
            ValidationError: If either bound is missing
        """
        if not start_date or not end_date:
            raise ValidationError("start_date and end_date are required")

        query = self.bookings.where(filter=FieldFilter("date", ">=", start_date)).where(
            filter=FieldFilter("date", "<=", end_date)
        )
        if branch_id:
            query = query.where(filter=FieldFilter("branch_id", "==", branch_id))
        if status:
            query = query.where(filter=FieldFilter("status", "==", status))

        bookings = [{"id": doc.id, **(doc.to_dict() or {})} async for doc in query.stream()]
        bookings.sort(key=lambda b: (b.get("date") or "", b.get("time") or ""))
        return bookings

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def update_booking(self, booking_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Partially update a booking.

        A status change also recolours the linked calendar event
        (best-effort; failures are logged).

        Raises:
            NotFoundError: Booking does not exist
        """
        ref = self.bookings.document(booking_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise NotFoundError("Booking not found")
        current = snapshot.to_dict() or {}

        updates = {name: fields[name] for name in UPDATABLE_FIELDS if fields.get(name) is not None}
        if "status" in updates:
            updates["status"] = normalize_status(updates["status"])
        updates["updated_at"] = format_timestamp()

        await ref.update(updates)

        new_status = updates.get("status")
        if new_status and new_status != current.get("status"):
            await self._recolor_event(booking_id, current, new_status)

        updated = await ref.get()
        return {"id": updated.id, **(updated.to_dict() or {})}

    async def _recolor_event(self, booking_id: str, booking: dict[str, Any], status: str) -> None:
        calendar_id = booking.get("calendar_id")
        event_id = booking.get("calendar_event_id")
        if not calendar_id or not event_id:
            return

        patch = {
            "colorId": get_status_color_id(status),
            "extendedProperties": {
                "private": {
                    "booking_id": booking_id,
                    "status": status,
                    "background_color": get_status_background(status),
                }
            },
        }
        try:
            await self.calendar_client.patch_event(calendar_id, event_id, patch)
            logger.info(f"Recoloured event {event_id} for status {status}", extra={"booking_id": booking_id})
        except Exception as e:
            logger.error(f"Failed to recolour event {event_id}: {e}", extra={"booking_id": booking_id})

    async def delete_booking(self, booking_id: str) -> dict[str, Any]:
        """
        Delete a booking and, best-effort, its calendar event.

        Raises:
            NotFoundError: Booking does not exist
        """
        ref = self.bookings.document(booking_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise NotFoundError("Booking not found")
        booking = snapshot.to_dict() or {}

        await ref.delete()

        calendar_id = booking.get("calendar_id")
        event_id = booking.get("calendar_event_id")
        event_deleted = False
        if calendar_id and event_id:
            try:
                await self.calendar_client.delete_event(calendar_id, event_id)
                event_deleted = True
            except Exception as e:
                logger.error(f"Failed to delete calendar event {event_id}: {e}", extra={"booking_id": booking_id})

        return {"booking_id": booking_id, "calendar_event_deleted": event_deleted}
