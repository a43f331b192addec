"""
Google Calendar API client wrapper.

Wraps the synchronous googleapiclient Calendar v3 service so it can be awaited
from request handlers: every request is executed in the default thread pool
executor, and transient provider errors (rate limits, 5xx) are retried with
exponential backoff.

Usage:
    client = get_calendar_client()
    calendars = await client.list_calendars()
    event = await client.insert_event(calendar_id, body)
"""

import asyncio
import json
import logging
from typing import Any, Callable

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from shared.config import get_settings

logger = logging.getLogger(__name__)

CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
]

# HTTP statuses worth retrying (quota / rate limit / provider hiccups)
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


def is_transient_calendar_error(error: BaseException) -> bool:
    """Return True for provider errors that may succeed on retry."""
    return isinstance(error, HttpError) and error.resp.status in RETRYABLE_STATUSES


def describe_calendar_error(error: BaseException) -> dict[str, Any]:
    """
    Build a loggable description of a calendar provider failure.

    Includes the HTTP status and response body for HttpError, and whether
    credentials are configured at all (the usual cause of auth failures).
    """
    settings = get_settings()
    details: dict[str, Any] = {
        "error_type": type(error).__name__,
        "message": str(error),
        "service_account_configured": bool(settings.GOOGLE_SERVICE_ACCOUNT_JSON)
        and settings.GOOGLE_SERVICE_ACCOUNT_JSON != "/path/to/service-account-key.json",
        "client_email_configured": bool(settings.GOOGLE_CLIENT_EMAIL),
    }

    if isinstance(error, HttpError):
        details["status"] = error.resp.status
        try:
            content = error.content.decode("utf-8") if isinstance(error.content, bytes) else str(error.content)
            details["response"] = json.loads(content)
        except (ValueError, AttributeError):
            details["response"] = str(error.content)[:500]

    return details


class GoogleCalendarClient:
    """
    Async facade over the Google Calendar v3 API.

    Initializes service account authentication unless a prebuilt service is
    supplied (tests pass a MagicMock).
    """

    def __init__(self, service: Any = None, max_retries: int | None = None):
        settings = get_settings()
        self.client_email = settings.GOOGLE_CLIENT_EMAIL

        if service is None:
            try:
                credentials = service_account.Credentials.from_service_account_file(
                    settings.GOOGLE_SERVICE_ACCOUNT_JSON,
                    scopes=CALENDAR_SCOPES,
                )
                service = build("calendar", "v3", credentials=credentials, cache_discovery=False)
                self.client_email = self.client_email or credentials.service_account_email
                logger.info("Google Calendar API client initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize Google Calendar API client: {e}")
                raise

        self.service = service
        self.max_retries = max_retries or settings.GCAL_MAX_RETRIES

    async def _execute(self, request_factory: Callable[[], Any], operation_name: str) -> Any:
        """
        Run a googleapiclient request in the executor with retry on transient errors.

        Args:
            request_factory: Zero-arg callable returning an HttpRequest
            operation_name: Name for logging

        Returns:
            Decoded API response

        Raises:
            HttpError or the underlying exception once retries are exhausted
        """
        loop = asyncio.get_running_loop()
        result = None

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=4),
            retry=retry_if_exception(is_transient_calendar_error),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        f"Retrying GCal {operation_name} "
                        f"(attempt {attempt.retry_state.attempt_number}/{self.max_retries})"
                    )
                result = await loop.run_in_executor(None, lambda: request_factory().execute())

        return result

    # ------------------------------------------------------------------
    # Calendars
    # ------------------------------------------------------------------

    async def list_calendars(self) -> list[dict[str, Any]]:
        """Return every calendar visible to the service account (all pages)."""
        items: list[dict[str, Any]] = []
        page_token = None

        while True:
            response = await self._execute(
                lambda: self.service.calendarList().list(pageToken=page_token),
                "calendarList.list",
            )
            items.extend(response.get("items", []) or [])
            page_token = response.get("nextPageToken")
            if not page_token:
                return items

    async def insert_calendar(self, body: dict[str, Any]) -> dict[str, Any]:
        return await self._execute(
            lambda: self.service.calendars().insert(body=body),
            "calendars.insert",
        )

    async def update_calendar(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        # patch keeps fields not present in body (time zone, etc.)
        return await self._execute(
            lambda: self.service.calendars().patch(calendarId=calendar_id, body=body),
            "calendars.patch",
        )

    async def delete_calendar(self, calendar_id: str) -> None:
        await self._execute(
            lambda: self.service.calendars().delete(calendarId=calendar_id),
            "calendars.delete",
        )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def insert_event(self, calendar_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._execute(
            lambda: self.service.events().insert(calendarId=calendar_id, body=body),
            "events.insert",
        )

    async def patch_event(self, calendar_id: str, event_id: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._execute(
            lambda: self.service.events().patch(calendarId=calendar_id, eventId=event_id, body=body),
            "events.patch",
        )

    async def delete_event(self, calendar_id: str, event_id: str) -> None:
        await self._execute(
            lambda: self.service.events().delete(calendarId=calendar_id, eventId=event_id),
            "events.delete",
        )

    # ------------------------------------------------------------------
    # ACL
    # ------------------------------------------------------------------

    async def insert_acl(self, calendar_id: str, role: str, email: str) -> dict[str, Any]:
        """Grant `role` (owner/writer/reader) on the calendar to a user e-mail."""
        rule = {"role": role, "scope": {"type": "user", "value": email}}
        return await self._execute(
            lambda: self.service.acl().insert(calendarId=calendar_id, body=rule),
            "acl.insert",
        )


# Global calendar client instance
_calendar_client: GoogleCalendarClient | None = None


def get_calendar_client() -> GoogleCalendarClient:
    """
    Get or create global GoogleCalendarClient instance.

    Returns:
        GoogleCalendarClient: Singleton calendar client instance
    """
    global _calendar_client
    if _calendar_client is None:
        _calendar_client = GoogleCalendarClient()
    return _calendar_client
