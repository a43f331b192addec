"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
Services are wired to an in-memory Firestore double (tests/fakes.py) and a
mocked Google Calendar client, so no test touches a real backend.
"""

import os

import pytest
from unittest.mock import AsyncMock

# Must be set BEFORE the first get_settings() call
os.environ["TIMEZONE"] = "Asia/Manila"
os.environ["GOOGLE_CLIENT_EMAIL"] = "svc@salon-pos.iam.gserviceaccount.com"
os.environ["GOOGLE_SERVICE_ACCOUNT_JSON"] = "/tmp/test-service-account.json"
os.environ["DEFAULT_BOOKING_DURATION_MINUTES"] = "60"

from salon.services.booking_service import BookingOrchestrator  # noqa: E402
from salon.services.calendar_registry import CalendarRegistry  # noqa: E402
from salon.services.inventory_ledger import InventoryLedger  # noqa: E402
from salon.services.permission_tracker import PermissionTracker  # noqa: E402
from salon.services.transaction_service import TransactionService  # noqa: E402
from shared.calendar_cache import CalendarIdCache  # noqa: E402
from shared.config import get_settings  # noqa: E402
from tests.fakes import NEW_CALENDAR_ID, FakeFirestore  # noqa: E402

get_settings.cache_clear()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def fake_db():
    """Empty in-memory Firestore."""
    return FakeFirestore()


@pytest.fixture
def calendar_client():
    """
    Mocked GoogleCalendarClient.

    Defaults: no existing calendars, insert_calendar returns NEW_CALENDAR_ID,
    insert_event returns event "evt-1".
    """
    client = AsyncMock()
    client.list_calendars.return_value = []
    client.insert_calendar.return_value = {"id": NEW_CALENDAR_ID}
    client.insert_event.return_value = {
        "id": "evt-1",
        "htmlLink": "https://calendar.google.com/event?eid=evt-1",
    }
    client.insert_acl.return_value = {}
    client.patch_event.return_value = {}
    client.update_calendar.return_value = {}
    client.delete_calendar.return_value = None
    client.delete_event.return_value = None
    return client


@pytest.fixture
def calendar_cache():
    return CalendarIdCache(ttl_seconds=60, max_size=100)


@pytest.fixture
def permission_tracker(calendar_client, fake_db):
    return PermissionTracker(calendar_client=calendar_client, db=fake_db)


@pytest.fixture
def calendar_registry(calendar_client, fake_db, calendar_cache, permission_tracker, settings):
    return CalendarRegistry(
        calendar_client=calendar_client,
        db=fake_db,
        cache=calendar_cache,
        permission_tracker=permission_tracker,
        settings=settings,
    )


@pytest.fixture
def booking_orchestrator(fake_db, calendar_client, calendar_registry, permission_tracker, settings):
    return BookingOrchestrator(
        db=fake_db,
        calendar_client=calendar_client,
        calendar_registry=calendar_registry,
        permission_tracker=permission_tracker,
        settings=settings,
    )


@pytest.fixture
def inventory_ledger(fake_db):
    return InventoryLedger(db=fake_db)


@pytest.fixture
def transaction_service(fake_db, inventory_ledger):
    return TransactionService(db=fake_db, ledger=inventory_ledger)


@pytest.fixture
def seeded_accounts(fake_db):
    """
    Staff accounts across two branches, none shared yet.

    b1: branch manager + cashier; b2: cashier; plus a master and a super admin
    and one inactive master admin.
    """
    accounts = {
        "acc-master": {"email": "master@salon.ph", "role": "master_admin", "status": "active"},
        "acc-super": {"email": "super@salon.ph", "role": "super_admin", "status": "active"},
        "acc-b1-branch": {"email": "makati@salon.ph", "role": "branch", "status": "active", "branch_id": "b1"},
        "acc-b1-cashier": {"email": "cashier1@salon.ph", "role": "cashier", "status": "active", "branch_id": "b1"},
        "acc-b2-cashier": {"email": "cashier2@salon.ph", "role": "cashier", "status": "active", "branch_id": "b2"},
        "acc-inactive": {"email": "old@salon.ph", "role": "master_admin", "status": "inactive"},
    }
    for account_id, data in accounts.items():
        fake_db.seed("accounts", account_id, {**data, "isCalendarShared": False})
    return accounts
