"""
API test fixtures.

The app's service providers are overridden with services wired to the
in-memory Firestore and mocked Google Calendar client from tests/conftest.py.
TestClient is used without a context manager so startup validation does not
run.
"""

import pytest
from fastapi.testclient import TestClient

from api import dependencies
from api.main import app


@pytest.fixture
def api_client(booking_orchestrator, calendar_registry, permission_tracker, inventory_ledger, transaction_service):
    app.dependency_overrides[dependencies.get_booking_orchestrator] = lambda: booking_orchestrator
    app.dependency_overrides[dependencies.get_calendar_registry] = lambda: calendar_registry
    app.dependency_overrides[dependencies.get_permission_tracker] = lambda: permission_tracker
    app.dependency_overrides[dependencies.get_inventory_ledger] = lambda: inventory_ledger
    app.dependency_overrides[dependencies.get_transaction_service] = lambda: transaction_service
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
