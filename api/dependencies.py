"""
FastAPI dependency providers.

Each provider returns a process-wide service instance. Services resolve their
Firestore / Google Calendar clients lazily, so building them is free and
tests can swap them through app.dependency_overrides.
"""

from functools import lru_cache

from salon.services.booking_service import BookingOrchestrator
from salon.services.calendar_registry import CalendarRegistry
from salon.services.inventory_ledger import InventoryLedger
from salon.services.permission_tracker import PermissionTracker
from salon.services.transaction_service import TransactionService


@lru_cache
def get_permission_tracker() -> PermissionTracker:
    return PermissionTracker()


@lru_cache
def get_calendar_registry() -> CalendarRegistry:
    return CalendarRegistry(permission_tracker=get_permission_tracker())


@lru_cache
def get_booking_orchestrator() -> BookingOrchestrator:
    return BookingOrchestrator(
        calendar_registry=get_calendar_registry(),
        permission_tracker=get_permission_tracker(),
    )


@lru_cache
def get_inventory_ledger() -> InventoryLedger:
    return InventoryLedger()


@lru_cache
def get_transaction_service() -> TransactionService:
    return TransactionService(ledger=get_inventory_ledger())
