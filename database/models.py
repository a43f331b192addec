"""
Firestore document models for the salon POS collections.

This module defines the collections used by the booking/calendar and
inventory-ledger subsystems and the closed value sets stored in them:
- accounts: staff accounts with role and calendar-sharing state
- branch_calendars: branch -> Google Calendar mapping
- bookings: client appointments per branch
- otcProducts / services_products: stock-carrying inventory items
- used_quantities: append-only inventory ledger
- transactions: POS sales
- commissions: per-account commission earned on a sale

Documents are plain dicts in Firestore. The dataclasses below are the shapes
this service writes; reads tolerate missing keys because other services write
to the same collections.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum as PyEnum
from typing import Any

# ============================================================================
# Collections
# ============================================================================


class Collections:
    """Firestore collection names."""

    ACCOUNTS = "accounts"
    BOOKINGS = "bookings"
    BRANCHES = "branches"
    BRANCH_CALENDARS = "branch_calendars"
    CATEGORIES = "categories"
    CLIENTS = "clients"
    COMMISSIONS = "commissions"
    OTC_PRODUCTS = "otcProducts"
    SERVICES = "services"
    SERVICES_PRODUCTS = "services_products"
    TRANSACTIONS = "transactions"
    USED_QUANTITIES = "used_quantities"


# ============================================================================
# Enums
# ============================================================================


class AccountRole(str, PyEnum):
    """Staff account roles that receive calendar access."""

    MASTER_ADMIN = "master_admin"
    SUPER_ADMIN = "super_admin"
    BRANCH = "branch"
    CASHIER = "cashier"


class CalendarAccessLevel(str, PyEnum):
    """Google Calendar ACL roles."""

    OWNER = "owner"
    WRITER = "writer"
    READER = "reader"


# Fixed role -> ACL mapping used when sharing branch calendars
ROLE_ACCESS_LEVELS: dict[AccountRole, CalendarAccessLevel] = {
    AccountRole.MASTER_ADMIN: CalendarAccessLevel.OWNER,
    AccountRole.SUPER_ADMIN: CalendarAccessLevel.OWNER,
    AccountRole.BRANCH: CalendarAccessLevel.WRITER,
    AccountRole.CASHIER: CalendarAccessLevel.READER,
}

# Roles that see every branch calendar regardless of their own branch_id
GLOBAL_ROLES = (AccountRole.MASTER_ADMIN, AccountRole.SUPER_ADMIN)
BRANCH_SCOPED_ROLES = (AccountRole.BRANCH, AccountRole.CASHIER)


class BookingStatus(str, PyEnum):
    """Booking lifecycle status (drives calendar event colour)."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


class ItemType(str, PyEnum):
    """Transaction line item type."""

    SERVICE = "service"
    SERVICES_PRODUCT = "services_product"
    OTC_PRODUCT = "otc_product"


# Only these item types carry stock
STOCK_ITEM_COLLECTIONS: dict[ItemType, str] = {
    ItemType.OTC_PRODUCT: Collections.OTC_PRODUCTS,
    ItemType.SERVICES_PRODUCT: Collections.SERVICES_PRODUCTS,
}


class ChangeType(str, PyEnum):
    """Direction of a ledger entry."""

    INCREASE = "increase"
    DECREASE = "decrease"


class QuantityChangeReason(str, PyEnum):
    """Why an inventory quantity changed."""

    MANUAL_UPDATE = "manual_update"          # OTC product edited in the back office
    QUANTITY_UPDATE = "quantity_update"      # Services product edited in the back office
    TRANSACTION_CONSUMPTION = "transaction_consumption"
    TRANSACTION_VOID_REVERSAL = "transaction_void_reversal"
    MANUAL_USAGE = "manual_usage"            # Usage recorded outside a sale


class PaymentStatus(str, PyEnum):
    """Transaction payment status."""

    PAID = "paid"
    PENDING = "pending"
    VOID = "void"


class CommissionStatus(str, PyEnum):
    """Payout status of a staff commission."""

    PENDING = "pending"
    PAID = "paid"


# ============================================================================
# Documents written by this service
# ============================================================================


@dataclass
class UsedQuantityEntry:
    """
    One immutable inventory ledger entry (used_quantities collection).

    Exactly one of quantity_used / quantity_added is non-zero.
    """

    id: str
    branch_id: str
    item_id: str
    item_name: str
    item_type: str
    quantity_used: float
    quantity_added: float
    old_quantity: float
    new_quantity: float
    change_type: str
    update_reason: str
    date_created: str
    transaction_id: str | None = None
    unit_price: float = 0
    total_value: float = 0
    doc_type: str = "USED_QUANTITIES"

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CommissionRecord:
    """Commission one account earned on one transaction (commissions collection)."""

    id: str
    account_id: str
    account_email: str
    transaction_id: str
    branch_id: str
    amount: float
    transaction_total: float
    commission_rate: float | None
    total_sales_overall: float
    net_sales: float
    date_created: str
    status: str = CommissionStatus.PENDING.value
    doc_type: str = "COMMISSIONS"

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class BranchCalendarRecord:
    """Durable branch -> calendar mapping (branch_calendars/{branch_id})."""

    branch_id: str
    branch_name: str
    calendar_id: str
    calendar_name: str
    is_new_calendar: bool
    created_at: str
    updated_at: str
    status: str = "active"

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ShareResult:
    """Outcome of a calendar sharing pass."""

    shared_count: int = 0
    newly_shared_emails: list[str] = field(default_factory=list)
    failed_shares: list[dict[str, Any]] = field(default_factory=list)
    skipped: bool = False
    total_attempts: int = 0
    by_role: dict[str, dict[str, int]] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
