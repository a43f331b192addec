"""
POS transaction service.

Creating a transaction consumes product stock; voiding it restores the same
amounts. In both cases the transaction document and every item update are
committed in one Firestore batch, then one ledger entry per product line is
recorded through the InventoryLedger, tagged with the transaction id:

    create -> decrease entries (transaction_consumption)
    void   -> increase entries (transaction_void_reversal)

Ledger history is never deleted on void, so an item's entries always
reconcile with its current quantity.

Stock rules per line type:
    service           no stock
    otc_product       quantity -= line quantity
    services_product  total_value -= line quantity, quantity = total_value / unit_value
                      (quantity -= line quantity when the item has no unit_value)

Quantities are not checked against available stock here.

Accounts named on a sale earn commissions (CommissionService); a void
removes them. Read surfaces: filtered/paginated listing with paid/void
counts, per-branch statistics over non-void sales, and voided sales per
branch.
"""

import logging
import math
import random
import time
from typing import Any
from uuid import uuid4

from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import (
    STOCK_ITEM_COLLECTIONS,
    Collections,
    ItemType,
    PaymentStatus,
    QuantityChangeReason,
)
from salon.exceptions import NotFoundError, ValidationError
from salon.services.booking_details import branch_details_from, get_client_details
from salon.services.commission_service import normalize_accounts
from salon.utils.time_utils import format_timestamp, next_day

logger = logging.getLogger(__name__)

# Collections holding the name of each line item type
ITEM_NAME_COLLECTIONS: dict[ItemType, str] = {
    ItemType.SERVICE: Collections.SERVICES,
    **STOCK_ITEM_COLLECTIONS,
}

# Optional client-computed totals; must be non-negative numbers when given
OPTIONAL_AMOUNTS = ("total_commission", "net_amount", "total_amount")


def generate_invoice_id() -> str:
    """Invoice number of the form INV-{epoch millis}-{0..999}."""
    return f"INV-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _apply_stock_delta(item: dict[str, Any], item_type: ItemType, amount: float) -> dict[str, Any]:
    """
    Stock field updates after consuming `amount` (negative restores).

    Services products with a positive unit_value track stock as total_value
    and derive quantity from it.
    """
    quantity = float(item.get("quantity") or 0)

    if item_type == ItemType.SERVICES_PRODUCT:
        unit_value = float(item.get("unit_value") or 0)
        if unit_value > 0:
            total_value = float(item.get("total_value") or 0) - amount
            return {"quantity": total_value / unit_value, "total_value": total_value}

    return {"quantity": quantity - amount}


def validate_transaction(payload: dict[str, Any]) -> None:
    """
    Validate a create-transaction payload.

    Raises:
        ValidationError: Describing the first problem found
    """
    if not payload.get("client_id") or not payload.get("branch_id") or not payload.get("items"):
        raise ValidationError("Missing required fields: client_id, branch_id, items")

    for item in payload["items"]:
        if not item.get("item_id") or not item.get("type"):
            raise ValidationError("Each item must have item_id and type")
        try:
            item_type = ItemType(item["type"])
        except ValueError:
            raise ValidationError(f"Invalid item type {item['type']!r} for item {item['item_id']}") from None
        if item_type in STOCK_ITEM_COLLECTIONS and (
            not _is_number(item.get("quantity")) or item["quantity"] <= 0
        ):
            raise ValidationError(
                f"Invalid quantity for item {item['item_id']}. Quantity must be a positive number."
            )
        if not _is_number(item.get("price")):
            raise ValidationError(f"Invalid price for item {item['item_id']}. Price must be a number.")

    payment_method = payload.get("payment_method")
    if payment_method and payment_method.lower() != "cash" and not payload.get("reference_no"):
        raise ValidationError("Reference number is required when payment method is not cash")

    discount = payload.get("discount")
    if discount is not None and (not _is_number(discount) or discount < 0):
        raise ValidationError("Discount must be a non-negative number")

    for key in OPTIONAL_AMOUNTS:
        value = payload.get(key)
        if value is not None and (not _is_number(value) or value < 0):
            raise ValidationError(f"{key} must be a non-negative number")

    normalize_accounts(payload.get("accounts"))


def _page_of(rows: list[dict[str, Any]], page: int, page_size: int) -> tuple[list[dict[str, Any]], int]:
    """(rows on the page, total pages); page is 1-based."""
    page_size = max(page_size, 1)
    start = (max(page, 1) - 1) * page_size
    return rows[start:start + page_size], math.ceil(len(rows) / page_size)


class TransactionService:
    """Creates and voids POS transactions, moving stock through the ledger."""

    def __init__(self, db: Any = None, ledger: Any = None, commissions: Any = None):
        self._db = db
        self._ledger = ledger
        self._commissions = commissions

    @property
    def db(self) -> Any:
        if self._db is None:
            from database.connection import get_firestore_client

            self._db = get_firestore_client()
        return self._db

    @property
    def ledger(self) -> Any:
        if self._ledger is None:
            from salon.services.inventory_ledger import InventoryLedger

            self._ledger = InventoryLedger(self.db)
        return self._ledger

    @property
    def commissions(self) -> Any:
        if self._commissions is None:
            from salon.services.commission_service import CommissionService

            self._commissions = CommissionService(self.db)
        return self._commissions

    @property
    def transactions(self) -> Any:
        return self.db.collection(Collections.TRANSACTIONS)

    async def _stock_moves(self, items: list[dict[str, Any]], sign: int) -> list[dict[str, Any]]:
        """
        Plan stock updates for product lines.

        Args:
            items: Transaction lines
            sign: 1 to consume, -1 to restore

        Returns:
            One move per product line with an existing item:
            {ref, item_id, item_type, item_name, branch_id, line,
             old_quantity, new_quantity, updates}
        """
        current: dict[tuple[str, str], dict[str, Any]] = {}
        refs: dict[tuple[str, str], Any] = {}
        moves = []

        for line in items:
            item_type = ItemType(line["type"])
            collection = STOCK_ITEM_COLLECTIONS.get(item_type)
            if collection is None:
                continue

            key = (collection, line["item_id"])
            if key not in current:
                ref = self.db.collection(collection).document(line["item_id"])
                snapshot = await ref.get()
                if not snapshot.exists:
                    logger.warning(f"Item {line['item_id']} not found, stock not moved", extra={"item_id": line["item_id"]})
                    continue
                refs[key] = ref
                current[key] = snapshot.to_dict() or {}

            item = current[key]
            updates = _apply_stock_delta(item, item_type, sign * float(line["quantity"]))
            old_quantity = float(item.get("quantity") or 0)
            item.update(updates)

            moves.append(
                {
                    "ref": refs[key],
                    "item_id": line["item_id"],
                    "item_type": item_type,
                    "item_name": item.get("name"),
                    "branch_id": item.get("branch_id"),
                    "line": line,
                    "old_quantity": old_quantity,
                    "new_quantity": updates["quantity"],
                    "updates": updates,
                }
            )

        return moves

    async def _record_moves(
        self,
        moves: list[dict[str, Any]],
        transaction_id: str,
        branch_id: str,
        reason: QuantityChangeReason,
    ) -> None:
        for move in moves:
            await self.ledger.apply_quantity_change(
                item_id=move["item_id"],
                item_type=move["item_type"],
                branch_id=move["branch_id"] or branch_id,
                old_quantity=move["old_quantity"],
                new_quantity=move["new_quantity"],
                reason=reason,
                transaction_id=transaction_id,
                item_name=move["item_name"],
                unit_price=move["line"].get("price", 0),
                total_value=move["line"].get("item_total", 0),
            )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_transaction(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Create a POS transaction and consume product stock.

        Args:
            payload: {client_id, branch_id, items[{item_id, type, quantity,
                     price}], additionals?, discount?, payment_method?,
                     payment_status?, notes?, reference_no?,
                     accounts?[{account_email, commission_rate?,
                     commissionAmount?}], total_commission?, net_amount?,
                     total_amount?}

        Returns:
            Stored transaction document

        Raises:
            ValidationError: Invalid payload or discount above subtotal
        """
        validate_transaction(payload)
        accounts = normalize_accounts(payload.get("accounts"))

        processed_items = []
        subtotal = 0.0
        total_quantity = 0
        for line in payload["items"]:
            item_type = ItemType(line["type"])
            if item_type == ItemType.SERVICE:
                item_total = round(float(line["price"]), 2)
                total_quantity += 1
            else:
                item_total = float(line["quantity"]) * float(line["price"])
                if item_type == ItemType.OTC_PRODUCT:
                    total_quantity += line["quantity"]
            subtotal += item_total
            processed_items.append({**line, "item_total": item_total})

        additionals = payload.get("additionals") or []
        additional_total = sum(
            a["amount"] for a in additionals if _is_number(a.get("amount")) and a["amount"] >= 0
        )
        subtotal = round(subtotal + additional_total, 2)

        discount = float(payload.get("discount") or 0)
        if discount > subtotal:
            raise ValidationError("Discount cannot exceed the subtotal amount")

        total = round(subtotal - discount, 2)
        total_commission = payload.get("total_commission")
        if total_commission is None:
            total_commission = sum(a.get("commission_amount", 0) for a in accounts)
        total_sales_overall = round(float(payload.get("total_amount") or total), 2)
        net_sales = round(float(payload.get("net_amount") or total_sales_overall - total_commission), 2)

        payment_method = payload.get("payment_method")
        payment_status = payload.get("payment_status") or PaymentStatus.PAID.value
        transaction_id = str(uuid4())
        now = format_timestamp()

        transaction = {
            "id": transaction_id,
            "invoice_id": generate_invoice_id(),
            "client_id": payload["client_id"],
            "branch_id": payload["branch_id"],
            "accounts": accounts,
            "items": processed_items,
            "additionals": additionals,
            "subtotal": subtotal,
            "discount": discount,
            "percentDiscount": round(discount / subtotal * 100, 2) if subtotal > 0 else 0,
            "total": total,
            "total_sales_overall": total_sales_overall,
            "net_sales": net_sales,
            "total_commission_amount": round(float(total_commission), 2),
            "total_quantity": total_quantity,
            "payment_method": payment_method,
            "payment_status": payment_status,
            "void_reason": None,
            "notes": payload.get("notes") or "",
            "reference_no": (
                payload.get("reference_no") if payment_method and payment_method.lower() != "cash" else None
            ),
            "date_created": now,
            "date_updated": now,
            "doc_type": "TRANSACTIONS",
        }

        is_void = payment_status == PaymentStatus.VOID.value
        moves = [] if is_void else await self._stock_moves(processed_items, sign=1)

        batch = self.db.batch()
        batch.set(self.transactions.document(transaction_id), transaction)
        for move in moves:
            batch.update(move["ref"], {**move["updates"], "date_updated": now})
        await batch.commit()

        logger.info(
            f"Transaction {transaction['invoice_id']} created: total={transaction['total']}, "
            f"{len(moves)} stock moves",
            extra={"transaction_id": transaction_id, "branch_id": payload["branch_id"]},
        )

        await self._record_moves(
            moves, transaction_id, payload["branch_id"], QuantityChangeReason.TRANSACTION_CONSUMPTION
        )

        if not is_void:
            for account in accounts:
                if "commission_amount" not in account:
                    continue
                await self.commissions.save_commission(
                    account_email=account["account_email"],
                    transaction_id=transaction_id,
                    amount=account["commission_amount"],
                    transaction_total=total,
                    commission_rate=account.get("commission_rate"),
                    total_sales_overall=total_sales_overall,
                    net_sales=net_sales,
                    branch_id=payload["branch_id"],
                )
        return transaction

    # ------------------------------------------------------------------
    # Void / read
    # ------------------------------------------------------------------

    async def void_transaction(self, transaction_id: str, void_reason: str = "") -> dict[str, Any]:
        """
        Void a transaction and restore the stock it consumed.

        Raises:
            NotFoundError: Transaction does not exist
            ValidationError: Transaction is already void
        """
        ref = self.transactions.document(transaction_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise NotFoundError("Transaction not found")

        transaction = snapshot.to_dict() or {}
        if transaction.get("payment_status") == PaymentStatus.VOID.value:
            raise ValidationError("Transaction is already voided")

        moves = await self._stock_moves(transaction.get("items") or [], sign=-1)
        now = format_timestamp()

        batch = self.db.batch()
        batch.update(
            ref,
            {"payment_status": PaymentStatus.VOID.value, "void_reason": void_reason, "date_updated": now},
        )
        for move in moves:
            batch.update(move["ref"], {**move["updates"], "date_updated": now})
        await batch.commit()

        logger.info(
            f"Transaction {transaction_id} voided, {len(moves)} stock moves restored",
            extra={"transaction_id": transaction_id},
        )

        await self._record_moves(
            moves,
            transaction_id,
            transaction.get("branch_id", ""),
            QuantityChangeReason.TRANSACTION_VOID_REVERSAL,
        )
        await self.commissions.remove_commissions_for_transaction(transaction_id)
        return {
            "message": "Transaction voided successfully",
            "transaction_id": transaction_id,
            "void_reason": void_reason,
        }

    async def get_transaction(self, transaction_id: str) -> dict[str, Any]:
        snapshot = await self.transactions.document(transaction_id).get()
        if not snapshot.exists:
            raise NotFoundError("Transaction not found")
        return snapshot.to_dict() or {}

    # ------------------------------------------------------------------
    # Listings and statistics
    # ------------------------------------------------------------------

    async def _query(
        self,
        filters: dict[str, Any],
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[dict[str, Any]]:
        """Transactions matching equality filters and a date_created range, newest first."""
        query = self.transactions
        for field_name, value in filters.items():
            if value:
                query = query.where(filter=FieldFilter(field_name, "==", value))
        if date_from:
            query = query.where(filter=FieldFilter("date_created", ">=", date_from))
        if date_to:
            try:
                upper = next_day(date_to)
            except ValueError:
                raise ValidationError("date_to must be YYYY-MM-DD") from None
            query = query.where(filter=FieldFilter("date_created", "<", upper))

        rows = [doc.to_dict() or {} async for doc in query.stream()]
        rows.sort(key=lambda t: t.get("date_created") or "", reverse=True)
        return rows

    async def _item_name(self, item_id: str, item_type: str, cache: dict[tuple[str, str], str]) -> str:
        key = (item_type, item_id)
        if key in cache:
            return cache[key]

        name = "Unknown Item"
        collection = ITEM_NAME_COLLECTIONS.get(item_type)
        if collection and item_id:
            try:
                snapshot = await self.db.collection(collection).document(item_id).get()
                if snapshot.exists:
                    name = (snapshot.to_dict() or {}).get("name") or name
            except Exception as e:
                logger.error(f"Error fetching item name for {item_id}: {e}", extra={"item_id": item_id})
        cache[key] = name
        return name

    async def _branch_name(self, branch_id: str) -> str:
        if not branch_id:
            return branch_details_from(None)["name"]
        snapshot = await self.db.collection(Collections.BRANCHES).document(branch_id).get()
        return branch_details_from(snapshot.to_dict() if snapshot.exists else None)["name"]

    async def _with_names(self, transactions: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Add client_name, branch_name and per-line item_name."""
        item_names: dict[tuple[str, str], str] = {}
        branch_names: dict[str, str] = {}
        enriched = []
        for transaction in transactions:
            branch_id = transaction.get("branch_id") or ""
            if branch_id not in branch_names:
                branch_names[branch_id] = await self._branch_name(branch_id)

            client = await get_client_details(self.db, transaction.get("client_id") or "")
            items = [
                {**item, "item_name": await self._item_name(item.get("item_id", ""), item.get("type", ""), item_names)}
                for item in transaction.get("items") or []
            ]
            enriched.append(
                {**transaction, "client_name": client["name"], "branch_name": branch_names[branch_id], "items": items}
            )
        return enriched

    async def list_transactions(
        self,
        search: str | None = None,
        branch_id: str | None = None,
        payment_status: str | None = None,
        client_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """
        Paginated transactions, newest first, with client/branch/item names.

        search matches the invoice_id exactly. totalCountPaid and
        totalCountVoid count the branch's transactions by status regardless
        of the other filters.

        Returns:
            {data, page, totalPages, totalCount, totalCountPaid, totalCountVoid}
        """
        rows = await self._query(
            {
                "invoice_id": search,
                "branch_id": branch_id,
                "payment_status": payment_status,
                "client_id": client_id,
            },
            date_from,
            date_to,
        )
        data, total_pages = _page_of(rows, page, page_size)

        paid = await self._query({"payment_status": PaymentStatus.PAID.value, "branch_id": branch_id})
        void = await self._query({"payment_status": PaymentStatus.VOID.value, "branch_id": branch_id})

        return {
            "data": await self._with_names(data),
            "page": page,
            "totalPages": total_pages,
            "totalCount": len(rows),
            "totalCountPaid": len(paid),
            "totalCountVoid": len(void),
        }

    async def get_transaction_stats(
        self,
        branch_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        """Revenue statistics over a branch's non-void transactions."""
        rows = [
            t
            for t in await self._query({"branch_id": branch_id}, date_from, date_to)
            if t.get("payment_status") != PaymentStatus.VOID.value
        ]

        stats: dict[str, Any] = {
            "total_transactions": len(rows),
            "total_revenue": 0.0,
            "total_subtotal": 0.0,
            "total_discount": 0.0,
            "total_commission_amount": 0.0,
            "average_transaction_value": 0,
            "payment_status_breakdown": {},
            "payment_method_breakdown": {},
            "item_type_breakdown": {},
        }
        for transaction in rows:
            stats["total_revenue"] += float(transaction.get("total") or 0)
            stats["total_subtotal"] += float(transaction.get("subtotal") or 0)
            stats["total_discount"] += float(transaction.get("discount") or 0)
            stats["total_commission_amount"] += float(transaction.get("total_commission_amount") or 0)

            status = transaction.get("payment_status") or "unknown"
            stats["payment_status_breakdown"][status] = stats["payment_status_breakdown"].get(status, 0) + 1
            method = transaction.get("payment_method") or "unknown"
            stats["payment_method_breakdown"][method] = stats["payment_method_breakdown"].get(method, 0) + 1
            for item in transaction.get("items") or []:
                item_type = item.get("type") or "unknown"
                stats["item_type_breakdown"][item_type] = stats["item_type_breakdown"].get(item_type, 0) + 1

        for key in ("total_revenue", "total_subtotal", "total_discount", "total_commission_amount"):
            stats[key] = round(stats[key], 2)
        if rows:
            stats["average_transaction_value"] = round(stats["total_revenue"] / len(rows), 2)

        return {
            "branch_id": branch_id,
            "date_range": {"from": date_from or "", "to": date_to or ""},
            "stats": stats,
        }

    async def list_voided_transactions(
        self,
        branch_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """Paginated void transactions of a branch, newest first."""
        rows = await self._query(
            {"branch_id": branch_id, "payment_status": PaymentStatus.VOID.value}, date_from, date_to
        )
        data, total_pages = _page_of(rows, page, page_size)
        return {
            "data": data,
            "page": page,
            "totalPages": total_pages,
            "totalCount": len(rows),
            "branch_id": branch_id,
        }
