"""
Inventory Ledger - append-only used_quantities log.

Every stock movement of an OTC product or services product is recorded as
one immutable entry holding the delta (quantity_used or quantity_added), the
quantities before/after, and a closed-set reason:

    manual_update              OTC product edited in the back office
    quantity_update            Services product edited in the back office
    transaction_consumption    Sold / consumed by a POS transaction
    transaction_void_reversal  Restored by voiding that transaction
    manual_usage               Usage recorded outside a sale

For any item, new_quantity of its most recent entry equals the item's
current quantity. Ledger write failures are logged and swallowed so the
stock write that triggered them is never rolled back.

Read surfaces (per item history, per branch usage grouped by item, summary,
day-aggregated export rows) all accept date_from (inclusive) and date_to
(inclusive of the whole day) filters on date_created.
"""

import logging
import math
from typing import Any
from uuid import uuid4

from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import (
    STOCK_ITEM_COLLECTIONS,
    ChangeType,
    Collections,
    ItemType,
    QuantityChangeReason,
    UsedQuantityEntry,
)
from salon.exceptions import InsufficientStockError, NotFoundError, ValidationError
from salon.utils.time_utils import format_timestamp, next_day

logger = logging.getLogger(__name__)

TOP_ITEMS_LIMIT = 10

# Fields a back-office product edit may change, per item type
EDITABLE_FIELDS: dict[ItemType, tuple[str, ...]] = {
    ItemType.OTC_PRODUCT: ("name", "price", "quantity", "branch_id", "category", "status", "min_quantity"),
    ItemType.SERVICES_PRODUCT: (
        "name",
        "category",
        "unit",
        "quantity",
        "total_value",
        "status",
        "branch_id",
        "unit_value",
        "min_quantity",
    ),
}


def stock_collection(item_type: ItemType | str) -> str:
    """
    Collection holding items of a stock-carrying type.

    Raises:
        ValidationError: For plain services or unknown types
    """
    try:
        return STOCK_ITEM_COLLECTIONS[ItemType(item_type)]
    except (KeyError, ValueError):
        raise ValidationError(f"Item type {item_type!r} does not carry stock") from None


# Reasons a caller may give for usage recorded outside a sale; the
# transaction_* reasons are written only by TransactionService
MANUAL_USAGE_REASONS = (
    QuantityChangeReason.MANUAL_USAGE,
    QuantityChangeReason.MANUAL_UPDATE,
    QuantityChangeReason.QUANTITY_UPDATE,
)

# Numeric fields of a product edit
NUMERIC_FIELDS = ("price", "quantity", "total_value", "unit_value", "min_quantity")


def parse_reason(
    reason: QuantityChangeReason | str,
    allowed: tuple[QuantityChangeReason, ...] | None = None,
) -> QuantityChangeReason:
    """
    Coerce a reason into the closed QuantityChangeReason set.

    Args:
        reason: Reason value
        allowed: Subset of reasons accepted here (default: all)

    Raises:
        ValidationError: For values outside the set
    """
    valid = allowed or tuple(QuantityChangeReason)
    try:
        parsed = QuantityChangeReason(reason)
    except ValueError:
        parsed = None
    if parsed not in valid:
        raise ValidationError(
            f"Invalid update reason: {getattr(reason, 'value', reason)}",
            {"valid_reasons": [r.value for r in valid]},
        )
    return parsed


def stock_updates(item: dict[str, Any], item_type: ItemType | str, new_quantity: float) -> dict[str, Any]:
    """
    Stock fields to write when an item's quantity becomes new_quantity.

    Services products with a positive unit_value keep total_value equal to
    quantity * unit_value, since sales consume total_value and derive
    quantity from it.
    """
    updates: dict[str, Any] = {"quantity": new_quantity}
    if ItemType(item_type) == ItemType.SERVICES_PRODUCT:
        unit_value = _number(item.get("unit_value"))
        if unit_value > 0:
            updates["total_value"] = new_quantity * unit_value
    return updates


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _finite(value: Any, message: str) -> float:
    """Parse a caller-supplied number, rejecting blanks, text, NaN and infinity."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message) from None
    if not math.isfinite(number):
        raise ValidationError(message)
    return number


def _is_low_stock(item: dict[str, Any]) -> bool:
    return _number(item.get("quantity")) <= _number(item.get("min_quantity"))


class InventoryLedger:
    """Records quantity deltas and serves ledger reports."""

    def __init__(self, db: Any = None):
        self._db = db

    @property
    def db(self) -> Any:
        if self._db is None:
            from database.connection import get_firestore_client

            self._db = get_firestore_client()
        return self._db

    @property
    def entries(self) -> Any:
        return self.db.collection(Collections.USED_QUANTITIES)

    # ========================================================================
    # Write side
    # ========================================================================

    async def apply_quantity_change(
        self,
        item_id: str,
        item_type: ItemType | str,
        branch_id: str,
        old_quantity: float,
        new_quantity: float,
        reason: QuantityChangeReason | str,
        transaction_id: str | None = None,
        item_name: str | None = None,
        unit_price: float = 0,
        total_value: float = 0,
    ) -> dict[str, Any] | None:
        """
        Record the delta between two quantities of an item.

        Args:
            item_id: Product document ID
            item_type: otc_product or services_product
            branch_id: Branch owning the item
            old_quantity: Quantity before the change
            new_quantity: Quantity after the change
            reason: QuantityChangeReason
            transaction_id: POS transaction that caused the change, if any
            item_name: Name snapshot for reports
            unit_price: Price per unit at the time of the change
            total_value: Monetary value of the movement

        Returns:
            The stored entry, or None when the delta is zero or the write failed
        """
        old_quantity = _number(old_quantity)
        new_quantity = _number(new_quantity)
        delta = old_quantity - new_quantity
        if delta == 0:
            return None

        entry = UsedQuantityEntry(
            id=str(uuid4()),
            branch_id=branch_id,
            item_id=item_id,
            item_name=item_name or "Unknown Item",
            item_type=ItemType(item_type).value,
            quantity_used=delta if delta > 0 else 0,
            quantity_added=-delta if delta < 0 else 0,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            change_type=(ChangeType.DECREASE if delta > 0 else ChangeType.INCREASE).value,
            update_reason=QuantityChangeReason(reason).value,
            date_created=format_timestamp(),
            transaction_id=transaction_id,
            unit_price=unit_price,
            total_value=total_value,
        )

        try:
            await self.entries.document(entry.id).set(entry.to_document())
        except Exception as e:
            logger.error(
                f"Failed to record {entry.change_type} of {abs(delta)} for {entry.item_name}: {e}",
                extra={"item_id": item_id, "transaction_id": transaction_id},
            )
            return None

        logger.info(
            f"Ledger: {entry.change_type} {abs(delta)} {entry.item_name} ({entry.update_reason})",
            extra={"item_id": item_id, "branch_id": branch_id, "transaction_id": transaction_id},
        )
        return entry.to_document()

    async def _get_item(self, item_type: ItemType | str, item_id: str) -> tuple[Any, dict[str, Any]]:
        ref = self.db.collection(stock_collection(item_type)).document(item_id)
        snapshot = await ref.get()
        if not snapshot.exists:
            raise NotFoundError("Product not found", {"item_id": item_id})
        return ref, snapshot.to_dict() or {}

    async def update_item(
        self,
        item_type: ItemType | str,
        item_id: str,
        fields: dict[str, Any],
        reason: QuantityChangeReason | str,
    ) -> dict[str, Any]:
        """
        Apply a back-office product edit and record any quantity delta.

        Only the item type's editable fields are written; None values are
        ignored. For services products with a unit_value, quantity and
        total_value are written together: a quantity edit sets total_value,
        a total_value-only edit derives quantity.

        Raises:
            NotFoundError: Item does not exist
            ValidationError: Non-stock item type, non-finite number or
                negative quantity
        """
        reason = parse_reason(reason)
        item_type = ItemType(item_type)

        updates = {k: fields[k] for k in EDITABLE_FIELDS[item_type] if fields.get(k) is not None}
        for key in NUMERIC_FIELDS:
            if key in updates:
                updates[key] = _finite(updates[key], f"{key} must be a finite number")
        if updates.get("quantity", 0) < 0:
            raise ValidationError("Quantity must be a non-negative number")

        ref, item = await self._get_item(item_type, item_id)

        if item_type == ItemType.SERVICES_PRODUCT:
            merged = {**item, **updates}
            unit_value = _number(merged.get("unit_value"))
            if "quantity" in updates:
                updates.update(stock_updates(merged, item_type, updates["quantity"]))
            elif "total_value" in updates and unit_value > 0:
                updates["quantity"] = updates["total_value"] / unit_value
        updates["date_updated"] = format_timestamp()

        await ref.update(updates)

        old_quantity = _number(item.get("quantity"))
        new_quantity = _number(updates.get("quantity", old_quantity))
        entry = await self.apply_quantity_change(
            item_id=item_id,
            item_type=item_type,
            branch_id=updates.get("branch_id") or item.get("branch_id", ""),
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            reason=reason,
            item_name=updates.get("name") or item.get("name"),
            unit_price=_number(item.get("price") or item.get("unit_value")),
        )

        return {
            "item_id": item_id,
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "ledger_entry_id": entry["id"] if entry else None,
        }

    async def adjust_item_quantity(
        self,
        item_type: ItemType | str,
        item_id: str,
        new_quantity: float,
        reason: QuantityChangeReason | str,
    ) -> dict[str, Any]:
        """Set an item's quantity and record the delta."""
        return await self.update_item(item_type, item_id, {"quantity": new_quantity}, reason)

    async def update_used_quantity(
        self,
        item_type: ItemType | str,
        item_id: str,
        quantity_used: float,
        reason: QuantityChangeReason | str = QuantityChangeReason.MANUAL_USAGE,
    ) -> dict[str, Any]:
        """
        Decrement an item by a used amount and record it.

        Raises:
            ValidationError: quantity_used is not a positive finite number,
                or reason is a transaction reason
            NotFoundError: Item does not exist
            InsufficientStockError: quantity_used exceeds current stock
        """
        reason = parse_reason(reason, allowed=MANUAL_USAGE_REASONS)
        message = "quantity_used must be a positive number"
        amount = _finite(quantity_used, message)
        if amount <= 0:
            raise ValidationError(message)

        ref, item = await self._get_item(item_type, item_id)
        old_quantity = _number(item.get("quantity"))
        if amount > old_quantity:
            raise InsufficientStockError("Insufficient stock", available=old_quantity, requested=amount)

        new_quantity = old_quantity - amount
        await ref.update({**stock_updates(item, item_type, new_quantity), "date_updated": format_timestamp()})

        unit_price = _number(item.get("price") or item.get("unit_value"))
        entry = await self.apply_quantity_change(
            item_id=item_id,
            item_type=item_type,
            branch_id=item.get("branch_id", ""),
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            reason=reason,
            item_name=item.get("name"),
            unit_price=unit_price,
            total_value=round(amount * unit_price, 2),
        )

        return {
            "item_id": item_id,
            "quantity_used": amount,
            "old_quantity": old_quantity,
            "new_quantity": new_quantity,
            "ledger_entry_id": entry["id"] if entry else None,
        }

    # ========================================================================
    # Read side
    # ========================================================================

    async def _query_entries(
        self,
        filters: dict[str, Any],
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[dict[str, Any]]:
        query = self.entries
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

        return [doc.to_dict() or {} async for doc in query.stream()]

    async def _load_items(self, entries: list[dict[str, Any]]) -> dict[tuple[str, str], dict[str, Any] | None]:
        """Current item documents keyed by (item_type, item_id)."""
        items: dict[tuple[str, str], dict[str, Any] | None] = {}
        for entry in entries:
            key = (entry.get("item_type", ""), entry.get("item_id", ""))
            if key in items:
                continue
            try:
                snapshot = await self.db.collection(stock_collection(key[0])).document(key[1]).get()
                items[key] = snapshot.to_dict() if snapshot.exists else None
            except Exception as e:
                logger.error(f"Error fetching item {key[1]} for ledger report: {e}")
                items[key] = None
        return items

    async def get_item_history(
        self,
        item_id: str,
        branch_id: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> dict[str, Any]:
        """Ledger entries for one item, newest first, paginated."""
        entries = await self._query_entries(
            {"item_id": item_id, "branch_id": branch_id}, date_from, date_to
        )
        entries.sort(key=lambda e: e.get("date_created") or "", reverse=True)

        total = len(entries)
        start = (max(page, 1) - 1) * page_size
        return {
            "data": entries[start:start + page_size],
            "page": page,
            "totalPages": math.ceil(total / page_size) if page_size else 0,
            "totalCount": total,
            "item_id": item_id,
        }

    async def get_branch_usage(
        self,
        branch_id: str,
        item_type: str | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        """
        Branch ledger grouped per item.

        Each group: {id, name, item_type, category, stocks, min_quantity,
        low_stock, usages[], total_used, total_added, last_used}.
        """
        entries = await self._query_entries(
            {"branch_id": branch_id, "item_type": item_type}, date_from, date_to
        )
        items = await self._load_items(entries)

        groups: dict[str, dict[str, Any]] = {}
        for entry in sorted(entries, key=lambda e: e.get("date_created") or ""):
            item_id = entry.get("item_id", "")
            item = items.get((entry.get("item_type", ""), item_id)) or {}
            group = groups.get(item_id)
            if group is None:
                group = groups[item_id] = {
                    "id": item_id,
                    "name": item.get("name") or entry.get("item_name"),
                    "item_type": entry.get("item_type"),
                    "category": item.get("category"),
                    "stocks": item.get("quantity"),
                    "min_quantity": item.get("min_quantity"),
                    "low_stock": _is_low_stock(item) if item else False,
                    "usages": [],
                    "total_used": 0,
                    "total_added": 0,
                    "last_used": None,
                }
            group["usages"].append(entry)
            group["total_used"] += _number(entry.get("quantity_used"))
            group["total_added"] += _number(entry.get("quantity_added"))
            group["last_used"] = entry.get("date_created")

        data = list(groups.values())
        return {
            "branch_id": branch_id,
            "data": data,
            "total_items": len(data),
            "total_quantity_used": sum(g["total_used"] for g in data),
            "total_otc_quantity_used": sum(
                g["total_used"] for g in data if g["item_type"] == ItemType.OTC_PRODUCT.value
            ),
            "total_services_quantity_used": sum(
                g["total_used"] for g in data if g["item_type"] == ItemType.SERVICES_PRODUCT.value
            ),
            "low_stock_count": sum(1 for g in data if g["low_stock"]),
        }

    async def get_usage_summary(
        self,
        branch_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        """Totals, per-type breakdown, top items by quantity used and averages."""
        entries = await self._query_entries({"branch_id": branch_id}, date_from, date_to)
        items = await self._load_items(entries)

        summary: dict[str, Any] = {
            "total_records": len(entries),
            "total_quantity_used": 0,
            "total_value": 0,
            "item_type_breakdown": {},
            "top_items": [],
            "average_quantity_per_record": 0,
            "average_value_per_record": 0,
        }
        top: dict[str, dict[str, Any]] = {}

        for entry in entries:
            used = _number(entry.get("quantity_used"))
            value = _number(entry.get("total_value"))
            summary["total_quantity_used"] += used
            summary["total_value"] += value

            breakdown = summary["item_type_breakdown"].setdefault(
                entry.get("item_type") or "unknown",
                {"count": 0, "total_quantity": 0, "total_value": 0},
            )
            breakdown["count"] += 1
            breakdown["total_quantity"] += used
            breakdown["total_value"] += value

            item_id = entry.get("item_id", "")
            if item_id not in top:
                item = items.get((entry.get("item_type", ""), item_id)) or {}
                top[item_id] = {
                    "item_id": item_id,
                    "item_name": item.get("name") or entry.get("item_name") or "Unknown Item",
                    "item_type": entry.get("item_type"),
                    "total_quantity": 0,
                    "total_value": 0,
                    "usage_count": 0,
                }
            top[item_id]["total_quantity"] += used
            top[item_id]["total_value"] += value
            top[item_id]["usage_count"] += 1

        if entries:
            summary["average_quantity_per_record"] = round(summary["total_quantity_used"] / len(entries), 2)
            summary["average_value_per_record"] = round(summary["total_value"] / len(entries), 2)

        summary["top_items"] = sorted(top.values(), key=lambda i: i["total_quantity"], reverse=True)[
            :TOP_ITEMS_LIMIT
        ]

        return {
            "branch_id": branch_id,
            "date_range": {"from": date_from or "", "to": date_to or ""},
            "summary": summary,
        }

    async def get_usage_export_rows(
        self,
        branch_id: str,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> dict[str, Any]:
        """
        Ledger rows aggregated per item per day, split by item type.

        Each row: {date, item_id, item_name, category, quantity,
        quantity_used, quantity_added, status} with status "Low Stock" or
        "In Stock" from the item's current quantity. Rows are sorted by
        (date, item_name).
        """
        entries = await self._query_entries({"branch_id": branch_id}, date_from, date_to)
        items = await self._load_items(entries)

        rows: dict[tuple[str, str], dict[str, Any]] = {}
        for entry in entries:
            day = (entry.get("date_created") or "")[:10]
            item_id = entry.get("item_id", "")
            row = rows.get((item_id, day))
            if row is None:
                item = items.get((entry.get("item_type", ""), item_id)) or {}
                row = rows[(item_id, day)] = {
                    "date": day,
                    "item_id": item_id,
                    "item_name": item.get("name") or entry.get("item_name") or "",
                    "item_type": entry.get("item_type"),
                    "category": item.get("category") or "",
                    "quantity": _number(item.get("quantity")),
                    "quantity_used": 0,
                    "quantity_added": 0,
                    "status": ("Low Stock" if _is_low_stock(item) else "In Stock") if item else "",
                }
            row["quantity_used"] += _number(entry.get("quantity_used"))
            row["quantity_added"] += _number(entry.get("quantity_added"))

        ordered = sorted(rows.values(), key=lambda r: (r["date"], r["item_name"]))
        services_products = [r for r in ordered if r["item_type"] == ItemType.SERVICES_PRODUCT.value]
        otc_products = [r for r in ordered if r["item_type"] == ItemType.OTC_PRODUCT.value]

        return {
            "branch_id": branch_id,
            "date_range": {"from": date_from or "", "to": date_to or ""},
            "export_date": format_timestamp(),
            "services_products": {"total_records": len(services_products), "data": services_products},
            "otc_products": {"total_records": len(otc_products), "data": otc_products},
            "summary": {
                "total_services_products": len(services_products),
                "total_otc_products": len(otc_products),
                "total_records": len(services_products) + len(otc_products),
            },
        }
