"""
Unit tests for salon/services/inventory_ledger.py - InventoryLedger.

Tests coverage:
- apply_quantity_change(): decrease/increase entries, zero delta, write failure
- update_item(): editable fields only, ledger entry per quantity change
- update_used_quantity(): validation, insufficient stock, ledger value
- Non-finite numbers and transaction reasons rejected on manual changes
- Services products keep total_value = quantity * unit_value
- Ledger/stock consistency across a sequence of changes
- Read surfaces: item history, branch usage, summary, export rows
"""

import pytest

from database.models import ItemType, QuantityChangeReason
from salon.exceptions import InsufficientStockError, NotFoundError, ValidationError
from salon.services.inventory_ledger import parse_reason, stock_collection


@pytest.fixture
def products(fake_db):
    fake_db.seed(
        "otcProducts",
        "otc-1",
        {"name": "Shampoo", "price": 250, "quantity": 20, "min_quantity": 5, "branch_id": "b1", "category": "Hair Care"},
    )
    fake_db.seed(
        "services_products",
        "sp-1",
        {"name": "Hair Dye", "unit_value": 50, "total_value": 500, "quantity": 10, "min_quantity": 12, "branch_id": "b1", "category": "Color"},
    )
    return fake_db


def seed_entry(db, entry_id, item_id, item_type, date_created, used=0, added=0, value=0, branch_id="b1", name=None):
    db.seed(
        "used_quantities",
        entry_id,
        {
            "id": entry_id,
            "branch_id": branch_id,
            "item_id": item_id,
            "item_name": name or item_id,
            "item_type": item_type,
            "quantity_used": used,
            "quantity_added": added,
            "old_quantity": 0,
            "new_quantity": 0,
            "change_type": "decrease" if used else "increase",
            "update_reason": "manual_usage",
            "date_created": date_created,
            "total_value": value,
        },
    )


class TestHelpers:
    def test_stock_collection(self):
        assert stock_collection("otc_product") == "otcProducts"
        assert stock_collection(ItemType.SERVICES_PRODUCT) == "services_products"

    @pytest.mark.parametrize("item_type", ["service", "gift_card"])
    def test_stock_collection_rejects_non_stock_types(self, item_type):
        with pytest.raises(ValidationError):
            stock_collection(item_type)

    def test_parse_reason(self):
        assert parse_reason("manual_update") is QuantityChangeReason.MANUAL_UPDATE

        with pytest.raises(ValidationError) as exc_info:
            parse_reason("stolen")

        assert "transaction_void_reversal" in exc_info.value.extra["valid_reasons"]


# ============================================================================
# Write side
# ============================================================================


class TestApplyQuantityChange:
    @pytest.mark.asyncio
    async def test_decrease_entry(self, inventory_ledger, fake_db):
        entry = await inventory_ledger.apply_quantity_change(
            item_id="otc-1",
            item_type="otc_product",
            branch_id="b1",
            old_quantity=20,
            new_quantity=17,
            reason="transaction_consumption",
            transaction_id="tx-1",
            item_name="Shampoo",
        )

        assert entry["quantity_used"] == 3
        assert entry["quantity_added"] == 0
        assert entry["change_type"] == "decrease"
        assert entry["update_reason"] == "transaction_consumption"
        assert entry["transaction_id"] == "tx-1"
        assert fake_db.doc("used_quantities", entry["id"]) == entry

    @pytest.mark.asyncio
    async def test_increase_entry(self, inventory_ledger):
        entry = await inventory_ledger.apply_quantity_change(
            item_id="otc-1",
            item_type="otc_product",
            branch_id="b1",
            old_quantity=17,
            new_quantity=20,
            reason=QuantityChangeReason.TRANSACTION_VOID_REVERSAL,
        )

        assert entry["quantity_added"] == 3
        assert entry["quantity_used"] == 0
        assert entry["change_type"] == "increase"
        assert entry["item_name"] == "Unknown Item"

    @pytest.mark.asyncio
    async def test_zero_delta_writes_nothing(self, inventory_ledger, fake_db):
        entry = await inventory_ledger.apply_quantity_change("otc-1", "otc_product", "b1", 5, 5, "manual_update")

        assert entry is None
        assert fake_db.docs("used_quantities") == {}

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, inventory_ledger, fake_db):
        fake_db.fail_writes("used_quantities")

        entry = await inventory_ledger.apply_quantity_change("otc-1", "otc_product", "b1", 5, 3, "manual_usage")

        assert entry is None


class TestUpdateItem:
    @pytest.mark.asyncio
    async def test_quantity_edit_records_entry(self, inventory_ledger, products):
        result = await inventory_ledger.update_item(
            "otc_product", "otc-1", {"quantity": 26, "price": 260, "unit": "ignored"}, "manual_update"
        )

        assert result["old_quantity"] == 20
        assert result["new_quantity"] == 26
        item = products.doc("otcProducts", "otc-1")
        assert item["quantity"] == 26
        assert item["price"] == 260
        assert "unit" not in item
        entry = products.doc("used_quantities", result["ledger_entry_id"])
        assert entry["quantity_added"] == 6
        assert entry["update_reason"] == "manual_update"

    @pytest.mark.asyncio
    async def test_non_quantity_edit_records_nothing(self, inventory_ledger, products):
        result = await inventory_ledger.update_item("otc_product", "otc-1", {"name": "Shampoo XL"}, "manual_update")

        assert result["ledger_entry_id"] is None
        assert products.doc("otcProducts", "otc-1")["name"] == "Shampoo XL"
        assert products.docs("used_quantities") == {}

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, inventory_ledger, products):
        with pytest.raises(ValidationError):
            await inventory_ledger.update_item("otc_product", "otc-1", {"quantity": -1}, "manual_update")

        assert products.doc("otcProducts", "otc-1")["quantity"] == 20

    @pytest.mark.asyncio
    async def test_services_product_quantity_sets_total_value(self, inventory_ledger, products):
        await inventory_ledger.adjust_item_quantity("services_product", "sp-1", 4, "quantity_update")

        dye = products.doc("services_products", "sp-1")
        assert dye["quantity"] == 4
        assert dye["total_value"] == 200

    @pytest.mark.asyncio
    async def test_services_product_total_value_derives_quantity(self, inventory_ledger, products):
        result = await inventory_ledger.update_item(
            "services_product", "sp-1", {"total_value": 250}, "quantity_update"
        )

        assert result["new_quantity"] == 5
        assert products.doc("services_products", "sp-1")["quantity"] == 5

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "nan"])
    @pytest.mark.asyncio
    async def test_non_finite_numbers_rejected(self, inventory_ledger, products, value):
        with pytest.raises(ValidationError):
            await inventory_ledger.update_item("otc_product", "otc-1", {"quantity": value}, "manual_update")

        with pytest.raises(ValidationError):
            await inventory_ledger.update_item("otc_product", "otc-1", {"price": value}, "manual_update")

        assert products.doc("otcProducts", "otc-1")["quantity"] == 20
        assert products.doc("otcProducts", "otc-1")["price"] == 250

    @pytest.mark.asyncio
    async def test_missing_item(self, inventory_ledger, products):
        with pytest.raises(NotFoundError):
            await inventory_ledger.update_item("services_product", "nope", {"quantity": 1}, "quantity_update")

    @pytest.mark.asyncio
    async def test_ledger_failure_keeps_stock_write(self, inventory_ledger, products):
        products.fail_writes("used_quantities")

        result = await inventory_ledger.adjust_item_quantity("services_product", "sp-1", 8, "quantity_update")

        assert result["ledger_entry_id"] is None
        assert products.doc("services_products", "sp-1")["quantity"] == 8


class TestUpdateUsedQuantity:
    @pytest.mark.asyncio
    async def test_decrements_and_records_value(self, inventory_ledger, products):
        result = await inventory_ledger.update_used_quantity("otc_product", "otc-1", 4)

        assert result["old_quantity"] == 20
        assert result["new_quantity"] == 16
        assert products.doc("otcProducts", "otc-1")["quantity"] == 16
        entry = products.doc("used_quantities", result["ledger_entry_id"])
        assert entry["quantity_used"] == 4
        assert entry["update_reason"] == "manual_usage"
        assert entry["unit_price"] == 250
        assert entry["total_value"] == 1000

    @pytest.mark.asyncio
    async def test_insufficient_stock_changes_nothing(self, inventory_ledger, products):
        with pytest.raises(InsufficientStockError) as exc_info:
            await inventory_ledger.update_used_quantity("otc_product", "otc-1", 25)

        assert exc_info.value.extra == {"available": 20, "requested": 25}
        assert products.doc("otcProducts", "otc-1")["quantity"] == 20
        assert products.docs("used_quantities") == {}

    @pytest.mark.parametrize("amount", [0, -3, "abc", None])
    @pytest.mark.asyncio
    async def test_non_positive_amount_rejected(self, inventory_ledger, products, amount):
        with pytest.raises(ValidationError):
            await inventory_ledger.update_used_quantity("otc_product", "otc-1", amount)

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), "nan", "-inf"])
    @pytest.mark.asyncio
    async def test_non_finite_amount_rejected(self, inventory_ledger, products, amount):
        with pytest.raises(ValidationError):
            await inventory_ledger.update_used_quantity("otc_product", "otc-1", amount)

        assert products.doc("otcProducts", "otc-1")["quantity"] == 20
        assert products.docs("used_quantities") == {}

    @pytest.mark.parametrize("reason", ["transaction_consumption", "transaction_void_reversal"])
    @pytest.mark.asyncio
    async def test_transaction_reasons_rejected(self, inventory_ledger, products, reason):
        with pytest.raises(ValidationError) as exc_info:
            await inventory_ledger.update_used_quantity("otc_product", "otc-1", 2, reason)

        assert exc_info.value.extra["valid_reasons"] == ["manual_usage", "manual_update", "quantity_update"]
        assert products.doc("otcProducts", "otc-1")["quantity"] == 20

    @pytest.mark.asyncio
    async def test_services_product_usage_keeps_total_value(self, inventory_ledger, products):
        result = await inventory_ledger.update_used_quantity("services_product", "sp-1", 3)

        assert result["new_quantity"] == 7
        dye = products.doc("services_products", "sp-1")
        assert dye["quantity"] == 7
        assert dye["total_value"] == 350

    @pytest.mark.asyncio
    async def test_exact_stock_allowed(self, inventory_ledger, products):
        result = await inventory_ledger.update_used_quantity("services_product", "sp-1", 10)

        assert result["new_quantity"] == 0


class TestLedgerConsistency:
    @pytest.mark.asyncio
    async def test_entries_reconcile_with_stock(self, inventory_ledger, products):
        await inventory_ledger.update_used_quantity("otc_product", "otc-1", 3)
        await inventory_ledger.adjust_item_quantity("otc_product", "otc-1", 30, "manual_update")
        await inventory_ledger.update_used_quantity("otc_product", "otc-1", 7)

        entries = list(products.docs("used_quantities").values())
        net = sum(e["quantity_added"] - e["quantity_used"] for e in entries)

        assert products.doc("otcProducts", "otc-1")["quantity"] == 23
        assert 20 + net == 23
        # Each entry starts where the previous one ended
        transitions = {(e["old_quantity"], e["new_quantity"]) for e in entries}
        assert transitions == {(20, 17), (17, 30), (30, 23)}


# ============================================================================
# Read side
# ============================================================================


class TestItemHistory:
    @pytest.mark.asyncio
    async def test_paginates_newest_first(self, inventory_ledger, fake_db):
        for day in range(1, 6):
            seed_entry(fake_db, f"e{day}", "otc-1", "otc_product", f"2025-03-0{day} 10:00:00", used=1)
        seed_entry(fake_db, "other", "otc-2", "otc_product", "2025-03-03 10:00:00", used=1)

        page = await inventory_ledger.get_item_history("otc-1", page=2, page_size=2)

        assert [e["id"] for e in page["data"]] == ["e3", "e2"]
        assert page["totalCount"] == 5
        assert page["totalPages"] == 3
        assert page["page"] == 2

    @pytest.mark.asyncio
    async def test_date_to_includes_whole_day(self, inventory_ledger, fake_db):
        seed_entry(fake_db, "late", "otc-1", "otc_product", "2025-03-10 23:59:59", used=1)
        seed_entry(fake_db, "next", "otc-1", "otc_product", "2025-03-11 00:00:00", used=1)

        page = await inventory_ledger.get_item_history("otc-1", date_from="2025-03-10", date_to="2025-03-10")

        assert [e["id"] for e in page["data"]] == ["late"]

    @pytest.mark.asyncio
    async def test_invalid_date_to(self, inventory_ledger):
        with pytest.raises(ValidationError):
            await inventory_ledger.get_item_history("otc-1", date_to="10/03/2025")


class TestBranchUsage:
    @pytest.mark.asyncio
    async def test_groups_by_item(self, inventory_ledger, products):
        seed_entry(products, "e1", "otc-1", "otc_product", "2025-03-01 10:00:00", used=2)
        seed_entry(products, "e2", "otc-1", "otc_product", "2025-03-02 10:00:00", added=5)
        seed_entry(products, "e3", "sp-1", "services_product", "2025-03-02 11:00:00", used=3)
        seed_entry(products, "e4", "otc-1", "otc_product", "2025-03-02 12:00:00", used=1, branch_id="b2")

        usage = await inventory_ledger.get_branch_usage("b1")

        groups = {g["id"]: g for g in usage["data"]}
        assert groups["otc-1"]["total_used"] == 2
        assert groups["otc-1"]["total_added"] == 5
        assert groups["otc-1"]["last_used"] == "2025-03-02 10:00:00"
        assert groups["otc-1"]["stocks"] == 20
        assert groups["otc-1"]["low_stock"] is False
        assert groups["sp-1"]["low_stock"] is True
        assert usage["total_items"] == 2
        assert usage["total_quantity_used"] == 5
        assert usage["total_otc_quantity_used"] == 2
        assert usage["total_services_quantity_used"] == 3
        assert usage["low_stock_count"] == 1

    @pytest.mark.asyncio
    async def test_item_type_filter(self, inventory_ledger, products):
        seed_entry(products, "e1", "otc-1", "otc_product", "2025-03-01 10:00:00", used=2)
        seed_entry(products, "e3", "sp-1", "services_product", "2025-03-02 11:00:00", used=3)

        usage = await inventory_ledger.get_branch_usage("b1", item_type="services_product")

        assert [g["id"] for g in usage["data"]] == ["sp-1"]


class TestUsageSummary:
    @pytest.mark.asyncio
    async def test_totals_breakdown_and_top_items(self, inventory_ledger, products):
        seed_entry(products, "e1", "otc-1", "otc_product", "2025-03-01 10:00:00", used=2, value=500)
        seed_entry(products, "e2", "otc-1", "otc_product", "2025-03-02 10:00:00", used=1, value=250)
        seed_entry(products, "e3", "sp-1", "services_product", "2025-03-02 11:00:00", used=5, value=250)

        result = await inventory_ledger.get_usage_summary("b1", "2025-03-01", "2025-03-31")

        summary = result["summary"]
        assert result["date_range"] == {"from": "2025-03-01", "to": "2025-03-31"}
        assert summary["total_records"] == 3
        assert summary["total_quantity_used"] == 8
        assert summary["total_value"] == 1000
        assert summary["item_type_breakdown"]["otc_product"] == {"count": 2, "total_quantity": 3, "total_value": 750}
        assert [i["item_id"] for i in summary["top_items"]] == ["sp-1", "otc-1"]
        assert summary["top_items"][0]["item_name"] == "Hair Dye"
        assert summary["average_quantity_per_record"] == 2.67
        assert summary["average_value_per_record"] == 333.33

    @pytest.mark.asyncio
    async def test_top_items_capped_at_ten(self, inventory_ledger, fake_db):
        for i in range(12):
            seed_entry(fake_db, f"e{i}", f"item-{i}", "otc_product", "2025-03-01 10:00:00", used=i + 1)

        result = await inventory_ledger.get_usage_summary("b1")

        top = result["summary"]["top_items"]
        assert len(top) == 10
        assert top[0]["item_id"] == "item-11"

    @pytest.mark.asyncio
    async def test_empty_range(self, inventory_ledger):
        result = await inventory_ledger.get_usage_summary("b1")

        assert result["summary"]["total_records"] == 0
        assert result["summary"]["average_quantity_per_record"] == 0


class TestUsageExport:
    @pytest.mark.asyncio
    async def test_rows_aggregated_per_item_per_day(self, inventory_ledger, products):
        seed_entry(products, "e1", "otc-1", "otc_product", "2025-03-01 09:00:00", used=2)
        seed_entry(products, "e2", "otc-1", "otc_product", "2025-03-01 17:00:00", used=1, added=4)
        seed_entry(products, "e3", "otc-1", "otc_product", "2025-03-02 10:00:00", used=1)
        seed_entry(products, "e4", "sp-1", "services_product", "2025-03-01 11:00:00", used=3)

        export = await inventory_ledger.get_usage_export_rows("b1")

        otc_rows = export["otc_products"]["data"]
        assert [(r["date"], r["quantity_used"], r["quantity_added"]) for r in otc_rows] == [
            ("2025-03-01", 3, 4),
            ("2025-03-02", 1, 0),
        ]
        assert otc_rows[0]["status"] == "In Stock"
        assert otc_rows[0]["item_name"] == "Shampoo"

        services_rows = export["services_products"]["data"]
        assert len(services_rows) == 1
        assert services_rows[0]["status"] == "Low Stock"
        assert export["summary"] == {"total_services_products": 1, "total_otc_products": 2, "total_records": 3}
