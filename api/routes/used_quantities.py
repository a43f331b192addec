"""
Used quantities API - read surfaces over the inventory ledger.

All endpoints accept date_from / date_to (YYYY-MM-DD); date_to includes the
whole day.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_inventory_ledger
from salon.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/used-quantities", tags=["used-quantities"])

Ledger = Annotated[InventoryLedger, Depends(get_inventory_ledger)]


@router.get("/getUsedQuantities/{branch_id}")
async def get_used_quantities(
    branch_id: str,
    ledger: Ledger,
    item_type: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, Any]:
    """Branch ledger grouped per item with stock and low-stock flags."""
    return await ledger.get_branch_usage(branch_id, item_type, date_from, date_to)


@router.get("/getUsedQuantitiesForItem/{item_id}")
async def get_used_quantities_for_item(
    item_id: str,
    ledger: Ledger,
    branch_id: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(alias="pageSize", ge=1, le=500)] = 10,
) -> dict[str, Any]:
    return await ledger.get_item_history(item_id, branch_id, date_from, date_to, page, page_size)


@router.get("/getUsedQuantitiesSummary/{branch_id}")
async def get_used_quantities_summary(
    branch_id: str,
    ledger: Ledger,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, Any]:
    return await ledger.get_usage_summary(branch_id, date_from, date_to)


@router.get("/getUsedQuantitiesForExport/{branch_id}")
async def get_used_quantities_for_export(
    branch_id: str,
    ledger: Ledger,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, Any]:
    """Ledger rows aggregated per item per day, split into services and OTC products."""
    return await ledger.get_usage_export_rows(branch_id, date_from, date_to)
