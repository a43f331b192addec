"""Services products API - quantity-changing endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from api.dependencies import get_inventory_ledger
from api.models.inventory import UpdateServicesProductRequest, UpdateUsedQuantityRequest
from database.models import ItemType, QuantityChangeReason
from salon.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services-products", tags=["services-products"])

Ledger = Annotated[InventoryLedger, Depends(get_inventory_ledger)]


@router.put("/updateServiceProduct/{item_id}")
async def update_service_product(
    item_id: str,
    body: UpdateServicesProductRequest,
    ledger: Ledger,
) -> dict[str, Any]:
    """Edit a services product; a quantity change is recorded as quantity_update."""
    result = await ledger.update_item(
        ItemType.SERVICES_PRODUCT,
        item_id,
        body.model_dump(exclude_none=True),
        QuantityChangeReason.QUANTITY_UPDATE,
    )
    return {"message": "Services product updated", **result}


@router.post("/updateUsedQuantity/{item_id}")
async def update_used_quantity(item_id: str, body: UpdateUsedQuantityRequest, ledger: Ledger) -> dict[str, Any]:
    result = await ledger.update_used_quantity(
        ItemType.SERVICES_PRODUCT,
        item_id,
        body.quantity_used,
        body.reason or QuantityChangeReason.MANUAL_USAGE,
    )
    return {"message": "Used quantity updated successfully", **result}
