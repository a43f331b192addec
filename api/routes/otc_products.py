"""
OTC products API - quantity-changing endpoints.

Every quantity change goes through the InventoryLedger so the
used_quantities log stays consistent with the product's stock.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from api.dependencies import get_inventory_ledger
from api.models.inventory import UpdateOtcProductRequest, UpdateUsedQuantityRequest
from database.models import ItemType, QuantityChangeReason
from salon.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/otc-products", tags=["otc-products"])

Ledger = Annotated[InventoryLedger, Depends(get_inventory_ledger)]


@router.put("/updateProduct/{item_id}")
async def update_product(item_id: str, body: UpdateOtcProductRequest, ledger: Ledger) -> dict[str, Any]:
    """Edit an OTC product; a quantity change is recorded as manual_update."""
    result = await ledger.update_item(
        ItemType.OTC_PRODUCT,
        item_id,
        body.model_dump(exclude_none=True),
        QuantityChangeReason.MANUAL_UPDATE,
    )
    return {"message": "OTC product updated", **result}


@router.post("/updateUsedQuantity/{item_id}")
async def update_used_quantity(item_id: str, body: UpdateUsedQuantityRequest, ledger: Ledger) -> dict[str, Any]:
    """
    Record usage of an OTC product outside a sale.

    **Errors:**
    - **400**: quantity_used not a positive finite number, reason not a
      manual reason, or amount above current stock
      (`available` / `requested`)
    - **404**: Product not found
    """
    result = await ledger.update_used_quantity(
        ItemType.OTC_PRODUCT,
        item_id,
        body.quantity_used,
        body.reason or QuantityChangeReason.MANUAL_USAGE,
    )
    return {"message": "Used quantity updated successfully", **result}
