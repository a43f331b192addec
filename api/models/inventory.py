"""Pydantic request models for product quantity endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class UpdateOtcProductRequest(BaseModel):
    """Back-office OTC product edit; omitted fields are left unchanged."""

    model_config = ConfigDict(allow_inf_nan=False)

    name: str | None = None
    price: float | None = None
    quantity: float | None = None
    branch_id: str | None = None
    category: str | None = None
    status: str | None = None
    min_quantity: float | None = None


class UpdateServicesProductRequest(BaseModel):
    """Back-office services product edit; omitted fields are left unchanged."""

    model_config = ConfigDict(allow_inf_nan=False)

    name: str | None = None
    category: str | None = None
    unit: str | None = None
    quantity: float | None = None
    total_value: float | None = None
    status: str | None = None
    branch_id: str | None = None
    unit_value: float | None = None
    min_quantity: float | None = None


class UpdateUsedQuantityRequest(BaseModel):
    """
    Usage recorded outside a sale.

    quantity_used stays loosely typed so InventoryLedger reports a bad
    amount with its own message. reason is one of manual_usage,
    manual_update or quantity_update.
    """

    model_config = ConfigDict(extra="ignore")

    quantity_used: Any = None
    reason: str | None = None
