"""Pydantic request models for the transactions API."""

from typing import Any

from pydantic import BaseModel


class CreateTransactionRequest(BaseModel):
    """
    POS transaction payload.

    Line items stay loosely typed: TransactionService validates each line
    (item_id, type, positive product quantity, numeric price) and reports
    which item is invalid.
    """

    client_id: str | None = None
    branch_id: str | None = None
    items: list[dict[str, Any]] = []
    additionals: list[dict[str, Any]] = []
    discount: Any = 0
    payment_method: str | None = None
    payment_status: str | None = None
    notes: str | None = None
    reference_no: str | None = None
    # [{account_email, commission_rate?, commissionAmount?}]
    accounts: Any = None
    total_commission: Any = None
    net_amount: Any = None
    total_amount: Any = None


class VoidTransactionRequest(BaseModel):
    void_reason: str = ""
