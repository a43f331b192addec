"""
Transactions API.

Creating a transaction consumes OTC / services product stock and records
staff commissions; voiding it restores the stock and removes the
commissions. Both stock movements are recorded in the used_quantities
ledger tagged with the transaction id.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_transaction_service
from api.models.transactions import CreateTransactionRequest, VoidTransactionRequest
from salon.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])

Transactions = Annotated[TransactionService, Depends(get_transaction_service)]
Page = Annotated[int, Query(ge=1)]
PageSize = Annotated[int, Query(alias="pageSize", ge=1, le=500)]


@router.post("/createTransaction", status_code=201)
async def create_transaction(body: CreateTransactionRequest, service: Transactions) -> dict[str, Any]:
    """
    Create a POS transaction.

    **Errors:**
    - **400**: Missing client_id / branch_id / items, invalid line item,
      missing reference_no for non-cash payment, invalid or excessive
      discount, invalid accounts / commission values
    """
    return await service.create_transaction(body.model_dump(exclude_none=True))


@router.put("/voidTransaction/{transaction_id}")
async def void_transaction(
    transaction_id: str,
    service: Transactions,
    body: VoidTransactionRequest | None = None,
) -> dict[str, Any]:
    """
    Void a transaction, restore the stock it consumed and remove its commissions.

    **Errors:**
    - **400**: Already voided
    - **404**: Transaction not found
    """
    return await service.void_transaction(transaction_id, body.void_reason if body else "")


@router.get("/getTransaction/{transaction_id}")
async def get_transaction(transaction_id: str, service: Transactions) -> dict[str, Any]:
    return await service.get_transaction(transaction_id)


@router.get("/getAllTransactions")
async def get_all_transactions(
    service: Transactions,
    search: str | None = None,
    branch_id: str | None = None,
    payment_status: str | None = None,
    client_id: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    page: Page = 1,
    page_size: PageSize = 10,
) -> dict[str, Any]:
    """Paginated transactions with client, branch and item names plus paid/void counts."""
    return await service.list_transactions(
        search, branch_id, payment_status, client_id, date_from, date_to, page, page_size
    )


@router.get("/transactionStats/{branch_id}")
async def get_transaction_stats(
    branch_id: str,
    service: Transactions,
    date_from: str | None = None,
    date_to: str | None = None,
) -> dict[str, Any]:
    """Revenue statistics over the branch's non-void transactions."""
    return await service.get_transaction_stats(branch_id, date_from, date_to)


# Existing POS clients call this with PUT
@router.api_route("/voidedTransactions/{branch_id}", methods=["GET", "PUT"])
async def get_voided_transactions(
    branch_id: str,
    service: Transactions,
    date_from: str | None = None,
    date_to: str | None = None,
    page: Page = 1,
    page_size: PageSize = 10,
) -> dict[str, Any]:
    return await service.list_voided_transactions(branch_id, date_from, date_to, page, page_size)
