"""
Staff commissions earned on POS transactions.

A transaction may name the accounts that worked on it, each with an
optional commission_rate and commission_amount. Every account with an
amount gets one commissions document, and its account document keeps a
running list (commissions[]) and total (total_commissions). Voiding the
transaction removes both again.

Commission writes are secondary to the sale: failures are logged and never
fail the transaction or the void.
"""

import logging
from typing import Any
from uuid import uuid4

from google.cloud.firestore_v1.base_query import FieldFilter

from database.models import Collections, CommissionRecord
from salon.exceptions import ValidationError
from salon.utils.time_utils import format_timestamp

logger = logging.getLogger(__name__)


def _is_non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def normalize_accounts(accounts: Any) -> list[dict[str, Any]]:
    """
    Validate a transaction's accounts[] and project it onto stored fields.

    Input entries: {account_email, commission_rate?, commissionAmount?}
    (commission_amount is accepted as well).

    Returns:
        [{account_email, commission_rate?, commission_amount?}]

    Raises:
        ValidationError: accounts is not a list, an entry has no e-mail, or a
            rate/amount is not a non-negative number
    """
    if accounts is None:
        return []
    if not isinstance(accounts, list):
        raise ValidationError("Accounts must be an array")

    normalized = []
    for account in accounts:
        email = (account or {}).get("account_email")
        if not email:
            raise ValidationError("Account email is required for each account in the accounts array")

        entry: dict[str, Any] = {"account_email": email}

        rate = account.get("commission_rate")
        if rate is not None:
            if not _is_non_negative_number(rate):
                raise ValidationError(
                    f"Invalid commission_rate for account {email}. "
                    "Commission rate must be a non-negative number."
                )
            entry["commission_rate"] = rate

        amount = account.get("commissionAmount", account.get("commission_amount"))
        if amount is not None:
            if not _is_non_negative_number(amount):
                raise ValidationError(
                    f"Invalid commissionAmount for account {email}. "
                    "Commission amount must be a non-negative number."
                )
            entry["commission_amount"] = amount

        normalized.append(entry)

    return normalized


class CommissionService:
    """Writes and removes commissions for transactions."""

    def __init__(self, db: Any = None):
        self._db = db

    @property
    def db(self) -> Any:
        if self._db is None:
            from database.connection import get_firestore_client

            self._db = get_firestore_client()
        return self._db

    @property
    def commissions(self) -> Any:
        return self.db.collection(Collections.COMMISSIONS)

    async def _find_account(self, email: str) -> Any | None:
        query = self.db.collection(Collections.ACCOUNTS).where(filter=FieldFilter("email", "==", email)).limit(1)
        async for doc in query.stream():
            return doc
        return None

    async def save_commission(
        self,
        account_email: str,
        transaction_id: str,
        amount: float,
        transaction_total: float,
        commission_rate: float | None,
        total_sales_overall: float,
        net_sales: float,
        branch_id: str,
    ) -> dict[str, Any] | None:
        """
        Store one commission and add it to the account's running total.

        Returns:
            The stored commission, or None when the write failed
        """
        try:
            account = await self._find_account(account_email)
            record = CommissionRecord(
                id=str(uuid4()),
                account_id=account.id if account else account_email,
                account_email=account_email,
                transaction_id=transaction_id,
                branch_id=branch_id,
                amount=amount,
                transaction_total=transaction_total,
                commission_rate=commission_rate,
                total_sales_overall=total_sales_overall,
                net_sales=net_sales,
                date_created=format_timestamp(),
            )
            await self.commissions.document(record.id).set(record.to_document())

            if account is None:
                logger.warning(
                    f"Commission {record.id} saved for unknown account {account_email}",
                    extra={"transaction_id": transaction_id},
                )
                return record.to_document()

            data = account.to_dict() or {}
            await account.reference.update(
                {
                    "commissions": [
                        *(data.get("commissions") or []),
                        {
                            "id": record.id,
                            "amount": amount,
                            "transaction_id": transaction_id,
                            "date": record.date_created,
                        },
                    ],
                    "total_commissions": round(float(data.get("total_commissions") or 0) + amount, 2),
                }
            )
        except Exception as e:
            logger.error(
                f"Error saving commission for {account_email}: {e}",
                extra={"transaction_id": transaction_id},
            )
            return None

        logger.info(
            f"Commission {amount} saved for {account_email}",
            extra={"transaction_id": transaction_id, "branch_id": branch_id},
        )
        return record.to_document()

    async def remove_commissions_for_transaction(self, transaction_id: str) -> int:
        """
        Delete a transaction's commissions and subtract them from their accounts.

        Returns:
            Number of commissions removed (0 on failure)
        """
        try:
            query = self.commissions.where(filter=FieldFilter("transaction_id", "==", transaction_id))
            docs = [doc async for doc in query.stream()]
            if not docs:
                return 0

            batch = self.db.batch()
            removed_by_account: dict[str, float] = {}
            for doc in docs:
                data = doc.to_dict() or {}
                batch.delete(doc.reference)
                account_id = data.get("account_id")
                if account_id:
                    removed_by_account[account_id] = removed_by_account.get(account_id, 0) + float(
                        data.get("amount") or 0
                    )
            await batch.commit()

            for account_id, removed in removed_by_account.items():
                ref = self.db.collection(Collections.ACCOUNTS).document(account_id)
                snapshot = await ref.get()
                if not snapshot.exists:
                    continue
                data = snapshot.to_dict() or {}
                await ref.update(
                    {
                        "commissions": [
                            c for c in data.get("commissions") or [] if c.get("transaction_id") != transaction_id
                        ],
                        "total_commissions": round(float(data.get("total_commissions") or 0) - removed, 2),
                    }
                )
        except Exception as e:
            logger.error(
                f"Error removing commissions for transaction {transaction_id}: {e}",
                extra={"transaction_id": transaction_id},
            )
            return 0

        logger.info(
            f"Removed {len(docs)} commissions for voided transaction",
            extra={"transaction_id": transaction_id},
        )
        return len(docs)
