"""Wallet balance and history repository over a storage abstraction."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ...domain.errors import TransactionNotFoundError
from ...domain.wallet.entities import (
    Currency,
    PaymentTransaction,
    TransactionStatus,
    UserBalance,
    WalletHistoryEntry,
    from_minor_units,
)
from ...domain.wallet.repositories import CreditOutcome, WalletRepository
from ..storage import KeyValueStore
from .transaction_repository_impl import (
    PENDING_INDEX_KEY,
    parse_script_result,
    transaction_key,
)


def balance_key(user_id: str, currency: Currency) -> str:
    return f"wallet:balance:{user_id}:{currency.value}"


def history_key(user_id: str) -> str:
    return f"wallet:history:{user_id}"


class WalletRepositoryImpl(WalletRepository):
    """Balances are integer minor units, so the credit script can INCRBY them."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_balance(self, user_id: str, currency: Currency) -> UserBalance:
        raw = await self.store.get(balance_key(user_id, currency))
        return UserBalance(
            user_id=user_id,
            currency=currency,
            balance=from_minor_units(int(raw or 0)),
        )

    async def get_history(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> List[WalletHistoryEntry]:
        rows: list[str] = await self.store.zrevrange(
            history_key(user_id), skip, skip + limit - 1
        )
        return [WalletHistoryEntry.model_validate_json(row) for row in rows]

    async def credit(
        self,
        transaction: PaymentTransaction,
        history_entry: WalletHistoryEntry,
        *,
        now: datetime,
        external_transaction_id: Optional[str] = None,
    ) -> CreditOutcome:
        """
        Run `credit_transaction`, which re-reads the stored row and, only if it
        is still pending, completes it, increments the balance and appends the
        history entry in one atomic step.
        """
        result = await self.store.run_script(
            "credit_transaction",
            keys=[
                transaction_key(transaction.id),
                balance_key(transaction.user_id, transaction.currency),
                history_key(transaction.user_id),
                PENDING_INDEX_KEY,
            ],
            args=[
                transaction.user_id,
                transaction.currency.value,
                now.isoformat(),
                external_transaction_id or "",
                history_entry.model_dump_json(),
                str(now.timestamp()),
            ],
        )
        code, (payload, raw_balance) = parse_script_result(result)
        if code == 2:
            raise TransactionNotFoundError(f"Transaction {transaction.id} not found")

        stored = PaymentTransaction.model_validate_json(payload)
        balance = from_minor_units(int(raw_balance or 0))
        return CreditOutcome(
            credited=code == 1,
            status=stored.status if code != 1 else TransactionStatus.COMPLETED,
            balance=balance,
            transaction=stored,
        )
