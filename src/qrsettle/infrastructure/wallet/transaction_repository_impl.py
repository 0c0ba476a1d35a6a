"""PaymentTransaction repository implementation over a storage abstraction."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from ...domain.errors import (
    InvalidTransactionStateError,
    PersistenceError,
    TransactionNotFoundError,
)
from ...domain.wallet.entities import PaymentTransaction, TransactionStatus
from ...domain.wallet.repositories import PaymentTransactionRepository
from ..storage import KeyValueStore

PENDING_INDEX_KEY = "payment_transactions:pending"


def transaction_key(transaction_id: UUID | str) -> str:
    return f"payment_transaction:{transaction_id}"


def correlation_hash_key(correlation_hash: str) -> str:
    return f"payment_transaction:hash:{correlation_hash}"


def user_index_key(user_id: str) -> str:
    return f"payment_transactions:user:{user_id}"


def parse_script_result(result: Any) -> tuple[int, list[Any]]:
    """Split a `{code, ...}` script reply into the code and the rest."""
    if not result:
        raise PersistenceError("Storage script returned an empty result")
    code = int(result[0])
    rest = [value if value != "" else None for value in result[1:]]
    return code, rest


class PaymentTransactionRepositoryImpl(PaymentTransactionRepository):
    """PaymentTransaction repository using a KeyValueStore.

    Keys:
      - payment_transaction:{id} -> PaymentTransaction JSON
      - payment_transaction:hash:{correlation_hash} -> id
      - payment_transactions:user:{user_id} -> zset of ids scored by created_at
      - payment_transactions:pending -> zset of ids scored by expires_at
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        assert transaction.expires_at is not None
        result = await self.store.run_script(
            "create_transaction",
            keys=[
                transaction_key(transaction.id),
                user_index_key(transaction.user_id),
                PENDING_INDEX_KEY,
            ],
            args=[
                transaction.model_dump_json(),
                str(transaction.id),
                str(transaction.created_at.timestamp()),
                str(transaction.expires_at.timestamp()),
            ],
        )
        code, _ = parse_script_result(result)
        if code != 1:
            raise PersistenceError(f"Transaction {transaction.id} already exists")
        return transaction

    async def attach_payload(
        self,
        transaction_id: UUID,
        qr_code_data: str,
        correlation_hash: str,
        *,
        now: datetime,
    ) -> PaymentTransaction:
        result = await self.store.run_script(
            "attach_payload",
            keys=[
                transaction_key(transaction_id),
                correlation_hash_key(correlation_hash),
            ],
            args=[qr_code_data, correlation_hash, now.isoformat()],
        )
        code, (payload,) = parse_script_result(result)
        if code == 2:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        if code == 0:
            raise PersistenceError(
                f"Transaction {transaction_id} already has a payload attached"
            )
        current = PaymentTransaction.model_validate_json(payload)
        if code == 3:
            raise InvalidTransactionStateError(
                str(transaction_id), current.status.value
            )
        return current

    async def get_by_id(self, transaction_id: UUID) -> Optional[PaymentTransaction]:
        data = await self.store.get(transaction_key(transaction_id))
        if not data:
            return None
        return PaymentTransaction.model_validate_json(data)

    async def get_by_correlation_hash(
        self, correlation_hash: str
    ) -> Optional[PaymentTransaction]:
        transaction_id = await self.store.get(correlation_hash_key(correlation_hash))
        if not transaction_id:
            return None
        return await self.get_by_id(UUID(transaction_id))

    async def get_all_for_user(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> List[PaymentTransaction]:
        ids: list[str] = await self.store.zrevrange(
            user_index_key(user_id), skip, skip + limit - 1
        )
        rows = await self.store.mget([transaction_key(tx_id) for tx_id in ids])
        return [PaymentTransaction.model_validate_json(row) for row in rows if row]

    async def get_expired_pending_ids(
        self, now: datetime, limit: int = 100
    ) -> List[str]:
        return await self.store.zrangebyscore(
            PENDING_INDEX_KEY, float("-inf"), now.timestamp(), limit=limit
        )

    async def transition(
        self,
        transaction_id: UUID,
        target: TransactionStatus,
        *,
        now: datetime,
    ) -> Optional[PaymentTransaction]:
        # Completion goes through the credit script only
        if target not in (TransactionStatus.EXPIRED, TransactionStatus.FAILED):
            raise ValueError(f"Cannot transition a transaction to {target.value}")

        result = await self.store.run_script(
            "transition_status",
            keys=[transaction_key(transaction_id), PENDING_INDEX_KEY],
            args=[target.value, now.isoformat()],
        )
        code, (payload,) = parse_script_result(result)
        if code == 2:
            return None
        return PaymentTransaction.model_validate_json(payload)
