"""Exactly-once balance credit for settled transactions."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from ....domain.errors import (
    AlreadySettledError,
    InvalidTransactionStateError,
    TransactionNotFoundError,
)
from ....domain.wallet.entities import (
    Clock,
    TransactionStatus,
    WalletHistoryEntry,
    utc_now,
)
from ....domain.wallet.repositories import (
    PaymentTransactionRepository,
    WalletRepository,
)
from ..dtos import CreditResultDTO

logger = logging.getLogger(__name__)

TOPUP_DESCRIPTION = "Wallet top-up via KHQR"


class BalanceCreditService:
    """Service that moves settled funds into the user's wallet.

    The check-and-set runs inside the storage layer, so concurrent callers
    for one transaction mutate the balance exactly once.
    """

    def __init__(
        self,
        transaction_repository: PaymentTransactionRepository,
        wallet_repository: WalletRepository,
        *,
        clock: Clock = utc_now,
    ):
        self.transaction_repository = transaction_repository
        self.wallet_repository = wallet_repository
        self.clock = clock

    async def credit(
        self,
        transaction_id: UUID,
        external_transaction_id: Optional[str] = None,
        *,
        require_fresh: bool = False,
    ) -> CreditResultDTO:
        """Credit a pending transaction.

        A transaction that is already completed is reported as an idempotent
        success, unless `require_fresh` is set, in which case
        AlreadySettledError is raised.

        Raises:
            TransactionNotFoundError: The transaction does not exist.
            InvalidTransactionStateError: The transaction expired or failed.
            AlreadySettledError: Only with `require_fresh=True`.
        """
        transaction = await self.transaction_repository.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

        now = self.clock()
        history_entry = WalletHistoryEntry(
            user_id=transaction.user_id,
            transaction_id=transaction.id,
            amount=transaction.amount,
            currency=transaction.currency,
            description=TOPUP_DESCRIPTION,
            created_at=now,
        )
        outcome = await self.wallet_repository.credit(
            transaction,
            history_entry,
            now=now,
            external_transaction_id=external_transaction_id,
        )

        if outcome.credited:
            logger.info(
                "Credited %s %s to user %s for transaction %s",
                transaction.amount,
                transaction.currency.value,
                transaction.user_id,
                transaction.id,
            )
        elif outcome.status is TransactionStatus.COMPLETED:
            if require_fresh:
                raise AlreadySettledError(str(transaction.id), outcome.balance)
            logger.info("Transaction %s was already credited", transaction.id)
        else:
            raise InvalidTransactionStateError(
                str(transaction.id), outcome.status.value
            )

        return CreditResultDTO(
            transaction_id=transaction.id,
            credited=outcome.credited,
            status=TransactionStatus.COMPLETED,
            new_balance=outcome.balance,
        )
