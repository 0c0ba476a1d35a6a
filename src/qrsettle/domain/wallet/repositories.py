"""Wallet domain repositories: PaymentTransactionRepository and WalletRepository."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from .entities import (
    Currency,
    PaymentTransaction,
    TransactionStatus,
    UserBalance,
    WalletHistoryEntry,
)


@dataclass(frozen=True)
class CreditOutcome:
    """Result of the atomic credit operation.

    `credited` is True only for the single call that moved the balance.
    `status` is the transaction status observed inside the atomic operation.
    """

    credited: bool
    status: TransactionStatus
    balance: Optional[Decimal]
    transaction: Optional[PaymentTransaction]


class PaymentTransactionRepository(ABC):
    """Durable ledger of payment transactions."""

    @abstractmethod
    async def create(self, transaction: PaymentTransaction) -> PaymentTransaction:
        """Insert a new pending transaction. Raises PersistenceError on failure."""
        pass

    @abstractmethod
    async def attach_payload(
        self,
        transaction_id: UUID,
        qr_code_data: str,
        correlation_hash: str,
        *,
        now: datetime,
    ) -> PaymentTransaction:
        """Set the encoded payload and correlation hash exactly once."""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: UUID) -> Optional[PaymentTransaction]:
        pass

    @abstractmethod
    async def get_by_correlation_hash(
        self, correlation_hash: str
    ) -> Optional[PaymentTransaction]:
        pass

    @abstractmethod
    async def get_all_for_user(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> List[PaymentTransaction]:
        pass

    @abstractmethod
    async def get_expired_pending_ids(self, now: datetime, limit: int = 100) -> List[str]:
        """Ids of pending transactions whose expiry lies before `now`."""
        pass

    @abstractmethod
    async def transition(
        self,
        transaction_id: UUID,
        target: TransactionStatus,
        *,
        now: datetime,
    ) -> Optional[PaymentTransaction]:
        """Move a pending transaction to a terminal status.

        Returns the stored transaction (unchanged when it was already
        terminal), or None when it does not exist.
        """
        pass


class WalletRepository(ABC):
    """Balances and wallet history, mutated only through `credit`."""

    @abstractmethod
    async def get_balance(self, user_id: str, currency: Currency) -> UserBalance:
        pass

    @abstractmethod
    async def get_history(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> List[WalletHistoryEntry]:
        pass

    @abstractmethod
    async def credit(
        self,
        transaction: PaymentTransaction,
        history_entry: WalletHistoryEntry,
        *,
        now: datetime,
        external_transaction_id: Optional[str] = None,
    ) -> CreditOutcome:
        """Atomically settle `transaction` and add its amount to the balance.

        The stored row is re-read inside the atomic operation; the passed
        transaction only provides the immutable keys (id, user, currency).
        """
        pass
