"""Domain-specific exceptions."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class PaymentValidationError(ValueError):
    """Raised when a top-up request is rejected before anything is persisted."""


class InvalidMerchantAccountError(PaymentValidationError):
    """Raised when the configured merchant identifier cannot be encoded."""


class TLVDecodeError(ValueError):
    """Raised when a payload is not a well-formed TLV stream."""


class PersistenceError(Exception):
    """Raised when a ledger write is not durably stored."""


class TransactionNotFoundError(Exception):
    """Raised when a transaction is absent or owned by another user."""


class VerificationTransientError(Exception):
    """Raised when the settlement authority stayed unreachable after all retries."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class VerificationHardError(Exception):
    """Raised when the settlement authority returned an unusable response."""


class AlreadySettledError(Exception):
    """Raised when a fresh credit is required but the transaction is already completed."""

    def __init__(self, transaction_id: str, balance: Optional[Decimal] = None) -> None:
        super().__init__(f"Transaction {transaction_id} is already settled")
        self.transaction_id = transaction_id
        self.balance = balance


class InvalidTransactionStateError(Exception):
    """Raised when a credit is attempted on an expired or failed transaction."""

    def __init__(self, transaction_id: str, status: str) -> None:
        super().__init__(f"Transaction {transaction_id} is {status} and cannot be credited")
        self.transaction_id = transaction_id
        self.status = status


class InvalidWebhookSignatureError(Exception):
    """Raised when a webhook body is unsigned or its signature does not match."""
