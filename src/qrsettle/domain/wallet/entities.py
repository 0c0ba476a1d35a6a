"""Wallet domain entities: PaymentTransaction, UserBalance and WalletHistoryEntry."""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_serializer, field_validator


CENT = Decimal("0.01")
BILL_NUMBER_LENGTH = 20
TRANSACTION_TTL = timedelta(minutes=15)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def quantize_amount(value: Decimal) -> Decimal:
    """Round a money amount to two fraction digits."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    return int(quantize_amount(value) * 100)


def from_minor_units(value: int) -> Decimal:
    return quantize_amount(Decimal(value) / 100)


class Currency(str, enum.Enum):
    """Supported settlement currencies."""

    USD = "USD"
    KHR = "KHR"

    @property
    def numeric_code(self) -> str:
        """ISO 4217 numeric code used in the QR payload."""
        return _NUMERIC_CODES[self]

    @classmethod
    def from_numeric_code(cls, code: str) -> "Currency":
        for currency, numeric in _NUMERIC_CODES.items():
            if numeric == code:
                return currency
        raise ValueError(f"Unsupported currency numeric code: {code}")


_NUMERIC_CODES = {Currency.USD: "840", Currency.KHR: "116"}


class TransactionStatus(str, enum.Enum):
    """Lifecycle of a payment transaction. Only `pending` is non-terminal."""

    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class PaymentTransaction(BaseModel):
    """One attempt to top up a wallet through a QR payment."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    currency: Currency = Currency.USD
    status: TransactionStatus = TransactionStatus.PENDING
    correlation_hash: Optional[str] = None
    qr_code_data: Optional[str] = None
    external_transaction_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    def model_post_init(self, __context: object) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + TRANSACTION_TTL

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return quantize_amount(v)

    @field_serializer("id")
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"

    @field_serializer("created_at", "expires_at")
    def serialize_timestamps(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("updated_at", "settled_at")
    def serialize_optional_timestamps(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    @property
    def bill_number(self) -> str:
        """Reference printed into the QR payload; ties the payment back to this row."""
        return self.id.hex[:BILL_NUMBER_LENGTH]

    def is_expired(self, now: datetime) -> bool:
        assert self.expires_at is not None
        return now > self.expires_at


class UserBalance(BaseModel):
    """Spendable wallet balance of one user in one currency."""

    user_id: str
    currency: Currency
    balance: Decimal = Decimal("0.00")

    @field_serializer("balance")
    def serialize_balance(self, value: Decimal) -> str:
        return f"{value:.2f}"


class WalletHistoryEntry(BaseModel):
    """Audit row written alongside every balance credit."""

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    transaction_id: UUID
    amount: Decimal
    currency: Currency
    transaction_type: str = "topup"
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_serializer("id", "transaction_id")
    def serialize_ids(self, value: UUID) -> str:
        return str(value)

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()
