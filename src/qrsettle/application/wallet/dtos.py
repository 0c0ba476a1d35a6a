"""Data Transfer Objects for the wallet application layer."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ...domain.wallet.entities import Currency, TransactionStatus
from ..shared.serializers import MoneySerializersMixin


# Top-up DTOs
class GenerateTopupRequestDTO(BaseModel):
    """Amount range is enforced by the service so that it maps to a 400."""

    amount: Decimal
    currency: Currency = Currency.USD


class GenerateTopupResponseDTO(MoneySerializersMixin, BaseModel):
    """QR payload handed to the payer together with its correlation hash."""

    transaction_id: UUID
    qr_code: str
    amount: Decimal
    currency: Currency
    expires_at: datetime
    md5: str


class TopupStatusResponseDTO(MoneySerializersMixin, BaseModel):
    transaction_id: UUID
    status: TransactionStatus
    amount: Decimal
    currency: Currency
    new_balance: Optional[Decimal] = None
    message: Optional[str] = None


class PaymentTransactionResponseDTO(MoneySerializersMixin, BaseModel):
    id: UUID
    amount: Decimal
    currency: Currency
    status: TransactionStatus
    correlation_hash: Optional[str] = None
    external_transaction_id: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    settled_at: Optional[datetime] = None


# Wallet DTOs
class BalanceResponseDTO(MoneySerializersMixin, BaseModel):
    user_id: str
    currency: Currency
    balance: Decimal


class WalletHistoryEntryResponseDTO(MoneySerializersMixin, BaseModel):
    id: UUID
    transaction_id: UUID
    amount: Decimal
    currency: Currency
    transaction_type: str
    description: Optional[str] = None
    created_at: datetime


class CreditResultDTO(MoneySerializersMixin, BaseModel):
    """Outcome of a credit attempt; `credited` is False for an idempotent replay."""

    transaction_id: UUID
    credited: bool
    status: TransactionStatus
    new_balance: Optional[Decimal] = None


# Settlement authority DTOs
class CheckTransactionRequestDTO(BaseModel):
    hash: str


class CheckTransactionDataDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    status: Optional[str] = None
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")


class CheckTransactionResponseDTO(BaseModel):
    """Body returned by `check_transaction_by_hash`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    response_code: int = Field(alias="responseCode")
    response_message: Optional[str] = Field(default=None, alias="responseMessage")
    data: Optional[CheckTransactionDataDTO] = None


# Webhook DTOs
class BakongWebhookDTO(BaseModel):
    """Settlement notification pushed by the authority."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str = Field(..., min_length=1)
    status: str = Field(..., min_length=1)
    response_code: Optional[int] = Field(default=None, alias="responseCode")
    response_message: Optional[str] = Field(default=None, alias="responseMessage")
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")


class WebhookResultDTO(MoneySerializersMixin, BaseModel):
    success: bool = True
    message: str
    transaction_id: Optional[UUID] = None
    status: Optional[TransactionStatus] = None
    new_balance: Optional[Decimal] = None
