"""Shared Pydantic serializers used across DTOs."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import field_serializer


class DatetimeSerializerMixin:
    """Serialize common datetime fields consistently."""

    @field_serializer("created_at", "expires_at", check_fields=False)
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()

    @field_serializer("settled_at", check_fields=False)
    def serialize_settled_at(self, value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None


class MoneySerializersMixin(DatetimeSerializerMixin):
    """Money is rendered as a fixed two-decimal string, never a float.

    Uses `check_fields=False` so the mixin can be used by models that don't
    declare all fields (e.g. a status response without `new_balance`).
    """

    @field_serializer("transaction_id", "id", check_fields=False)
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("amount", "balance", check_fields=False)
    def serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"

    @field_serializer("new_balance", check_fields=False)
    def serialize_new_balance(self, value: Optional[Decimal]) -> Optional[str]:
        return f"{value:.2f}" if value is not None else None
