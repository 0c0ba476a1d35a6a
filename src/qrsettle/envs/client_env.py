from __future__ import annotations

import os
from decimal import Decimal
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

from ..domain.wallet.entities import Currency


class Settings(BaseModel):
    api_base_url: str
    bearer_token: str
    amount: Decimal
    currency: Currency
    poll_interval_seconds: float

    @field_validator("api_base_url")
    @classmethod
    def validate_api_base_url(cls, v: str) -> str:
        if not v:
            raise ValueError("API base URL cannot be empty")
        parsed = urlparse(v)
        if parsed.scheme not in {"http", "https"}:
            raise ValueError("API base URL must start with http:// or https://")
        if not parsed.netloc:
            raise ValueError("API base URL must include a host")
        return v

    @field_validator("bearer_token")
    @classmethod
    def validate_bearer_token(cls, v: str) -> str:
        if not v:
            raise ValueError("Bearer token cannot be empty")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Poll interval must be positive")
        return v


def get_settings() -> Settings:
    return Settings(
        api_base_url=os.environ.get(
            "QRSETTLE_CLIENT_API_BASE_URL", "http://localhost:8000/api/v1"
        ),
        bearer_token=os.environ.get("QRSETTLE_CLIENT_BEARER_TOKEN", ""),
        amount=Decimal(os.environ.get("QRSETTLE_CLIENT_AMOUNT", "10.00")),
        currency=Currency(os.environ.get("QRSETTLE_CLIENT_CURRENCY", "USD")),
        poll_interval_seconds=float(
            os.environ.get("QRSETTLE_CLIENT_POLL_INTERVAL_SECONDS", "3")
        ),
    )
