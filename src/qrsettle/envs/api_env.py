from __future__ import annotations

import base64
import os
from decimal import Decimal
from typing import Optional

from cryptography.hazmat.primitives import serialization
from pydantic import BaseModel, field_validator, model_validator

PRODUCTION = "production"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    database_url: str

    api_host: str
    api_port: int
    api_debug: bool
    api_workers: int
    api_cors_origins: list[str]

    app_name: str
    app_version: str
    environment: str

    bakong_api_base_url: str
    bakong_khqr_api_key: Optional[str] = None
    bakong_merchant_account: Optional[str] = None
    merchant_city: str
    store_label: Optional[str] = None
    terminal_label: Optional[str] = None

    max_topup_amount: Decimal
    transaction_ttl_seconds: int
    request_timeout_seconds: float
    verification_max_attempts: int
    verification_base_delay_seconds: float
    # Deployment-time constant; never taken from a request
    strict_payment_verification: bool
    expiry_sweep_interval_seconds: float

    auth_public_key_der_b64: Optional[str] = None

    @field_validator("auth_public_key_der_b64")
    @classmethod
    def validate_auth_public_key(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        try:
            serialization.load_der_public_key(base64.b64decode(v, validate=True))
        except Exception as e:
            raise ValueError(f"Invalid auth public key DER: {e}") from e
        return v

    @field_validator("max_topup_amount")
    @classmethod
    def validate_max_topup_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Maximum top-up amount must be positive")
        return v

    @field_validator("verification_max_attempts")
    @classmethod
    def validate_verification_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("At least one verification attempt is required")
        return v

    @model_validator(mode="after")
    def validate_deployment(self) -> "Settings":
        if self.request_timeout_seconds >= self.transaction_ttl_seconds:
            raise ValueError(
                "Request timeout must be shorter than the transaction expiry window"
            )
        if (
            self.environment.lower() == PRODUCTION
            and not self.strict_payment_verification
        ):
            raise ValueError(
                "Strict payment verification cannot be disabled in production"
            )
        return self


def get_settings() -> Settings:
    api_cors_origins_str = os.environ.get("QRSETTLE_API_CORS_ORIGINS", "*")

    return Settings(
        database_url=os.environ.get(
            "QRSETTLE_DATABASE_URL", "redis://localhost:6379/0"
        ),
        api_host=os.environ.get("QRSETTLE_API_HOST", "0.0.0.0"),
        api_port=int(os.environ.get("QRSETTLE_API_PORT", "8000")),
        api_debug=_env_bool("QRSETTLE_API_DEBUG", False),
        api_workers=int(os.environ.get("QRSETTLE_API_WORKERS", "1")),
        api_cors_origins=api_cors_origins_str.split(","),
        app_name=os.environ.get("QRSETTLE_APP_NAME", "QRSettle"),
        app_version=os.environ.get("QRSETTLE_APP_VERSION", "0.1.0"),
        environment=os.environ.get("QRSETTLE_ENVIRONMENT", PRODUCTION),
        bakong_api_base_url=os.environ.get(
            "BAKONG_API_BASE_URL", "https://api-bakong.nbc.gov.kh"
        ),
        bakong_khqr_api_key=os.environ.get("BAKONG_KHQR_API_KEY"),
        bakong_merchant_account=os.environ.get("BAKONG_MERCHANT_ACCOUNT"),
        merchant_city=os.environ.get("QRSETTLE_MERCHANT_CITY", "Phnom Penh"),
        store_label=os.environ.get("QRSETTLE_STORE_LABEL", "KHMERZOON"),
        terminal_label=os.environ.get("QRSETTLE_TERMINAL_LABEL", "Wallet Topup"),
        max_topup_amount=Decimal(os.environ.get("QRSETTLE_MAX_TOPUP_AMOUNT", "10000")),
        transaction_ttl_seconds=int(
            os.environ.get("QRSETTLE_TRANSACTION_TTL_SECONDS", "900")
        ),
        request_timeout_seconds=float(
            os.environ.get("QRSETTLE_REQUEST_TIMEOUT_SECONDS", "10")
        ),
        verification_max_attempts=int(
            os.environ.get("QRSETTLE_VERIFICATION_MAX_ATTEMPTS", "3")
        ),
        verification_base_delay_seconds=float(
            os.environ.get("QRSETTLE_VERIFICATION_BASE_DELAY_SECONDS", "1")
        ),
        strict_payment_verification=_env_bool(
            "QRSETTLE_STRICT_PAYMENT_VERIFICATION", True
        ),
        expiry_sweep_interval_seconds=float(
            os.environ.get("QRSETTLE_EXPIRY_SWEEP_INTERVAL_SECONDS", "60")
        ),
        auth_public_key_der_b64=os.environ.get("AUTH_PUBLIC_KEY_DER_B64"),
    )
