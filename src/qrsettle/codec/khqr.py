"""KHQR (EMV merchant-presented QR) payload builder and decoder."""

from __future__ import annotations

from decimal import Decimal
from typing import Final, Optional

from pydantic import BaseModel, Field, field_validator

from ..domain.errors import (
    InvalidMerchantAccountError,
    PaymentValidationError,
    TLVDecodeError,
)
from ..domain.wallet.entities import BILL_NUMBER_LENGTH, Currency, quantize_amount
from .checksum import crc16
from .tlv import format_tlv, parse_tlv


PAYLOAD_FORMAT_INDICATOR: Final[str] = "01"
DYNAMIC_INITIATION_METHOD: Final[str] = "12"
MERCHANT_CATEGORY_CODE: Final[str] = "5999"
COUNTRY_CODE: Final[str] = "KH"
CHECKSUM_LENGTH: Final[str] = "04"

TAG_PAYLOAD_FORMAT: Final[str] = "00"
TAG_INITIATION_METHOD: Final[str] = "01"
TAG_MERCHANT_ACCOUNT: Final[str] = "29"
TAG_MERCHANT_CATEGORY: Final[str] = "52"
TAG_CURRENCY: Final[str] = "53"
TAG_AMOUNT: Final[str] = "54"
TAG_COUNTRY: Final[str] = "58"
TAG_MERCHANT_NAME: Final[str] = "59"
TAG_MERCHANT_CITY: Final[str] = "60"
TAG_ADDITIONAL_DATA: Final[str] = "62"
TAG_CHECKSUM: Final[str] = "63"

SUBTAG_ACCOUNT_ID: Final[str] = "00"
SUBTAG_BILL_NUMBER: Final[str] = "01"
SUBTAG_STORE_LABEL: Final[str] = "03"
SUBTAG_TERMINAL_LABEL: Final[str] = "07"

ACCOUNT_SEPARATOR: Final[str] = "@"
PLACEHOLDER_TOKENS: Final[tuple[str, ...]] = ("PLACEHOLDER", "TO_BE_REPLACED")

CHECKSUM_PREFIX: Final[str] = TAG_CHECKSUM + CHECKSUM_LENGTH


class MerchantAccount(BaseModel):
    """A merchant identifier of the form `name@routing`."""

    identifier: str
    name: str
    routing: str

    @classmethod
    def parse(cls, identifier: Optional[str]) -> "MerchantAccount":
        if not identifier:
            raise InvalidMerchantAccountError("Merchant account is not configured")
        if any(token in identifier for token in PLACEHOLDER_TOKENS):
            raise InvalidMerchantAccountError(
                "Merchant account still contains a placeholder value"
            )
        name, sep, routing = identifier.partition(ACCOUNT_SEPARATOR)
        if not sep or not name or not routing:
            raise InvalidMerchantAccountError(
                "Invalid merchant account format. Expected format: name@bank"
            )
        return cls(identifier=identifier, name=name, routing=routing)

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ").upper()


class PaymentRequest(BaseModel):
    """Semantic content of a QR payment payload."""

    merchant_account: str
    merchant_name: str = Field(..., min_length=1)
    merchant_city: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    currency: Currency
    bill_number: str = Field(..., min_length=1, max_length=BILL_NUMBER_LENGTH)
    store_label: Optional[str] = None
    terminal_label: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return quantize_amount(v)

    @field_validator("store_label", "terminal_label")
    @classmethod
    def validate_label(cls, v: Optional[str]) -> Optional[str]:
        # An empty label is not encoded, so it is the same as no label
        return v or None

    @classmethod
    def for_merchant(
        cls,
        merchant: MerchantAccount,
        *,
        merchant_city: str,
        amount: Decimal,
        currency: Currency,
        bill_number: str,
        store_label: Optional[str] = None,
        terminal_label: Optional[str] = None,
    ) -> "PaymentRequest":
        return cls(
            merchant_account=merchant.identifier,
            merchant_name=merchant.display_name,
            merchant_city=merchant_city,
            amount=amount,
            currency=currency,
            bill_number=bill_number,
            store_label=store_label,
            terminal_label=terminal_label,
        )


def format_amount(amount: Decimal) -> str:
    """Plain decimal string with exactly two fraction digits."""
    return f"{quantize_amount(amount):.2f}"


def build_payload(req: PaymentRequest) -> str:
    """Encode a payment request as a checksummed KHQR string."""
    MerchantAccount.parse(req.merchant_account)

    parts = [
        format_tlv(TAG_PAYLOAD_FORMAT, PAYLOAD_FORMAT_INDICATOR),
        format_tlv(TAG_INITIATION_METHOD, DYNAMIC_INITIATION_METHOD),
        format_tlv(
            TAG_MERCHANT_ACCOUNT,
            format_tlv(SUBTAG_ACCOUNT_ID, req.merchant_account),
        ),
        format_tlv(TAG_MERCHANT_CATEGORY, MERCHANT_CATEGORY_CODE),
        format_tlv(TAG_CURRENCY, req.currency.numeric_code),
        format_tlv(TAG_AMOUNT, format_amount(req.amount)),
        format_tlv(TAG_COUNTRY, COUNTRY_CODE),
        format_tlv(TAG_MERCHANT_NAME, req.merchant_name),
        format_tlv(TAG_MERCHANT_CITY, req.merchant_city),
    ]

    additional = format_tlv(SUBTAG_BILL_NUMBER, req.bill_number)
    if req.store_label:
        additional += format_tlv(SUBTAG_STORE_LABEL, req.store_label)
    if req.terminal_label:
        additional += format_tlv(SUBTAG_TERMINAL_LABEL, req.terminal_label)
    parts.append(format_tlv(TAG_ADDITIONAL_DATA, additional))

    # The checksum covers its own tag and length.
    body = "".join(parts) + CHECKSUM_PREFIX
    return body + crc16(body.encode("ascii"))


def verify_checksum(payload: str) -> bool:
    """True when the trailing CRC matches the rest of the payload."""
    if len(payload) < len(CHECKSUM_PREFIX) + 4 or not payload.isascii():
        return False
    body, checksum = payload[:-4], payload[-4:]
    if not body.endswith(CHECKSUM_PREFIX):
        return False
    return crc16(body.encode("ascii")) == checksum


class DecodedPayload(BaseModel):
    """Fields recovered from a KHQR string."""

    payload_format_indicator: str
    initiation_method: str
    merchant_category_code: str
    country_code: str
    checksum: str
    request: PaymentRequest


def decode_payload(payload: str) -> DecodedPayload:
    """Decode a KHQR string produced by `build_payload`.

    Raises:
        TLVDecodeError: If the stream is malformed, a required field is
            missing, or the checksum does not validate.
    """
    if not verify_checksum(payload):
        raise TLVDecodeError("Payload checksum does not validate")

    fields = dict(parse_tlv(payload))
    required = (
        TAG_PAYLOAD_FORMAT,
        TAG_INITIATION_METHOD,
        TAG_MERCHANT_ACCOUNT,
        TAG_MERCHANT_CATEGORY,
        TAG_CURRENCY,
        TAG_AMOUNT,
        TAG_COUNTRY,
        TAG_MERCHANT_NAME,
        TAG_MERCHANT_CITY,
        TAG_ADDITIONAL_DATA,
        TAG_CHECKSUM,
    )
    missing = [tag for tag in required if tag not in fields]
    if missing:
        raise TLVDecodeError(f"Payload is missing tags: {', '.join(missing)}")

    account_info = dict(parse_tlv(fields[TAG_MERCHANT_ACCOUNT]))
    additional = dict(parse_tlv(fields[TAG_ADDITIONAL_DATA]))
    if SUBTAG_ACCOUNT_ID not in account_info:
        raise TLVDecodeError("Merchant account information has no account id")
    if SUBTAG_BILL_NUMBER not in additional:
        raise TLVDecodeError("Additional data has no bill number")

    try:
        request = PaymentRequest(
            merchant_account=account_info[SUBTAG_ACCOUNT_ID],
            merchant_name=fields[TAG_MERCHANT_NAME],
            merchant_city=fields[TAG_MERCHANT_CITY],
            amount=Decimal(fields[TAG_AMOUNT]),
            currency=Currency.from_numeric_code(fields[TAG_CURRENCY]),
            bill_number=additional[SUBTAG_BILL_NUMBER],
            store_label=additional.get(SUBTAG_STORE_LABEL),
            terminal_label=additional.get(SUBTAG_TERMINAL_LABEL),
        )
    except (ValueError, ArithmeticError) as e:
        raise TLVDecodeError(f"Invalid payload field: {e}") from e

    return DecodedPayload(
        payload_format_indicator=fields[TAG_PAYLOAD_FORMAT],
        initiation_method=fields[TAG_INITIATION_METHOD],
        merchant_category_code=fields[TAG_MERCHANT_CATEGORY],
        country_code=fields[TAG_COUNTRY],
        checksum=fields[TAG_CHECKSUM],
        request=request,
    )


def ensure_publishable(payload: str) -> str:
    """Reject payloads that must never be shown to a payer."""
    if not payload:
        raise PaymentValidationError("Generated payload is empty")
    if any(token in payload for token in PLACEHOLDER_TOKENS):
        raise PaymentValidationError(
            "Failed to generate valid QR code. Please check merchant configuration."
        )
    return payload
