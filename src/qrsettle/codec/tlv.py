"""Tag-length-value encoding used by EMV merchant-presented QR payloads.

Each field is `TT LL VALUE` where the tag and the length are two ASCII
digits and the length counts the bytes of VALUE.
"""

from __future__ import annotations

from typing import Final

from ..domain.errors import PaymentValidationError, TLVDecodeError


TAG_WIDTH: Final[int] = 2
LENGTH_WIDTH: Final[int] = 2
MAX_VALUE_LENGTH: Final[int] = 99


def _is_ascii_digits(value: str) -> bool:
    return value.isascii() and value.isdigit()


def _is_printable_ascii(value: str) -> bool:
    return all(0x20 <= ord(ch) < 0x7F for ch in value)


def format_tlv(tag: str, value: str) -> str:
    """Encode a single field."""
    if len(tag) != TAG_WIDTH or not _is_ascii_digits(tag):
        raise PaymentValidationError(f"TLV tag must be two digits, got {tag!r}")
    if not _is_printable_ascii(value):
        raise PaymentValidationError(
            f"TLV value for tag {tag} must be printable ASCII"
        )
    if len(value) > MAX_VALUE_LENGTH:
        raise PaymentValidationError(
            f"TLV value for tag {tag} is {len(value)} bytes, max is {MAX_VALUE_LENGTH}"
        )
    return f"{tag}{len(value):02d}{value}"


def parse_tlv(data: str) -> list[tuple[str, str]]:
    """Split a TLV stream into ordered (tag, value) pairs.

    Raises:
        TLVDecodeError: If a header is truncated, a length is not numeric,
            or a value runs past the end of the stream.
    """
    fields: list[tuple[str, str]] = []
    pos = 0
    header = TAG_WIDTH + LENGTH_WIDTH
    while pos < len(data):
        if pos + header > len(data):
            raise TLVDecodeError(f"Truncated TLV header at offset {pos}")
        tag = data[pos : pos + TAG_WIDTH]
        raw_length = data[pos + TAG_WIDTH : pos + header]
        if not _is_ascii_digits(tag) or not _is_ascii_digits(raw_length):
            raise TLVDecodeError(f"Malformed TLV header {data[pos:pos + header]!r}")
        length = int(raw_length)
        start = pos + header
        end = start + length
        if end > len(data):
            raise TLVDecodeError(f"TLV value for tag {tag} runs past end of payload")
        fields.append((tag, data[start:end]))
        pos = end
    return fields
