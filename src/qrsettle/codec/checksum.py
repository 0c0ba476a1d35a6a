from __future__ import annotations

import hashlib
from typing import Final


CRC16_POLYNOMIAL: Final[int] = 0x1021
CRC16_INITIAL: Final[int] = 0xFFFF
MD5: Final[str] = "md5"


def crc16(data: bytes) -> str:
    """CRC-16/CCITT-FALSE of `data` as four upper-case hex characters.

    Polynomial 0x1021, initial register 0xFFFF, MSB-first, no final XOR.
    """
    crc = CRC16_INITIAL
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC16_POLYNOMIAL) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def correlation_hash(payload: str) -> str:
    """MD5 hex digest of an encoded payload, used as the authority lookup key."""
    return hashlib.new(
        MD5, payload.encode("ascii"), usedforsecurity=False
    ).hexdigest()
