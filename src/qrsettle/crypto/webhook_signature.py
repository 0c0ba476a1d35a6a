"""Signature scheme used by the settlement authority for webhook bodies.

The signature is the lowercase hex SHA-256 of the raw body followed by the
shared API key.
"""

from __future__ import annotations

import hmac

from cryptography.hazmat.primitives import hashes


def compute_webhook_signature(body: bytes, api_key: str) -> str:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(body)
    digest.update(api_key.encode("utf-8"))
    return digest.finalize().hex()


def verify_webhook_signature(body: bytes, signature: str, api_key: str) -> bool:
    if not signature or not api_key or not signature.isascii():
        return False
    expected = compute_webhook_signature(body, api_key)
    return hmac.compare_digest(expected, signature.strip().lower())
