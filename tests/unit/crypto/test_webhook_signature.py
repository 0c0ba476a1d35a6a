"""Unit tests for webhook body signatures."""

import hashlib

from qrsettle.crypto.webhook_signature import (
    compute_webhook_signature,
    verify_webhook_signature,
)

BODY = b'{"hash":"abc","status":"COMPLETED","responseCode":0}'
API_KEY = "secret-key"


def test_signature_is_sha256_of_body_and_key() -> None:
    expected = hashlib.sha256(BODY + API_KEY.encode()).hexdigest()
    assert compute_webhook_signature(BODY, API_KEY) == expected


def test_matching_signature_verifies() -> None:
    signature = compute_webhook_signature(BODY, API_KEY)
    assert verify_webhook_signature(BODY, signature, API_KEY)


def test_uppercase_signature_verifies() -> None:
    signature = compute_webhook_signature(BODY, API_KEY).upper()
    assert verify_webhook_signature(BODY, signature, API_KEY)


def test_signature_for_other_body_fails() -> None:
    signature = compute_webhook_signature(BODY, API_KEY)
    assert not verify_webhook_signature(BODY + b" ", signature, API_KEY)


def test_signature_with_other_key_fails() -> None:
    signature = compute_webhook_signature(BODY, "other-key")
    assert not verify_webhook_signature(BODY, signature, API_KEY)


def test_empty_or_non_ascii_signature_fails() -> None:
    assert not verify_webhook_signature(BODY, "", API_KEY)
    assert not verify_webhook_signature(BODY, "é" * 64, API_KEY)


def test_missing_api_key_fails() -> None:
    signature = compute_webhook_signature(BODY, "")
    assert not verify_webhook_signature(BODY, signature, "")
