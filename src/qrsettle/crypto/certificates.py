from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import NewType

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel, Field, ValidationError, field_validator

# Stronger semantic aliases
PayloadB64 = NewType("PayloadB64", str)
SignatureB64 = NewType("SignatureB64", str)
DERB64 = NewType("DERB64", str)

BEARER_TOKEN_SEPARATOR = "."


class InvalidSessionTokenError(Exception):
    """Raised when a bearer token is malformed, forged or expired."""


class Envelope(BaseModel):
    """Typed container for a base64-encoded canonical JSON payload and its signature."""

    payload_b64: PayloadB64
    signature_b64: SignatureB64


class SessionTokenPayload(BaseModel):
    """Payload signed by the session service for an authenticated user."""

    user_id: str = Field(..., min_length=1)
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def validate_expires_at(cls, v: datetime) -> datetime:
        # Naive timestamps are issued in UTC
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


def json_to_bytes(data: dict) -> bytes:
    """Serialize dict to canonical JSON bytes for signing/verification."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")


def sign_bytes(private_key: ec.EllipticCurvePrivateKey, payload_bytes: bytes) -> str:
    """Sign bytes with ECDSA SHA256 and return base64-encoded DER signature."""
    signature_der = private_key.sign(payload_bytes, ec.ECDSA(hashes.SHA256()))
    return base64.b64encode(signature_der).decode("utf-8")


def verify_signature_bytes(
    public_key: ec.EllipticCurvePublicKey, payload_bytes: bytes, signature_b64: str
) -> bool:
    """Verify base64-encoded DER signature over payload bytes. Raises InvalidSignature on failure."""
    signature_bytes = base64.b64decode(signature_b64, validate=True)
    public_key.verify(signature_bytes, payload_bytes, ec.ECDSA(hashes.SHA256()))
    return True


def load_public_key_from_der_b64(der_b64: DERB64) -> ec.EllipticCurvePublicKey:
    """Load a cryptography public key object from base64-encoded DER (SubjectPublicKeyInfo)."""
    der = base64.b64decode(der_b64, validate=True)
    return serialization.load_der_public_key(der)


def public_key_to_der_b64(public_key: ec.EllipticCurvePublicKey) -> DERB64:
    der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return DERB64(base64.b64encode(der).decode("utf-8"))


def generate_envelope(
    private_key: ec.EllipticCurvePrivateKey, payload: dict
) -> Envelope:
    """Sign a canonical JSON payload and wrap both in an envelope."""
    payload_bytes = json_to_bytes(payload)
    signature_b64 = sign_bytes(private_key, payload_bytes)
    return Envelope(
        payload_b64=PayloadB64(base64.b64encode(payload_bytes).decode("utf-8")),
        signature_b64=SignatureB64(signature_b64),
    )


def verify_envelope(public_key: ec.EllipticCurvePublicKey, envelope: Envelope) -> bool:
    """Verify the signature over the decoded payload bytes contained in the envelope."""
    payload_bytes = base64.b64decode(envelope.payload_b64, validate=True)
    return verify_signature_bytes(public_key, payload_bytes, envelope.signature_b64)


def envelope_to_bearer_token(envelope: Envelope) -> str:
    return f"{envelope.payload_b64}{BEARER_TOKEN_SEPARATOR}{envelope.signature_b64}"


def issue_session_token(
    private_key: ec.EllipticCurvePrivateKey, payload: SessionTokenPayload
) -> str:
    """Sign a session payload into a bearer token (used by the session service and tests)."""
    envelope = generate_envelope(private_key, payload.model_dump(mode="json"))
    return envelope_to_bearer_token(envelope)


def verify_session_token(
    public_key: ec.EllipticCurvePublicKey, token: str, now: datetime
) -> SessionTokenPayload:
    """Decode a `<payload_b64>.<signature_b64>` bearer token.

    Raises:
        InvalidSessionTokenError: If the token is malformed, the signature
            does not verify, or the session has expired.
    """
    payload_b64, sep, signature_b64 = token.partition(BEARER_TOKEN_SEPARATOR)
    if not sep or not payload_b64 or not signature_b64:
        raise InvalidSessionTokenError("Malformed bearer token")

    envelope = Envelope(
        payload_b64=PayloadB64(payload_b64), signature_b64=SignatureB64(signature_b64)
    )
    try:
        verify_envelope(public_key, envelope)
        payload_bytes = base64.b64decode(envelope.payload_b64, validate=True)
        payload = SessionTokenPayload.model_validate_json(payload_bytes)
    except (InvalidSignature, binascii.Error, ValidationError) as e:
        raise InvalidSessionTokenError("Invalid bearer token") from e

    if payload.expires_at <= now:
        raise InvalidSessionTokenError("Session has expired")
    return payload
