"""Bearer-token authentication for user-facing routes.

Sessions are issued elsewhere; this service only verifies the
`<payload_b64>.<signature_b64>` token against the session service's key.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..crypto.certificates import (
    DERB64,
    InvalidSessionTokenError,
    load_public_key_from_der_b64,
    verify_session_token,
)
from ..domain.wallet.entities import utc_now
from ..envs.api_env import Settings, get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Return the user id carried by a valid session token."""
    if credentials is None:
        raise _unauthorized("Unauthorized")
    if not settings.auth_public_key_der_b64:
        logger.error("AUTH_PUBLIC_KEY_DER_B64 is not configured")
        raise _unauthorized("Authentication is not configured")

    public_key = load_public_key_from_der_b64(DERB64(settings.auth_public_key_der_b64))
    try:
        payload = verify_session_token(public_key, credentials.credentials, utc_now())
    except InvalidSessionTokenError as e:
        raise _unauthorized(str(e))
    return payload.user_id
