from __future__ import annotations

from typing import Optional, Type
from types import TracebackType

import httpx
from pydantic import ValidationError

from ...application.wallet.dtos import (
    CheckTransactionRequestDTO,
    CheckTransactionResponseDTO,
)
from ...domain.errors import VerificationHardError
from ..http.http_client import AsyncHttpClient

CHECK_TRANSACTION_PATH = "/v1/check_transaction_by_hash"


class AsyncBakongClient:
    """Asynchronous client for the Bakong open API.

    One call is one round trip; retries live in the settlement verifier.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(
            base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    async def check_transaction_by_hash(
        self, dto: CheckTransactionRequestDTO
    ) -> CheckTransactionResponseDTO:
        resp = await self._http.post(CHECK_TRANSACTION_PATH, json=dto.model_dump())
        try:
            return CheckTransactionResponseDTO.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise VerificationHardError(
                f"Unparseable response from settlement authority: {e}"
            ) from e

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AsyncBakongClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
