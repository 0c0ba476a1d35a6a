from __future__ import annotations

from typing import Optional, Type
from types import TracebackType
from uuid import UUID

import httpx

from ...application.wallet.dtos import (
    GenerateTopupRequestDTO,
    GenerateTopupResponseDTO,
    TopupStatusResponseDTO,
)
from ..http.http_client import AsyncHttpClient


class TopupApiClient:
    """Asynchronous client for talking to the top-up HTTP API."""

    def __init__(
        self,
        base_url: str,
        bearer_token: str,
        timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        # base_url is expected to already contain the API prefix (e.g. /api/v1)
        self._http = AsyncHttpClient(
            base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {bearer_token}"},
            transport=transport,
        )

    async def generate_topup(
        self, dto: GenerateTopupRequestDTO
    ) -> GenerateTopupResponseDTO:
        resp = await self._http.post("/topups", json=dto.model_dump(mode="json"))
        return GenerateTopupResponseDTO.model_validate(resp.json())

    async def get_topup_status(self, transaction_id: UUID) -> TopupStatusResponseDTO:
        resp = await self._http.get(f"/topups/{transaction_id}")
        return TopupStatusResponseDTO.model_validate(resp.json())

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TopupApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
