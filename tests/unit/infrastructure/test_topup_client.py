"""Tests for the top-up API client used by the polling CLI."""

import json
from uuid import uuid4

import httpx
import pytest

from qrsettle.application.wallet.dtos import GenerateTopupRequestDTO
from qrsettle.domain.wallet.entities import Currency, TransactionStatus
from qrsettle.infrastructure.wallet.topup_client import TopupApiClient


async def test_generate_and_check_status() -> None:
    transaction_id = uuid4()
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.method == "POST":
            return httpx.Response(
                201,
                json={
                    "transaction_id": str(transaction_id),
                    "qr_code": "000201010212...6304ABCD",
                    "amount": "10.00",
                    "currency": "USD",
                    "expires_at": "2026-03-01T09:15:00+00:00",
                    "md5": "e" * 32,
                },
            )
        return httpx.Response(
            200,
            json={
                "transaction_id": str(transaction_id),
                "status": "completed",
                "amount": "10.00",
                "currency": "USD",
                "new_balance": "10.00",
                "message": None,
            },
        )

    async with TopupApiClient(
        "http://api.test/api/v1", "tok", transport=httpx.MockTransport(handler)
    ) as client:
        created = await client.generate_topup(
            GenerateTopupRequestDTO(amount="10.00", currency=Currency.USD)
        )
        status = await client.get_topup_status(created.transaction_id)

    assert requests[0].url.path == "/api/v1/topups"
    assert json.loads(requests[0].content) == {"amount": "10.00", "currency": "USD"}
    assert requests[0].headers["Authorization"] == "Bearer tok"
    assert requests[1].url.path == f"/api/v1/topups/{transaction_id}"
    assert created.md5 == "e" * 32
    assert status.status is TransactionStatus.COMPLETED
    assert str(status.new_balance) == "10.00"


async def test_error_status_is_raised() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "Transaction not found"})

    async with TopupApiClient(
        "http://api.test/api/v1", "tok", transport=httpx.MockTransport(handler)
    ) as client:
        with pytest.raises(httpx.HTTPStatusError):
            await client.get_topup_status(uuid4())
