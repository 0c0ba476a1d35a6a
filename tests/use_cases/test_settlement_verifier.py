"""Tests for settlement verification against the in-process authority."""

from __future__ import annotations

from decimal import Decimal

import httpx
import pytest

from qrsettle.application.wallet.use_cases.settlement import (
    MISSING_CORRELATION_DATA,
    Confirmed,
    HardError,
    NotYet,
)
from qrsettle.domain.errors import VerificationTransientError
from qrsettle.domain.wallet.entities import PaymentTransaction
from tests.fixtures.constants import USER_ID

MD5 = "0123456789abcdef0123456789abcdef"


@pytest.fixture
def transaction(clock) -> PaymentTransaction:
    return PaymentTransaction(
        user_id=USER_ID,
        amount=Decimal("10.00"),
        correlation_hash=MD5,
        created_at=clock(),
    )


async def test_confirmed_payment(verifier, bakong, transaction, sleeps) -> None:
    bakong.complete(MD5, "ext-42")

    verdict = await verifier.verify(transaction)

    assert verdict == Confirmed(external_transaction_id="ext-42")
    assert bakong.calls == [MD5]
    assert sleeps == []


async def test_unpaid_transaction_is_not_yet(verifier, bakong, transaction) -> None:
    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, NotYet)
    assert verdict.message == "Transaction could not be found"


async def test_success_code_without_completed_status_is_not_yet(
    verifier, bakong, transaction
) -> None:
    bakong.enqueue(
        httpx.Response(
            200,
            json={
                "responseCode": 0,
                "responseMessage": "Success",
                "data": {"status": "PENDING"},
            },
        )
    )
    assert isinstance(await verifier.verify(transaction), NotYet)


async def test_server_error_is_retried(verifier, bakong, transaction, sleeps) -> None:
    bakong.enqueue(httpx.Response(500, text="boom"))
    bakong.complete(MD5, "ext-42")

    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, Confirmed)
    assert len(bakong.calls) == 2
    assert sleeps == [1.0]


async def test_unreachable_authority_is_transient(
    verifier, bakong, transaction, sleeps
) -> None:
    bakong.enqueue(httpx.ConnectError, httpx.ConnectError, httpx.ReadTimeout)

    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, HardError)
    assert verdict.transient is True
    assert len(bakong.calls) == 3
    assert sleeps == [1.0, 2.0]


async def test_undecodable_or_redirect_loop_is_transient(
    verifier, bakong, transaction, sleeps
) -> None:
    bakong.enqueue(httpx.DecodingError, httpx.TooManyRedirects, httpx.DecodingError)

    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, HardError)
    assert verdict.transient is True
    assert len(bakong.calls) == 3
    assert sleeps == [1.0, 2.0]


async def test_check_raises_after_exhaustion(
    verifier, bakong, transaction
) -> None:
    bakong.enqueue(httpx.ConnectError, httpx.ConnectError, httpx.ConnectError)

    with pytest.raises(VerificationTransientError) as exc_info:
        await verifier.check(transaction)
    assert exc_info.value.attempts == 3


async def test_malformed_body_is_not_retried(
    verifier, bakong, transaction, sleeps
) -> None:
    bakong.enqueue(httpx.Response(200, text="not json"))

    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, HardError)
    assert verdict.transient is True
    assert len(bakong.calls) == 1
    assert sleeps == []


async def test_missing_hash_makes_no_call(verifier, bakong, clock) -> None:
    transaction = PaymentTransaction(
        user_id=USER_ID, amount=Decimal("10.00"), created_at=clock()
    )

    verdict = await verifier.verify(transaction)

    assert verdict == HardError(reason=MISSING_CORRELATION_DATA, transient=False)
    assert bakong.calls == []


async def test_backoff_stops_at_expiry(verifier, bakong, transaction, clock, sleeps) -> None:
    # 1.5s of the window left: the 1s delay fits, the 2s one does not
    clock.advance(minutes=15, seconds=-1.5)
    bakong.enqueue(httpx.ConnectError, httpx.ConnectError, httpx.ConnectError)

    verdict = await verifier.verify(transaction)

    assert isinstance(verdict, HardError)
    assert verdict.transient is True
    assert sleeps == [1.0]
    assert len(bakong.calls) == 2
