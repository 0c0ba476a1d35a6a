"""Settlement verification against the external payment authority."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

import httpx
from prometheus_client import Counter

from ....domain.errors import VerificationHardError, VerificationTransientError
from ....domain.shared import SettlementClientFactory
from ....domain.wallet.entities import Clock, PaymentTransaction, utc_now
from ...shared.retry import RetryExhaustedError, RetryPolicy, Sleep, retry_with_backoff
from ..dtos import CheckTransactionRequestDTO, CheckTransactionResponseDTO

logger = logging.getLogger(__name__)

MISSING_CORRELATION_DATA = "missing correlation data"
AUTHORITY_SUCCESS_CODE = 0
AUTHORITY_COMPLETED_STATUS = "COMPLETED"

RETRYABLE_ERRORS = (httpx.RequestError, httpx.HTTPStatusError)

settlement_verifications_total = Counter(
    "settlement_verifications_total",
    "Settlement checks against the payment authority, by verdict",
    ["verdict"],
)


@dataclass(frozen=True)
class Confirmed:
    """The authority reports the payment as settled."""

    external_transaction_id: Optional[str] = None


@dataclass(frozen=True)
class NotYet:
    """The authority answered but the payment has not settled."""

    message: Optional[str] = None


@dataclass(frozen=True)
class HardError:
    """Verification could not produce an answer.

    `transient` errors (authority unreachable, unusable body) may succeed on
    a later check; the rest can never succeed for this transaction.
    """

    reason: str
    transient: bool = False


Verdict = Union[Confirmed, NotYet, HardError]


def interpret_response(response: CheckTransactionResponseDTO) -> Verdict:
    if (
        response.response_code == AUTHORITY_SUCCESS_CODE
        and response.data is not None
        and response.data.status == AUTHORITY_COMPLETED_STATUS
    ):
        return Confirmed(external_transaction_id=response.data.transaction_id)
    return NotYet(message=response.response_message)


class SettlementVerifier:
    """Asks the authority whether a transaction's payload has been paid.

    The verifier never credits and never mutates the ledger.
    """

    def __init__(
        self,
        client_factory: SettlementClientFactory,
        *,
        policy: RetryPolicy = RetryPolicy(),
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utc_now,
    ):
        self.client_factory = client_factory
        self.policy = policy
        self.sleep = sleep
        self.clock = clock

    async def verify(self, transaction: PaymentTransaction) -> Verdict:
        if not transaction.correlation_hash:
            settlement_verifications_total.labels(verdict="hard_error").inc()
            return HardError(reason=MISSING_CORRELATION_DATA, transient=False)

        try:
            response = await self.check(transaction)
        except VerificationTransientError as e:
            logger.warning(
                "Settlement authority unreachable for transaction %s after %d attempt(s): %s",
                transaction.id,
                e.attempts,
                e,
            )
            settlement_verifications_total.labels(verdict="transient_error").inc()
            return HardError(reason=str(e), transient=True)
        except VerificationHardError as e:
            logger.warning(
                "Unusable settlement response for transaction %s: %s",
                transaction.id,
                e,
            )
            settlement_verifications_total.labels(verdict="hard_error").inc()
            return HardError(reason=str(e), transient=True)

        verdict = interpret_response(response)
        label = "confirmed" if isinstance(verdict, Confirmed) else "not_yet"
        settlement_verifications_total.labels(verdict=label).inc()
        return verdict

    async def check(
        self, transaction: PaymentTransaction
    ) -> CheckTransactionResponseDTO:
        """Query the authority under the retry policy.

        Raises:
            VerificationTransientError: Every permitted attempt failed at the
                request or HTTP status level.
            VerificationHardError: The authority answered with an unusable body.
        """
        assert transaction.correlation_hash is not None
        dto = CheckTransactionRequestDTO(hash=transaction.correlation_hash)

        async with self.client_factory() as client:
            try:
                return await retry_with_backoff(
                    lambda: client.check_transaction_by_hash(dto),
                    retry_on=RETRYABLE_ERRORS,
                    policy=self.policy,
                    sleep=self.sleep,
                    deadline=transaction.expires_at,
                    clock=self.clock,
                )
            except RetryExhaustedError as e:
                raise VerificationTransientError(
                    f"Settlement authority unavailable: {e.last_error}",
                    attempts=e.attempts,
                ) from e
