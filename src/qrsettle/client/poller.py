"""Client-side polling of a top-up until it settles, expires or fails."""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from typing import Callable, Optional, Protocol
from uuid import UUID

import httpx

from ..application.wallet.dtos import TopupStatusResponseDTO
from ..domain.wallet.entities import Clock, TransactionStatus, utc_now

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 3.0


class PollState(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PollState.COMPLETED, PollState.EXPIRED, PollState.FAILED)


_STATE_FOR_STATUS = {
    TransactionStatus.PENDING: PollState.PENDING,
    TransactionStatus.COMPLETED: PollState.COMPLETED,
    TransactionStatus.EXPIRED: PollState.EXPIRED,
    TransactionStatus.FAILED: PollState.FAILED,
}


class TopupStatusChecker(Protocol):
    async def get_topup_status(self, transaction_id: UUID) -> TopupStatusResponseDTO:
        ...


class PaymentPoller:
    """Checks a top-up immediately and then every `interval` seconds.

    At most one check is in flight. Polling stops on a terminal status, once
    the local clock passes `expires_at`, or after `cancel()`; a check that
    is already running when `cancel()` is called still completes.
    """

    def __init__(
        self,
        checker: TopupStatusChecker,
        transaction_id: UUID,
        expires_at: datetime,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        clock: Clock = utc_now,
        on_update: Optional[Callable[[TopupStatusResponseDTO], None]] = None,
    ) -> None:
        self.checker = checker
        self.transaction_id = transaction_id
        self.expires_at = expires_at
        self.interval = interval
        self.clock = clock
        self.on_update = on_update

        self.state = PollState.IDLE
        self.last_result: Optional[TopupStatusResponseDTO] = None
        self.checks = 0
        self._checking = False
        self._cancelled = asyncio.Event()

    @property
    def is_checking(self) -> bool:
        return self._checking

    def cancel(self) -> None:
        self._cancelled.set()

    def _locally_expired(self) -> bool:
        return self.clock() > self.expires_at

    async def check_once(self) -> Optional[TopupStatusResponseDTO]:
        """Run one status check unless one is already in flight.

        Returns None when the check was skipped or the request failed.
        """
        if self._checking or self.state.is_terminal:
            return None
        if self._locally_expired():
            self.state = PollState.EXPIRED
            return None

        self._checking = True
        try:
            self.checks += 1
            result = await self.checker.get_topup_status(self.transaction_id)
        except httpx.HTTPError as e:
            # Server unreachable; retried on the next tick
            logger.warning("Status check for %s failed: %s", self.transaction_id, e)
            return None
        finally:
            self._checking = False

        self.last_result = result
        self.state = _STATE_FOR_STATUS[result.status]
        if self.on_update is not None:
            self.on_update(result)
        return result

    async def run(self) -> PollState:
        """Poll until a terminal state, local expiry, or cancellation."""
        if self.state is PollState.IDLE:
            self.state = PollState.PENDING

        while not self._cancelled.is_set():
            await self.check_once()
            if self.state.is_terminal:
                break
            if self._locally_expired():
                self.state = PollState.EXPIRED
                break
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

        logger.info("Stopped polling %s in state %s", self.transaction_id, self.state.value)
        return self.state
