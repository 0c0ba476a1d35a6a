"""Protocol interface for settlement authority client implementations.

This protocol defines the contract the settlement verifier relies on. It
enables dependency injection and makes the verifier testable with mock or
in-process implementations.
"""

from __future__ import annotations

from typing import Protocol, Type, Optional, Callable, TYPE_CHECKING
from types import TracebackType

if TYPE_CHECKING:
    from ...application.wallet.dtos import (
        CheckTransactionRequestDTO,
        CheckTransactionResponseDTO,
    )


class SettlementClientProtocol(Protocol):
    """Protocol defining the interface for settlement authority clients.

    Implementations perform exactly one network round trip per call and
    raise on transport failure or non-2xx status; retrying is the caller's
    concern.
    """

    async def check_transaction_by_hash(
        self, dto: "CheckTransactionRequestDTO"
    ) -> "CheckTransactionResponseDTO":
        """Ask the authority whether a payment with this hash has settled.

        Args:
            dto: Request carrying the payload correlation hash

        Returns:
            The authority's parsed response

        Raises:
            httpx.RequestError: The request never produced a usable response
            httpx.HTTPStatusError: The authority answered with a non-2xx status
            VerificationHardError: The body could not be parsed
        """
        ...

    async def aclose(self) -> None:
        """Close the client and release resources."""
        ...

    async def __aenter__(
        self: "SettlementClientProtocol",
    ) -> "SettlementClientProtocol":
        ...

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        ...


# Factory type for creating settlement clients
SettlementClientFactory = Callable[[], SettlementClientProtocol]
