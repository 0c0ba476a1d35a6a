"""Shared domain utilities.

This package is domain-accessible and should not depend on application code.
"""

from .settlement_client_protocol import (
    SettlementClientFactory,
    SettlementClientProtocol,
)

__all__ = ["SettlementClientProtocol", "SettlementClientFactory"]
