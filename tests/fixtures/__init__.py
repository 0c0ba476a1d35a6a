"""Test fixtures for in-memory implementations."""

from .clock import FakeClock
from .fake_bakong import FakeBakongAuthority
from .in_memory_storage import InMemoryKeyValueStore
from .in_memory_repositories import (
    InMemoryPaymentTransactionRepository,
    InMemoryWalletRepository,
    register_wallet_scripts,
)

__all__ = [
    "FakeBakongAuthority",
    "FakeClock",
    "InMemoryKeyValueStore",
    "InMemoryPaymentTransactionRepository",
    "InMemoryWalletRepository",
    "register_wallet_scripts",
]
