"""Shared pytest fixtures for top-up and settlement tests."""

from __future__ import annotations

import os
from typing import AsyncGenerator, List

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from qrsettle.application.shared.retry import RetryPolicy
from qrsettle.application.wallet.use_cases.credit import BalanceCreditService
from qrsettle.application.wallet.use_cases.settlement import SettlementVerifier
from qrsettle.application.wallet.use_cases.topup import TopupService
from qrsettle.application.wallet.use_cases.webhook import WebhookService
from qrsettle.crypto.certificates import public_key_to_der_b64
from qrsettle.infrastructure.database import DatabaseClient
from qrsettle.infrastructure.storage import RedisKeyValueStore
from tests.fixtures import (
    FakeBakongAuthority,
    FakeClock,
    InMemoryKeyValueStore,
    InMemoryPaymentTransactionRepository,
    InMemoryWalletRepository,
    register_wallet_scripts,
)
from tests.fixtures.constants import MERCHANT_ACCOUNT
from tests.fixtures.fake_bakong import API_KEY


@pytest.fixture
def session_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generate the session service's key pair for testing."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


@pytest.fixture
def session_public_key_der_b64(
    session_key_pair: tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey],
) -> str:
    _, public_key = session_key_pair
    return public_key_to_der_b64(public_key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> List[float]:
    """Delays requested by the code under test, in order."""
    return []


@pytest.fixture
def fake_sleep(sleeps: List[float]):
    async def sleep(delay: float) -> None:
        sleeps.append(delay)

    return sleep


@pytest.fixture
async def store() -> AsyncGenerator[InMemoryKeyValueStore, None]:
    """One in-memory store shared by the ledger and the wallet."""
    kv = InMemoryKeyValueStore()
    await register_wallet_scripts(kv)
    yield kv
    kv.clear()


@pytest.fixture
def transaction_repository(
    store: InMemoryKeyValueStore,
) -> InMemoryPaymentTransactionRepository:
    return InMemoryPaymentTransactionRepository(store)


@pytest.fixture
def wallet_repository(store: InMemoryKeyValueStore) -> InMemoryWalletRepository:
    return InMemoryWalletRepository(store)


@pytest.fixture
def bakong() -> FakeBakongAuthority:
    return FakeBakongAuthority()


@pytest.fixture
def verifier(
    bakong: FakeBakongAuthority, fake_sleep, clock: FakeClock
) -> SettlementVerifier:
    return SettlementVerifier(
        bakong.client_factory,
        policy=RetryPolicy(max_attempts=3, base_delay=1.0),
        sleep=fake_sleep,
        clock=clock,
    )


@pytest.fixture
def credit_service(
    transaction_repository: InMemoryPaymentTransactionRepository,
    wallet_repository: InMemoryWalletRepository,
    clock: FakeClock,
) -> BalanceCreditService:
    return BalanceCreditService(transaction_repository, wallet_repository, clock=clock)


@pytest.fixture
def topup_service(
    transaction_repository: InMemoryPaymentTransactionRepository,
    wallet_repository: InMemoryWalletRepository,
    verifier: SettlementVerifier,
    credit_service: BalanceCreditService,
    clock: FakeClock,
) -> TopupService:
    return TopupService(
        transaction_repository,
        wallet_repository,
        verifier,
        credit_service,
        merchant_account=MERCHANT_ACCOUNT,
        clock=clock,
    )


@pytest.fixture
def webhook_service(
    transaction_repository: InMemoryPaymentTransactionRepository,
    credit_service: BalanceCreditService,
    clock: FakeClock,
) -> WebhookService:
    return WebhookService(
        transaction_repository, credit_service, api_key=API_KEY, clock=clock
    )


class TestDatabaseSettings:
    """Test settings for Redis connection."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url


@pytest.fixture
async def redis_db_client() -> AsyncGenerator[DatabaseClient, None]:
    """Create a Redis database client for testing.

    Uses TEST_REDIS_URL if set, otherwise localhost:6379/15. Tests using it
    are skipped when Redis is not reachable.
    """
    test_redis_url = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")
    client = DatabaseClient(TestDatabaseSettings(database_url=test_redis_url))
    client.initialize_database()

    try:
        async with client.get_connection() as conn:
            await conn.ping()
    except Exception as e:
        await client.close()
        pytest.skip(f"Redis not available at {test_redis_url}: {e}")

    yield client

    async with client.get_connection() as conn:
        await conn.flushdb()
    await client.close()


@pytest.fixture
async def redis_store(redis_db_client: DatabaseClient) -> RedisKeyValueStore:
    """Create a Redis-backed key-value store with the wallet scripts loaded."""
    kv = RedisKeyValueStore(redis_db_client)
    await register_wallet_scripts(kv)
    return kv
