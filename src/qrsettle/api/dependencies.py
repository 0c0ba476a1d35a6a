"""FastAPI dependencies for the top-up API."""

from __future__ import annotations

from datetime import timedelta

from fastapi import Depends

from ..application.shared.retry import RetryPolicy
from ..application.wallet.use_cases.credit import BalanceCreditService
from ..application.wallet.use_cases.settlement import SettlementVerifier
from ..application.wallet.use_cases.topup import TopupService
from ..application.wallet.use_cases.webhook import WebhookService
from ..domain.shared import SettlementClientFactory
from ..domain.wallet.repositories import (
    PaymentTransactionRepository,
    WalletRepository,
)
from ..envs.api_env import Settings, get_settings
from ..infrastructure.bakong.bakong_client import AsyncBakongClient
from ..infrastructure.database import DatabaseClient, get_database_client
from ..infrastructure.storage import KeyValueStore, RedisKeyValueStore
from ..infrastructure.wallet.balance_repository_impl import WalletRepositoryImpl
from ..infrastructure.wallet.transaction_repository_impl import (
    PaymentTransactionRepositoryImpl,
)

_key_value_store: KeyValueStore | None = None


def get_database_client_with_settings(
    settings: Settings = Depends(get_settings),
) -> DatabaseClient:
    """Get database client with settings."""
    return get_database_client(settings)


def get_key_value_store(
    db_client: DatabaseClient = Depends(get_database_client_with_settings),
) -> KeyValueStore:
    """Get the process-wide key-value store (it caches loaded script SHAs)."""
    global _key_value_store
    if _key_value_store is None:
        _key_value_store = RedisKeyValueStore(db_client)
    return _key_value_store


def get_transaction_repository(
    store: KeyValueStore = Depends(get_key_value_store),
) -> PaymentTransactionRepository:
    """Get payment transaction repository."""
    return PaymentTransactionRepositoryImpl(store)


def get_wallet_repository(
    store: KeyValueStore = Depends(get_key_value_store),
) -> WalletRepository:
    """Get wallet repository."""
    return WalletRepositoryImpl(store)


def get_settlement_client_factory(
    settings: Settings = Depends(get_settings),
) -> SettlementClientFactory:
    """Get a factory producing Bakong clients configured from settings."""

    def factory() -> AsyncBakongClient:
        return AsyncBakongClient(
            settings.bakong_api_base_url,
            settings.bakong_khqr_api_key or "",
            timeout=settings.request_timeout_seconds,
        )

    return factory


def get_settlement_verifier(
    client_factory: SettlementClientFactory = Depends(get_settlement_client_factory),
    settings: Settings = Depends(get_settings),
) -> SettlementVerifier:
    """Get settlement verifier."""
    return SettlementVerifier(
        client_factory,
        policy=RetryPolicy(
            max_attempts=settings.verification_max_attempts,
            base_delay=settings.verification_base_delay_seconds,
        ),
    )


def get_credit_service(
    transaction_repository: PaymentTransactionRepository = Depends(
        get_transaction_repository
    ),
    wallet_repository: WalletRepository = Depends(get_wallet_repository),
) -> BalanceCreditService:
    """Get balance credit service."""
    return BalanceCreditService(transaction_repository, wallet_repository)


def get_topup_service(
    transaction_repository: PaymentTransactionRepository = Depends(
        get_transaction_repository
    ),
    wallet_repository: WalletRepository = Depends(get_wallet_repository),
    verifier: SettlementVerifier = Depends(get_settlement_verifier),
    credit_service: BalanceCreditService = Depends(get_credit_service),
    settings: Settings = Depends(get_settings),
) -> TopupService:
    """Get top-up service."""
    return build_topup_service(
        settings, transaction_repository, wallet_repository, verifier, credit_service
    )


def build_topup_service(
    settings: Settings,
    transaction_repository: PaymentTransactionRepository,
    wallet_repository: WalletRepository,
    verifier: SettlementVerifier,
    credit_service: BalanceCreditService,
) -> TopupService:
    return TopupService(
        transaction_repository,
        wallet_repository,
        verifier,
        credit_service,
        merchant_account=settings.bakong_merchant_account,
        merchant_city=settings.merchant_city,
        store_label=settings.store_label,
        terminal_label=settings.terminal_label,
        max_topup_amount=settings.max_topup_amount,
        transaction_ttl=timedelta(seconds=settings.transaction_ttl_seconds),
        strict_payment_verification=settings.strict_payment_verification,
    )


def get_webhook_service(
    transaction_repository: PaymentTransactionRepository = Depends(
        get_transaction_repository
    ),
    credit_service: BalanceCreditService = Depends(get_credit_service),
    settings: Settings = Depends(get_settings),
) -> WebhookService:
    """Get webhook service."""
    return WebhookService(
        transaction_repository,
        credit_service,
        api_key=settings.bakong_khqr_api_key,
    )
