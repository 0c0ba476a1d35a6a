"""FastAPI application configuration (top-up API)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    REGISTRY,
    generate_latest,
    multiprocess,
)

from ..application.wallet.use_cases.topup import TopupService
from ..envs.api_env import Settings, get_settings
from ..infrastructure.database import get_database_client
from ..infrastructure.scripts import WALLET_SCRIPTS
from .dependencies import (
    build_topup_service,
    get_credit_service,
    get_key_value_store,
    get_settlement_client_factory,
    get_settlement_verifier,
    get_transaction_repository,
    get_wallet_repository,
)
from .routers import topups, wallet, webhooks

logger = logging.getLogger(__name__)


def _topup_service_for_background(settings: Settings) -> TopupService:
    store = get_key_value_store(get_database_client(settings))
    transaction_repository = get_transaction_repository(store)
    wallet_repository = get_wallet_repository(store)
    verifier = get_settlement_verifier(
        get_settlement_client_factory(settings), settings
    )
    credit_service = get_credit_service(transaction_repository, wallet_repository)
    return build_topup_service(
        settings, transaction_repository, wallet_repository, verifier, credit_service
    )


async def run_expiry_sweeper(service: TopupService, interval: float) -> None:
    """Periodically expire pending rows nobody is polling any more."""
    while True:
        try:
            await service.expire_stale_transactions()
        except Exception:
            logger.exception("Expiry sweep failed")
        await asyncio.sleep(interval)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        db_client = get_database_client(settings)
        store = get_key_value_store(db_client)
        for name, script in WALLET_SCRIPTS.items():
            await store.register_script(name, script)
        logger.info("Registered %d storage scripts", len(WALLET_SCRIPTS))

        sweeper = asyncio.create_task(
            run_expiry_sweeper(
                _topup_service_for_background(settings),
                settings.expiry_sweep_interval_seconds,
            )
        )
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await db_client.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="QRSettle wallet top-up API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api_cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Include routers
    app.include_router(topups.router, prefix="/api/v1")
    app.include_router(wallet.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": f"Welcome to {settings.app_name} API",
            "version": settings.app_version,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus scrape endpoint, aggregated across workers when configured."""
        registry = REGISTRY
        if os.environ.get("PROMETHEUS_MULTIPROC_DIR"):
            registry = CollectorRegistry()
            multiprocess.MultiProcessCollector(registry)
        return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app
