"""Top-up API routes."""

from __future__ import annotations

import logging
import time
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from prometheus_client import Counter, Histogram

from ...application.wallet.dtos import (
    GenerateTopupRequestDTO,
    GenerateTopupResponseDTO,
    PaymentTransactionResponseDTO,
    TopupStatusResponseDTO,
)
from ...application.wallet.use_cases.topup import TopupService
from ...domain.errors import (
    PaymentValidationError,
    PersistenceError,
    TransactionNotFoundError,
)
from ..auth import get_current_user_id
from ..dependencies import get_topup_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/topups", tags=["topups"])


topup_requests_total = Counter(
    "topup_requests_total",
    "Total top-up requests processed",
    ["operation", "status"],
)

topup_request_duration_seconds = Histogram(
    "topup_request_duration_seconds",
    "Wall time to process a top-up request",
    ["operation", "status"],
)


def _observe(operation: str, outcome: str, start_time: float) -> None:
    topup_requests_total.labels(operation=operation, status=outcome).inc()
    elapsed = time.perf_counter() - start_time
    topup_request_duration_seconds.labels(
        operation=operation, status=outcome
    ).observe(elapsed)


@router.post(
    "",
    response_model=GenerateTopupResponseDTO,
    status_code=status.HTTP_201_CREATED,
)
async def generate_topup(
    request: GenerateTopupRequestDTO,
    user_id: str = Depends(get_current_user_id),
    topup_service: TopupService = Depends(get_topup_service),
) -> GenerateTopupResponseDTO:
    """Create a pending top-up and return its KHQR payload."""
    start_time = time.perf_counter()
    try:
        result = await topup_service.generate(user_id, request)
        _observe("generate", "success", start_time)
        return result
    except PaymentValidationError as e:
        _observe("generate", "client_error", start_time)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PersistenceError as e:
        _observe("generate", "server_error", start_time)
        logger.error("Could not store top-up for user %s: %s", user_id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to create transaction",
        )
    except Exception:
        _observe("generate", "server_error", start_time)
        logger.exception("Unexpected error generating top-up for user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate top-up",
        )


@router.get("", response_model=List[PaymentTransactionResponseDTO])
async def list_topups(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    topup_service: TopupService = Depends(get_topup_service),
) -> List[PaymentTransactionResponseDTO]:
    """List the caller's top-ups, newest first."""
    try:
        return await topup_service.list_for_user(user_id, skip=skip, limit=limit)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )


@router.get("/{transaction_id}", response_model=TopupStatusResponseDTO)
async def check_topup_status(
    transaction_id: UUID = Path(..., description="Top-up transaction identifier"),
    user_id: str = Depends(get_current_user_id),
    topup_service: TopupService = Depends(get_topup_service),
) -> TopupStatusResponseDTO:
    """Report a top-up's status, crediting the wallet once the payment settles."""
    start_time = time.perf_counter()
    try:
        result = await topup_service.check_status(user_id, transaction_id)
        _observe("check_status", result.status.value, start_time)
        return result
    except TransactionNotFoundError:
        _observe("check_status", "not_found", start_time)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found"
        )
    except PersistenceError as e:
        _observe("check_status", "server_error", start_time)
        logger.error("Storage error checking transaction %s: %s", transaction_id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )
    except Exception:
        _observe("check_status", "server_error", start_time)
        logger.exception("Unexpected error checking transaction %s", transaction_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check top-up status",
        )
