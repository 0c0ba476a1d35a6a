"""Settlement webhook routes."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from prometheus_client import Counter

from ...application.wallet.dtos import WebhookResultDTO
from ...application.wallet.use_cases.webhook import WebhookService
from ...domain.errors import (
    InvalidTransactionStateError,
    InvalidWebhookSignatureError,
    PaymentValidationError,
    PersistenceError,
    TransactionNotFoundError,
)
from ..dependencies import get_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


webhook_requests_total = Counter(
    "webhook_requests_total",
    "Total settlement webhooks received",
    ["status"],
)


@router.post("/bakong", response_model=WebhookResultDTO)
async def bakong_webhook(
    request: Request,
    x_bakong_signature: Optional[str] = Header(None, alias="X-Bakong-Signature"),
    webhook_service: WebhookService = Depends(get_webhook_service),
) -> WebhookResultDTO:
    """Apply a signed settlement notification."""
    body = await request.body()
    try:
        result = await webhook_service.handle(body, x_bakong_signature)
        webhook_requests_total.labels(status="success").inc()
        return result
    except InvalidWebhookSignatureError as e:
        webhook_requests_total.labels(status="unauthorized").inc()
        logger.warning("Rejected webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except PaymentValidationError as e:
        webhook_requests_total.labels(status="client_error").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TransactionNotFoundError:
        webhook_requests_total.labels(status="not_found").inc()
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found"
        )
    except InvalidTransactionStateError as e:
        webhook_requests_total.labels(status="conflict").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PersistenceError as e:
        webhook_requests_total.labels(status="server_error").inc()
        logger.error("Storage error while processing webhook: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )
    except Exception:
        webhook_requests_total.labels(status="server_error").inc()
        logger.exception("Unexpected error processing webhook")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook",
        )
