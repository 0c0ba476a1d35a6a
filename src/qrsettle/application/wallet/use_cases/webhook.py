"""Settlement notifications pushed by the payment authority."""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from ....crypto.webhook_signature import verify_webhook_signature
from ....domain.errors import (
    InvalidWebhookSignatureError,
    PaymentValidationError,
    TransactionNotFoundError,
)
from ....domain.wallet.entities import Clock, TransactionStatus, utc_now
from ....domain.wallet.repositories import PaymentTransactionRepository
from ..dtos import BakongWebhookDTO, WebhookResultDTO
from .credit import BalanceCreditService
from .settlement import AUTHORITY_COMPLETED_STATUS, AUTHORITY_SUCCESS_CODE

logger = logging.getLogger(__name__)

FAILURE_STATUSES = frozenset({"FAILED", "CANCELLED"})


class WebhookService:
    """Applies authority notifications to the ledger.

    Crediting goes through the same atomic credit as polling, so a webhook
    and a poll racing for one transaction credit it once.
    """

    def __init__(
        self,
        transaction_repository: PaymentTransactionRepository,
        credit_service: BalanceCreditService,
        *,
        api_key: Optional[str],
        clock: Clock = utc_now,
    ):
        self.transaction_repository = transaction_repository
        self.credit_service = credit_service
        self.api_key = api_key
        self.clock = clock

    def authenticate(self, body: bytes, signature: Optional[str]) -> None:
        if not self.api_key or not signature:
            raise InvalidWebhookSignatureError("Missing webhook signature")
        if not verify_webhook_signature(body, signature, self.api_key):
            raise InvalidWebhookSignatureError("Invalid signature")

    async def handle(self, body: bytes, signature: Optional[str]) -> WebhookResultDTO:
        """Authenticate and apply one notification.

        Raises:
            InvalidWebhookSignatureError: The body is unsigned or forged.
            PaymentValidationError: The body is not a valid notification.
            TransactionNotFoundError: No transaction carries the given hash.
            InvalidTransactionStateError: A completion arrived for an
                expired or failed transaction.
        """
        self.authenticate(body, signature)

        try:
            notification = BakongWebhookDTO.model_validate_json(body)
        except ValidationError as e:
            raise PaymentValidationError(f"Invalid webhook payload: {e}") from e

        transaction = await self.transaction_repository.get_by_correlation_hash(
            notification.hash
        )
        if transaction is None:
            raise TransactionNotFoundError(
                f"No transaction for hash {notification.hash}"
            )

        logger.info(
            "Webhook for transaction %s: status=%s responseCode=%s",
            transaction.id,
            notification.status,
            notification.response_code,
        )

        if transaction.status is TransactionStatus.COMPLETED:
            return WebhookResultDTO(
                message="Transaction already completed",
                transaction_id=transaction.id,
                status=transaction.status,
            )

        if (
            notification.response_code == AUTHORITY_SUCCESS_CODE
            and notification.status == AUTHORITY_COMPLETED_STATUS
        ):
            result = await self.credit_service.credit(
                transaction.id, notification.transaction_id
            )
            return WebhookResultDTO(
                message="Payment processed successfully",
                transaction_id=transaction.id,
                status=result.status,
                new_balance=result.new_balance,
            )

        if notification.status in FAILURE_STATUSES:
            updated = await self.transaction_repository.transition(
                transaction.id, TransactionStatus.FAILED, now=self.clock()
            )
            if updated is not None:
                transaction = updated

        return WebhookResultDTO(
            message="Webhook processed",
            transaction_id=transaction.id,
            status=transaction.status,
        )
