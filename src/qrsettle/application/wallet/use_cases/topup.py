"""Use cases for wallet top-ups paid through a KHQR code."""

from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from ....codec.checksum import correlation_hash
from ....codec.khqr import (
    MerchantAccount,
    PaymentRequest,
    build_payload,
    ensure_publishable,
)
from ....domain.errors import (
    InvalidTransactionStateError,
    PaymentValidationError,
    TransactionNotFoundError,
)
from ....domain.wallet.entities import (
    TRANSACTION_TTL,
    Clock,
    PaymentTransaction,
    TransactionStatus,
    quantize_amount,
    utc_now,
)
from ....domain.wallet.repositories import (
    PaymentTransactionRepository,
    WalletRepository,
)
from ..dtos import (
    GenerateTopupRequestDTO,
    GenerateTopupResponseDTO,
    PaymentTransactionResponseDTO,
    TopupStatusResponseDTO,
)
from .credit import BalanceCreditService
from .settlement import Confirmed, HardError, NotYet, SettlementVerifier

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOPUP_AMOUNT = Decimal("10000")
DEFAULT_MERCHANT_CITY = "Phnom Penh"
DEFAULT_STORE_LABEL = "KHMERZOON"
DEFAULT_TERMINAL_LABEL = "Wallet Topup"

MESSAGE_EXPIRED = "Payment window expired"
MESSAGE_FAILED = "Invalid transaction state - please generate a new QR code"
MESSAGE_NOT_CONFIRMED = "Payment not confirmed by Bakong"
MESSAGE_VERIFYING = "Payment verification in progress - please wait"


class TopupService:
    """Service for generating top-up QR codes and reconciling their settlement."""

    def __init__(
        self,
        transaction_repository: PaymentTransactionRepository,
        wallet_repository: WalletRepository,
        verifier: SettlementVerifier,
        credit_service: BalanceCreditService,
        *,
        merchant_account: Optional[str],
        merchant_city: str = DEFAULT_MERCHANT_CITY,
        store_label: Optional[str] = DEFAULT_STORE_LABEL,
        terminal_label: Optional[str] = DEFAULT_TERMINAL_LABEL,
        max_topup_amount: Decimal = DEFAULT_MAX_TOPUP_AMOUNT,
        transaction_ttl: timedelta = TRANSACTION_TTL,
        strict_payment_verification: bool = True,
        clock: Clock = utc_now,
    ):
        self.transaction_repository = transaction_repository
        self.wallet_repository = wallet_repository
        self.verifier = verifier
        self.credit_service = credit_service
        self.merchant_account = merchant_account
        self.merchant_city = merchant_city
        self.store_label = store_label
        self.terminal_label = terminal_label
        self.max_topup_amount = max_topup_amount
        self.transaction_ttl = transaction_ttl
        self.strict_payment_verification = strict_payment_verification
        self.clock = clock

    def _validate_amount(self, amount: Decimal) -> Decimal:
        if not amount.is_finite() or amount <= 0 or amount > self.max_topup_amount:
            raise PaymentValidationError(
                f"Invalid amount. Must be between 0 and {self.max_topup_amount}"
            )
        quantized = quantize_amount(amount)
        if quantized != amount:
            raise PaymentValidationError("Amount must have at most two decimal places")
        return quantized

    async def generate(
        self, user_id: str, dto: GenerateTopupRequestDTO
    ) -> GenerateTopupResponseDTO:
        """Create a pending transaction and the QR payload that pays it.

        Nothing is persisted unless the amount is valid and the payload
        could be built.
        """
        # 1) Validate the request and the merchant configuration
        amount = self._validate_amount(dto.amount)
        merchant = MerchantAccount.parse(self.merchant_account)

        # 2) Build the payload for a not-yet-stored transaction
        now = self.clock()
        transaction = PaymentTransaction(
            user_id=user_id,
            amount=amount,
            currency=dto.currency,
            created_at=now,
            expires_at=now + self.transaction_ttl,
        )
        request = PaymentRequest.for_merchant(
            merchant,
            merchant_city=self.merchant_city,
            amount=amount,
            currency=dto.currency,
            bill_number=transaction.bill_number,
            store_label=self.store_label,
            terminal_label=self.terminal_label,
        )
        payload = ensure_publishable(build_payload(request))
        md5 = correlation_hash(payload)

        # 3) Persist the pending row, then bind the payload to it
        await self.transaction_repository.create(transaction)
        transaction = await self.transaction_repository.attach_payload(
            transaction.id, payload, md5, now=now
        )
        logger.info(
            "Created top-up %s for user %s: %s %s",
            transaction.id,
            user_id,
            amount,
            dto.currency.value,
        )

        assert transaction.expires_at is not None
        return GenerateTopupResponseDTO(
            transaction_id=transaction.id,
            qr_code=payload,
            amount=transaction.amount,
            currency=transaction.currency,
            expires_at=transaction.expires_at,
            md5=md5,
        )

    async def get_transaction(
        self, user_id: str, transaction_id: UUID
    ) -> PaymentTransaction:
        transaction = await self.transaction_repository.get_by_id(transaction_id)
        if transaction is None or transaction.user_id != user_id:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    async def check_status(
        self, user_id: str, transaction_id: UUID
    ) -> TopupStatusResponseDTO:
        """Report the status of a top-up, settling it if the authority confirms.

        Verification failures are reported as `pending` so the client keeps
        polling inside the expiry window.
        """
        transaction = await self.get_transaction(user_id, transaction_id)

        if transaction.status is TransactionStatus.COMPLETED:
            return await self._completed(transaction)
        if transaction.status is TransactionStatus.EXPIRED:
            return self._report(transaction, message=MESSAGE_EXPIRED)
        if transaction.status is TransactionStatus.FAILED:
            return self._report(transaction, message=MESSAGE_FAILED)

        if transaction.is_expired(self.clock()):
            expired = await self.mark_expired(transaction.id)
            return await self._after_transition(expired or transaction)

        verdict = await self.verifier.verify(transaction)

        if isinstance(verdict, Confirmed):
            return await self._settle(transaction, verdict.external_transaction_id)

        if isinstance(verdict, NotYet):
            return self._report(transaction, message=MESSAGE_NOT_CONFIRMED)

        assert isinstance(verdict, HardError)
        if not verdict.transient:
            logger.error(
                "Transaction %s cannot be verified: %s", transaction.id, verdict.reason
            )
            failed = await self.mark_failed(transaction.id)
            return await self._after_transition(failed or transaction)

        if not self.strict_payment_verification:
            logger.warning(
                "Crediting transaction %s without confirmation (strict verification off)",
                transaction.id,
            )
            return await self._settle(transaction, None)

        return self._report(transaction, message=MESSAGE_VERIFYING)

    async def list_for_user(
        self, user_id: str, skip: int = 0, limit: int = 100
    ) -> List[PaymentTransactionResponseDTO]:
        transactions = await self.transaction_repository.get_all_for_user(
            user_id, skip, limit
        )
        return [
            PaymentTransactionResponseDTO.model_validate(tx.model_dump())
            for tx in transactions
        ]

    async def mark_expired(self, transaction_id: UUID) -> Optional[PaymentTransaction]:
        """Expire a pending transaction whose window has passed.

        Rows that are still inside their window, or already terminal, are
        returned unchanged.
        """
        transaction = await self.transaction_repository.get_by_id(transaction_id)
        if transaction is None:
            return None
        now = self.clock()
        if transaction.status.is_terminal or not transaction.is_expired(now):
            return transaction
        return await self.transaction_repository.transition(
            transaction_id, TransactionStatus.EXPIRED, now=now
        )

    async def mark_failed(self, transaction_id: UUID) -> Optional[PaymentTransaction]:
        return await self.transaction_repository.transition(
            transaction_id, TransactionStatus.FAILED, now=self.clock()
        )

    async def expire_stale_transactions(self, limit: int = 100) -> int:
        """Expire pending rows past their window. Returns how many moved."""
        ids = await self.transaction_repository.get_expired_pending_ids(
            self.clock(), limit
        )
        expired = 0
        for raw_id in ids:
            transaction = await self.mark_expired(UUID(raw_id))
            if transaction is not None and transaction.status is TransactionStatus.EXPIRED:
                expired += 1
        if expired:
            logger.info("Expired %d stale top-up transaction(s)", expired)
        return expired

    async def _settle(
        self, transaction: PaymentTransaction, external_transaction_id: Optional[str]
    ) -> TopupStatusResponseDTO:
        try:
            result = await self.credit_service.credit(
                transaction.id, external_transaction_id
            )
        except InvalidTransactionStateError as e:
            # Expired or failed between the read and the credit
            logger.error(
                "Payment for transaction %s was confirmed (external id %s) but the "
                "transaction is %s; it was not credited and needs manual reconciliation",
                transaction.id,
                external_transaction_id,
                e.status,
            )
            current = await self.get_transaction(transaction.user_id, transaction.id)
            return await self._after_transition(current)
        return self._report(
            transaction,
            status=TransactionStatus.COMPLETED,
            new_balance=result.new_balance,
        )

    async def _completed(
        self, transaction: PaymentTransaction
    ) -> TopupStatusResponseDTO:
        balance = await self.wallet_repository.get_balance(
            transaction.user_id, transaction.currency
        )
        return self._report(transaction, new_balance=balance.balance)

    async def _after_transition(
        self, transaction: PaymentTransaction
    ) -> TopupStatusResponseDTO:
        if transaction.status is TransactionStatus.COMPLETED:
            return await self._completed(transaction)
        if transaction.status is TransactionStatus.EXPIRED:
            return self._report(transaction, message=MESSAGE_EXPIRED)
        if transaction.status is TransactionStatus.FAILED:
            return self._report(transaction, message=MESSAGE_FAILED)
        return self._report(transaction, message=MESSAGE_VERIFYING)

    def _report(
        self,
        transaction: PaymentTransaction,
        *,
        status: Optional[TransactionStatus] = None,
        new_balance: Optional[Decimal] = None,
        message: Optional[str] = None,
    ) -> TopupStatusResponseDTO:
        return TopupStatusResponseDTO(
            transaction_id=transaction.id,
            status=status or transaction.status,
            amount=transaction.amount,
            currency=transaction.currency,
            new_balance=new_balance,
            message=message,
        )
