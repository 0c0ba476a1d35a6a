"""Unit tests for top-up API routes."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from qrsettle.api.auth import get_current_user_id
from qrsettle.api.dependencies import get_topup_service
from qrsettle.api.routers.topups import router
from qrsettle.application.wallet.dtos import (
    GenerateTopupResponseDTO,
    PaymentTransactionResponseDTO,
    TopupStatusResponseDTO,
)
from qrsettle.domain.errors import (
    InvalidMerchantAccountError,
    PaymentValidationError,
    PersistenceError,
    TransactionNotFoundError,
)
from qrsettle.domain.wallet.entities import Currency, TransactionStatus
from tests.fixtures.constants import USER_ID


@pytest.fixture
def test_setup():
    """Set up test fixtures."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")

    transaction_id = uuid4()
    now = datetime.now(timezone.utc)
    generated = GenerateTopupResponseDTO(
        transaction_id=transaction_id,
        qr_code="00020101021229250021khmerzoon_wallet@aclb6304ABCD",
        amount=Decimal("10.00"),
        currency=Currency.USD,
        expires_at=now + timedelta(minutes=15),
        md5="a" * 32,
    )

    mock_service = AsyncMock()
    app.dependency_overrides[get_topup_service] = lambda: mock_service
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID

    return {
        "client": TestClient(app),
        "transaction_id": transaction_id,
        "now": now,
        "generated": generated,
        "mock_service": mock_service,
    }


def test_generate_topup_success(test_setup):
    test_setup["mock_service"].generate.return_value = test_setup["generated"]

    response = test_setup["client"].post(
        "/api/v1/topups", json={"amount": "10.00", "currency": "USD"}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["transaction_id"] == str(test_setup["transaction_id"])
    assert body["amount"] == "10.00"
    assert body["md5"] == "a" * 32
    user_id, dto = test_setup["mock_service"].generate.call_args.args
    assert user_id == USER_ID
    assert dto.amount == Decimal("10.00")


def test_generate_topup_defaults_to_usd(test_setup):
    test_setup["mock_service"].generate.return_value = test_setup["generated"]

    response = test_setup["client"].post("/api/v1/topups", json={"amount": 5})

    assert response.status_code == 201
    _, dto = test_setup["mock_service"].generate.call_args.args
    assert dto.currency is Currency.USD


def test_generate_topup_invalid_amount(test_setup):
    test_setup["mock_service"].generate.side_effect = PaymentValidationError(
        "Invalid amount. Must be between 0 and 10000"
    )

    response = test_setup["client"].post("/api/v1/topups", json={"amount": "0"})

    assert response.status_code == 400
    assert "Invalid amount" in response.json()["detail"]


def test_generate_topup_bad_merchant_configuration(test_setup):
    test_setup["mock_service"].generate.side_effect = InvalidMerchantAccountError(
        "Invalid merchant account format. Expected format: name@bank"
    )

    response = test_setup["client"].post("/api/v1/topups", json={"amount": "10"})

    assert response.status_code == 400


def test_generate_topup_storage_failure(test_setup):
    test_setup["mock_service"].generate.side_effect = PersistenceError("down")

    response = test_setup["client"].post("/api/v1/topups", json={"amount": "10"})

    assert response.status_code == 503
    assert response.json()["detail"] == "Failed to create transaction"


def test_generate_topup_unexpected_error(test_setup):
    test_setup["mock_service"].generate.side_effect = RuntimeError("boom")

    response = test_setup["client"].post("/api/v1/topups", json={"amount": "10"})

    assert response.status_code == 500
    assert "boom" not in response.text


def test_generate_topup_rejects_unknown_currency(test_setup):
    response = test_setup["client"].post(
        "/api/v1/topups", json={"amount": "10", "currency": "EUR"}
    )

    assert response.status_code == 422
    test_setup["mock_service"].generate.assert_not_called()


def test_check_status_completed(test_setup):
    test_setup["mock_service"].check_status.return_value = TopupStatusResponseDTO(
        transaction_id=test_setup["transaction_id"],
        status=TransactionStatus.COMPLETED,
        amount=Decimal("10.00"),
        currency=Currency.USD,
        new_balance=Decimal("10.00"),
    )

    response = test_setup["client"].get(
        f"/api/v1/topups/{test_setup['transaction_id']}"
    )

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["new_balance"] == "10.00"
    test_setup["mock_service"].check_status.assert_called_once_with(
        USER_ID, test_setup["transaction_id"]
    )


def test_check_status_pending_with_message(test_setup):
    test_setup["mock_service"].check_status.return_value = TopupStatusResponseDTO(
        transaction_id=test_setup["transaction_id"],
        status=TransactionStatus.PENDING,
        amount=Decimal("10.00"),
        currency=Currency.USD,
        message="Payment not confirmed by Bakong",
    )

    response = test_setup["client"].get(
        f"/api/v1/topups/{test_setup['transaction_id']}"
    )

    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert response.json()["new_balance"] is None


def test_check_status_not_found(test_setup):
    test_setup["mock_service"].check_status.side_effect = TransactionNotFoundError(
        "missing"
    )

    response = test_setup["client"].get(f"/api/v1/topups/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Transaction not found"


def test_check_status_storage_failure(test_setup):
    test_setup["mock_service"].check_status.side_effect = PersistenceError("down")

    response = test_setup["client"].get(f"/api/v1/topups/{uuid4()}")

    assert response.status_code == 503


def test_check_status_invalid_id(test_setup):
    response = test_setup["client"].get("/api/v1/topups/not-a-uuid")

    assert response.status_code == 422


def test_list_topups(test_setup):
    test_setup["mock_service"].list_for_user.return_value = [
        PaymentTransactionResponseDTO(
            id=test_setup["transaction_id"],
            amount=Decimal("10.00"),
            currency=Currency.USD,
            status=TransactionStatus.PENDING,
            correlation_hash="a" * 32,
            created_at=test_setup["now"],
            expires_at=test_setup["now"] + timedelta(minutes=15),
        )
    ]

    response = test_setup["client"].get("/api/v1/topups?skip=0&limit=10")

    assert response.status_code == 200
    assert response.json()[0]["id"] == str(test_setup["transaction_id"])
    assert response.json()[0]["amount"] == "10.00"
    test_setup["mock_service"].list_for_user.assert_called_once_with(
        USER_ID, skip=0, limit=10
    )
