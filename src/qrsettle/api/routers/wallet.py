"""Wallet API routes."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...application.wallet.dtos import (
    BalanceResponseDTO,
    WalletHistoryEntryResponseDTO,
)
from ...domain.errors import PersistenceError
from ...domain.wallet.entities import Currency
from ...domain.wallet.repositories import WalletRepository
from ..auth import get_current_user_id
from ..dependencies import get_wallet_repository

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("/balance", response_model=BalanceResponseDTO)
async def get_balance(
    currency: Currency = Query(Currency.USD),
    user_id: str = Depends(get_current_user_id),
    wallet_repository: WalletRepository = Depends(get_wallet_repository),
) -> BalanceResponseDTO:
    """Get the caller's balance in one currency."""
    try:
        balance = await wallet_repository.get_balance(user_id, currency)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )
    return BalanceResponseDTO(
        user_id=balance.user_id, currency=balance.currency, balance=balance.balance
    )


@router.get("/history", response_model=List[WalletHistoryEntryResponseDTO])
async def get_history(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    wallet_repository: WalletRepository = Depends(get_wallet_repository),
) -> List[WalletHistoryEntryResponseDTO]:
    """Get the caller's wallet credits, newest first."""
    try:
        entries = await wallet_repository.get_history(user_id, skip, limit)
    except PersistenceError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage unavailable",
        )
    return [
        WalletHistoryEntryResponseDTO.model_validate(entry.model_dump())
        for entry in entries
    ]
