"""
Settlement routes.
"""
from typing import Union
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from splitledger.db.session import get_db
from splitledger.models.user import User
from splitledger.schemas.ledger import GroupSettlementData, UserSettlementData
from splitledger.schemas.settlement import CleanupResult, SettlementCreate, SettlementResponse
from splitledger.api.dependencies import get_current_user
from splitledger.services import ledger_service, settlement_service

router = APIRouter(prefix="/settlements", tags=["settlements"])


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    settlement_data: SettlementCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Record a payment after checking it against the current balance."""
    return settlement_service.create_settlement(db, current_user.id, settlement_data)


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_orphaned_settlements(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove the caller's settlements that no longer have any expenses behind them."""
    deleted_count = settlement_service.cleanup_orphaned_settlements(db, current_user.id)
    message = (
        f"Cleaned up {deleted_count} orphaned settlement(s)"
        if deleted_count else "No orphaned settlements found"
    )
    return CleanupResult(deleted_count=deleted_count, message=message)


@router.get("/{entity_type}/{entity_id}", response_model=Union[UserSettlementData, GroupSettlementData])
async def get_settlement_data(
    entity_type: str,
    entity_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Balances to settle with a user ("user") or within a group ("group")."""
    return ledger_service.compute_settlement_data(entity_type, entity_id, current_user.id, db)
