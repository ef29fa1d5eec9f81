"""
Dashboard routes: balances and spending summaries.
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from splitledger.db.session import get_db
from splitledger.models.user import User
from splitledger.schemas.expense import MonthlySpending, SpendingTotal
from splitledger.schemas.ledger import UserBalancesResponse
from splitledger.api.dependencies import get_current_user
from splitledger.services import dashboard_service, ledger_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/balances", response_model=UserBalancesResponse)
async def get_user_balances(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Balances with every counterpart, one-to-one and group combined."""
    return ledger_service.compute_user_balances(current_user.id, db)


@router.get("/total-spent", response_model=SpendingTotal)
async def get_total_spent(
    year: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Total of the caller's own shares for a year (default: current year)."""
    return dashboard_service.get_total_spent(db, current_user.id, year or date.today().year)


@router.get("/monthly-spending", response_model=List[MonthlySpending])
async def get_monthly_spending(
    year: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The caller's own shares per month for a year (default: current year)."""
    return dashboard_service.get_monthly_spending(db, current_user.id, year or date.today().year)
