"""
Expense routes.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from splitledger.db.session import get_db
from splitledger.models.user import User
from splitledger.schemas.expense import ExpenseCreate, ExpenseResponse
from splitledger.schemas.group import ActionResult
from splitledger.schemas.ledger import PairBalanceResponse
from splitledger.api.dependencies import get_current_user
from splitledger.services import expense_service, ledger_service

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    expense_data: ExpenseCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new expense with explicit splits."""
    return expense_service.create_expense(db, current_user.id, expense_data)


@router.get("/between/{user_id}", response_model=PairBalanceResponse)
async def get_expenses_between_users(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Shared expenses, settlements and net balance with another user."""
    return ledger_service.compute_pair_balance(current_user.id, user_id, db)


@router.delete("/{expense_id}", response_model=ActionResult)
async def delete_expense(
    expense_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete an expense (creator or payer only)."""
    expense_service.delete_expense(db, expense_id, current_user.id)
    return ActionResult(message="Expense deleted successfully")
