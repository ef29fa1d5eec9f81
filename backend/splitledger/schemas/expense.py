"""
Pydantic schemas for Expense entity.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from splitledger.models.expense import SplitType


class SplitBase(BaseModel):
    """One participant's share."""
    user_id: int
    amount: Decimal
    paid: bool = False


class SplitCreate(SplitBase):
    pass


class SplitResponse(SplitBase):
    class Config:
        from_attributes = True


class ExpenseCreate(BaseModel):
    """Schema for expense creation."""
    description: str
    amount: Decimal
    category: Optional[str] = None
    date: datetime
    paid_by_user_id: int
    split_type: SplitType = SplitType.EQUAL
    splits: List[SplitCreate]
    group_id: Optional[int] = None  # None for one-to-one expenses


class ExpenseResponse(BaseModel):
    """Schema for expense response."""
    id: int
    description: str
    amount: Decimal
    category: Optional[str] = None
    date: datetime
    paid_by_user_id: int
    split_type: SplitType
    splits: List[SplitResponse] = []
    group_id: Optional[int] = None
    created_by: int
    created_at: datetime

    class Config:
        from_attributes = True


class SpendingTotal(BaseModel):
    """Schema for total personal spending in a year."""
    year: int
    total: Decimal


class MonthlySpending(BaseModel):
    """Schema for one month of personal spending."""
    month: datetime  # First day of the month
    total: Decimal
