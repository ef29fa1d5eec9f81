"""
Pydantic schemas for Settlement entity.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class SettlementCreate(BaseModel):
    """Schema for recording a settlement."""
    amount: Decimal
    note: Optional[str] = None
    paid_by_user_id: int
    received_by_user_id: int
    group_id: Optional[int] = None  # None when settling one-to-one
    related_expense_ids: Optional[List[int]] = None


class SettlementResponse(BaseModel):
    """Schema for settlement response."""
    id: int
    amount: Decimal
    note: Optional[str] = None
    date: datetime
    paid_by_user_id: int
    received_by_user_id: int
    group_id: Optional[int] = None
    related_expense_ids: Optional[List[int]] = None
    created_by: int

    class Config:
        from_attributes = True


class CleanupResult(BaseModel):
    """Schema for orphaned settlement cleanup result."""
    deleted_count: int
    message: str
