"""
Expense model with per-user splits.
"""
from sqlalchemy import Column, String, Numeric, DateTime, Boolean, Enum as SQLEnum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from splitledger.db.base import BaseModel
import enum


class SplitType(str, enum.Enum):
    """How the expense amount was divided."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    EXACT = "exact"


class Expense(BaseModel):
    """Expense model representing a single shared spending event."""
    __tablename__ = "expenses"

    description = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    category = Column(String(50), nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    paid_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    split_type = Column(SQLEnum(SplitType), nullable=False, default=SplitType.EQUAL)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True, index=True)  # None for one-to-one expenses
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Relationships
    splits = relationship(
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.id",
    )


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""
    __tablename__ = "expense_splits"

    expense_id = Column(Integer, ForeignKey("expenses.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)  # Amount owed by this user
    paid = Column(Boolean, default=False, nullable=False)  # Share already settled at creation

    # Relationships
    expense = relationship("Expense", back_populates="splits")
