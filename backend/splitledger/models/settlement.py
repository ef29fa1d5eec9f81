"""
Settlement model for payments recorded between users.
"""
from sqlalchemy import Column, Numeric, DateTime, Text, ForeignKey, Integer, JSON
from splitledger.db.base import BaseModel


class Settlement(BaseModel):
    """A real-world payment that reduces the payer's debt to the receiver."""
    __tablename__ = "settlements"

    amount = Column(Numeric(15, 2), nullable=False)
    note = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, index=True)  # Server-assigned
    paid_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    received_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(Integer, ForeignKey("groups.id"), nullable=True, index=True)  # None for one-to-one settlements
    related_expense_ids = Column(JSON, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
