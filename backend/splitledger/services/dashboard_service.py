"""
Dashboard service for personal spending summaries.
"""
from datetime import datetime
from decimal import Decimal
from typing import List
from sqlalchemy.orm import Session, selectinload
from splitledger.models.expense import Expense, ExpenseSplit
from splitledger.schemas.expense import MonthlySpending, SpendingTotal


def _user_splits_in_year(db: Session, user_id: int, year: int) -> List[tuple]:
    """(expense date, user's split amount) for expenses dated within year."""
    start = datetime(year, 1, 1)
    end = datetime(year + 1, 1, 1)
    expenses = db.query(Expense).options(selectinload(Expense.splits)).join(
        ExpenseSplit, ExpenseSplit.expense_id == Expense.id
    ).filter(
        Expense.date >= start,
        Expense.date < end,
        ExpenseSplit.user_id == user_id,
    ).all()

    rows = []
    for expense in expenses:
        for split in expense.splits:
            if split.user_id == user_id:
                rows.append((expense.date, split.amount))
    return rows


def get_total_spent(db: Session, user_id: int, year: int) -> SpendingTotal:
    """Sum of the user's own shares over the year."""
    total = sum((amount for _, amount in _user_splits_in_year(db, user_id, year)), Decimal("0"))
    return SpendingTotal(year=year, total=total)


def get_monthly_spending(db: Session, user_id: int, year: int) -> List[MonthlySpending]:
    """The user's own shares bucketed by month; all twelve months present."""
    totals = {month: Decimal("0") for month in range(1, 13)}
    for expense_date, amount in _user_splits_in_year(db, user_id, year):
        totals[expense_date.month] += amount

    return [
        MonthlySpending(month=datetime(year, month, 1), total=total)
        for month, total in sorted(totals.items())
    ]
