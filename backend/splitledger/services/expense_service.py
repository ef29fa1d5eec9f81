"""
Expense service for expense-related business logic.
"""
import logging
from decimal import Decimal
from sqlalchemy.orm import Session
from splitledger.core.config import settings
from splitledger.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from splitledger.core.utils import is_zero, to_money
from splitledger.models.expense import Expense, ExpenseSplit
from splitledger.models.group import Group
from splitledger.models.settlement import Settlement
from splitledger.models.user import User
from splitledger.schemas.expense import ExpenseCreate

logger = logging.getLogger(__name__)


def validate_splits(amount: Decimal, splits: list) -> None:
    """Splits must be non-empty, one per user, and add up to the amount."""
    if not splits:
        raise ValidationError("An expense needs at least one split")

    user_ids = [split.user_id for split in splits]
    if len(set(user_ids)) != len(user_ids):
        raise ValidationError("Each user can appear only once in the splits")

    if any(to_money(split.amount) < 0 for split in splits):
        raise ValidationError("Split amounts cannot be negative")

    total = sum((to_money(split.amount) for split in splits), Decimal("0"))
    if not is_zero(total - amount):
        raise ValidationError("Split amounts must add up to the total expense amount")


def create_expense(db: Session, caller_id: int, data: ExpenseCreate) -> Expense:
    """Create an expense with its splits."""
    amount = to_money(data.amount)
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    if not data.description or not data.description.strip():
        raise ValidationError("Description cannot be empty")

    if data.group_id is not None:
        group = db.query(Group).filter(Group.id == data.group_id).first()
        if not group:
            raise NotFoundError("Group not found", code="GROUP_NOT_FOUND")
        if not group.is_member(caller_id):
            raise AuthorizationError("You are not a member of this group", code="NOT_MEMBER")
        if not group.is_member(data.paid_by_user_id):
            raise ValidationError("The payer must be a member of this group")
        outsiders = [s.user_id for s in data.splits if not group.is_member(s.user_id)]
        if outsiders:
            raise ValidationError(f"Users {outsiders} are not members of this group")

    validate_splits(amount, data.splits)

    referenced = {data.paid_by_user_id} | {s.user_id for s in data.splits}
    found = {uid for (uid,) in db.query(User.id).filter(User.id.in_(list(referenced))).all()}
    missing = sorted(referenced - found)
    if missing:
        raise NotFoundError(f"User with ID {missing[0]} not found", code="USER_NOT_FOUND")

    expense = Expense(
        description=data.description.strip(),
        amount=amount,
        category=data.category or settings.DEFAULT_EXPENSE_CATEGORY,
        date=data.date,
        paid_by_user_id=data.paid_by_user_id,
        split_type=data.split_type,
        group_id=data.group_id,
        created_by=caller_id,
    )
    for split in data.splits:
        expense.splits.append(ExpenseSplit(
            user_id=split.user_id,
            amount=to_money(split.amount),
            paid=split.paid,
        ))

    db.add(expense)
    db.commit()
    db.refresh(expense)

    logger.info(f"Expense {expense.id} created by user {caller_id} ({expense.amount}, {len(expense.splits)} splits)")
    return expense


def _participants(expense: Expense) -> set:
    users = {split.user_id for split in expense.splits}
    users.add(expense.paid_by_user_id)
    return users


def delete_expense(db: Session, expense_id: int, caller_id: int) -> None:
    """
    Delete an expense. Only its creator or payer may do so.

    When it was the last expense of its group, or the last one-to-one
    expense among the same users, their settlements go with it.
    """
    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    if not expense:
        raise NotFoundError("Expense not found", code="EXPENSE_NOT_FOUND")

    if caller_id not in (expense.created_by, expense.paid_by_user_id):
        raise AuthorizationError("You don't have permission to delete this expense")

    group_id = expense.group_id
    involved = _participants(expense)

    db.delete(expense)
    db.flush()

    if group_id is not None:
        remaining = db.query(Expense.id).filter(Expense.group_id == group_id).first()
        if remaining is None:
            stale = db.query(Settlement).filter(Settlement.group_id == group_id).all()
        else:
            stale = []
    else:
        candidates = db.query(Expense).filter(
            Expense.group_id.is_(None),
            Expense.paid_by_user_id.in_(list(involved)),
        ).all()
        if any(_participants(e) == involved for e in candidates):
            stale = []
        else:
            stale = db.query(Settlement).filter(
                Settlement.group_id.is_(None),
                Settlement.paid_by_user_id.in_(list(involved)),
                Settlement.received_by_user_id.in_(list(involved)),
            ).all()

    for settlement in stale:
        db.delete(settlement)

    db.commit()
    logger.info(f"Expense {expense_id} deleted by user {caller_id}; {len(stale)} settlement(s) removed")
