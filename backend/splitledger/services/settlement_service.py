"""
Settlement service: validation against live balances and orphan cleanup.
"""
import logging
from decimal import Decimal
from typing import Optional
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from splitledger.core.exceptions import AuthorizationError, ConsistencyError, NotFoundError, ValidationError
from splitledger.core.utils import MONEY_EPSILON, is_zero, to_money, utcnow
from splitledger.models.expense import Expense, ExpenseSplit
from splitledger.models.group import Group
from splitledger.models.settlement import Settlement
from splitledger.schemas.settlement import SettlementCreate
from splitledger.services.ledger_service import net_owed_by

logger = logging.getLogger(__name__)


def validate_settlement(
    db: Session,
    caller_id: int,
    payer_id: int,
    receiver_id: int,
    amount: Decimal,
    group_id: Optional[int] = None
) -> Decimal:
    """
    Check a proposed settlement against the current balance.

    Returns how much the payer owes the receiver. The balance is always
    recomputed here; a client-supplied figure is never trusted.
    """
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    if payer_id == receiver_id:
        raise ValidationError("Payer and receiver cannot be the same user")
    if caller_id not in (payer_id, receiver_id):
        raise AuthorizationError("You must be either the payer or the receiver")

    if group_id is not None:
        group = db.query(Group).filter(Group.id == group_id).first()
        if not group:
            raise NotFoundError("Group not found", code="GROUP_NOT_FOUND")
        if not (group.is_member(payer_id) and group.is_member(receiver_id)):
            raise AuthorizationError("Both parties must be members of the group")

    amount_owed = net_owed_by(db, payer_id, receiver_id)

    if is_zero(amount_owed):
        raise ConsistencyError(
            "Nothing to settle! All expenses between you are already balanced.",
            code="NOTHING_TO_SETTLE",
        )
    if amount_owed < 0:
        raise ConsistencyError(
            "Cannot settle in this direction. The balance is reversed - the other person owes you instead.",
            code="BALANCE_REVERSED",
        )
    if amount > amount_owed + MONEY_EPSILON:
        raise ConsistencyError(
            f"Settlement amount {amount:.2f} exceeds the actual balance {amount_owed:.2f}. "
            "Please adjust the amount.",
            code="EXCEEDS_BALANCE",
        )

    return amount_owed


def create_settlement(db: Session, caller_id: int, data: SettlementCreate) -> Settlement:
    """Validate and record a single settlement with a server-side timestamp."""
    validate_settlement(
        db,
        caller_id,
        data.paid_by_user_id,
        data.received_by_user_id,
        data.amount,
        data.group_id,
    )

    settlement = Settlement(
        amount=to_money(data.amount),
        note=data.note,
        date=utcnow(),
        paid_by_user_id=data.paid_by_user_id,
        received_by_user_id=data.received_by_user_id,
        group_id=data.group_id,
        related_expense_ids=data.related_expense_ids,
        created_by=caller_id,
    )
    db.add(settlement)
    db.commit()
    db.refresh(settlement)

    logger.info(
        f"Settlement {settlement.id} recorded: user {settlement.paid_by_user_id} -> "
        f"user {settlement.received_by_user_id} ({settlement.amount})"
    )
    return settlement


def _has_backing_expenses(db: Session, settlement: Settlement) -> bool:
    if settlement.group_id is not None:
        return db.query(Expense.id).filter(Expense.group_id == settlement.group_id).first() is not None

    payer, receiver = settlement.paid_by_user_id, settlement.received_by_user_id
    payer_splits = select(ExpenseSplit.expense_id).where(ExpenseSplit.user_id == payer)
    receiver_splits = select(ExpenseSplit.expense_id).where(ExpenseSplit.user_id == receiver)
    return db.query(Expense.id).filter(
        Expense.group_id.is_(None),
        or_(
            (Expense.paid_by_user_id == payer) & Expense.id.in_(receiver_splits),
            (Expense.paid_by_user_id == receiver) & Expense.id.in_(payer_splits),
        ),
    ).first() is not None


def cleanup_orphaned_settlements(db: Session, user_id: int) -> int:
    """
    Delete the user's settlements that no longer have any expense behind them.

    Group settlements are orphaned when the group has no expenses left;
    one-to-one settlements when the pair has no one-to-one expense left.
    Safe to run repeatedly: a second run finds nothing.
    """
    settlements = db.query(Settlement).filter(
        or_(Settlement.paid_by_user_id == user_id, Settlement.received_by_user_id == user_id)
    ).all()

    deleted_count = 0
    for settlement in settlements:
        if not _has_backing_expenses(db, settlement):
            db.delete(settlement)
            deleted_count += 1

    if deleted_count:
        db.commit()
        logger.info(f"Cleaned up {deleted_count} orphaned settlement(s) for user {user_id}")

    return deleted_count
