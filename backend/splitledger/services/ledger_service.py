"""
Ledger engine: net balances computed from expenses and settlements.

Balances are never stored. Every read recomputes them from the source
records, so there is no cached ledger to drift from the data.

Sign convention everywhere: positive = the counterpart owes the viewer,
negative = the viewer owes the counterpart.

The pure functions at the top work on any objects exposing the Expense /
Settlement attributes; the DB-backed functions below narrow the snapshot
through the payer / receiver / split / group indexes first.
"""
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple, Union
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session, selectinload
from splitledger.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from splitledger.core.utils import is_zero, zero_if_negligible
from splitledger.models.expense import Expense, ExpenseSplit
from splitledger.models.group import Group
from splitledger.models.settlement import Settlement
from splitledger.models.user import User
from splitledger.schemas.expense import ExpenseResponse
from splitledger.schemas.group import GroupMemberResponse
from splitledger.schemas.ledger import (
    CounterpartBalance, DebtFrom, DebtTo, GroupInfo, GroupLedgerResponse, GroupSettlementData,
    MemberBalance, MemberSettlementBalance, OweDetails, PairBalanceResponse,
    SettlementCounterpart, UserBalancesResponse, UserSettlementData,
)
from splitledger.schemas.settlement import SettlementResponse
from splitledger.schemas.user import UserSummary

ZERO = Decimal("0")


def find_split(expense, user_id: int):
    for split in expense.splits:
        if split.user_id == user_id:
            return split
    return None


def accrues_debt(expense, split) -> bool:
    """
    A split creates debt toward the payer only if it belongs to someone else
    and was not marked paid when the expense was recorded.
    """
    return split.user_id != expense.paid_by_user_id and not split.paid


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------

def pair_balance(viewer_id: int, counterpart_id: int, expenses: Iterable, settlements: Iterable) -> Decimal:
    """
    Net balance between two users from the viewer's side.

    Only expenses one of them paid with the other in the splits count;
    settlements between them in either direction are applied afterwards.
    """
    balance = ZERO
    seen = set()

    for expense in expenses:
        if expense.id in seen:
            continue
        seen.add(expense.id)

        if expense.paid_by_user_id == viewer_id:
            split = find_split(expense, counterpart_id)
            if split is not None and accrues_debt(expense, split):
                balance += split.amount
        elif expense.paid_by_user_id == counterpart_id:
            split = find_split(expense, viewer_id)
            if split is not None and accrues_debt(expense, split):
                balance -= split.amount

    for settlement in settlements:
        if settlement.paid_by_user_id == viewer_id and settlement.received_by_user_id == counterpart_id:
            balance += settlement.amount
        elif settlement.paid_by_user_id == counterpart_id and settlement.received_by_user_id == viewer_id:
            balance -= settlement.amount

    return zero_if_negligible(balance)


def accrue_balances(viewer_id: int, expenses: Iterable, settlements: Iterable) -> Dict[int, Decimal]:
    """Signed balance against every counterpart appearing in the records."""
    balances: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    seen = set()

    for expense in expenses:
        if expense.id in seen:
            continue
        seen.add(expense.id)

        if expense.paid_by_user_id == viewer_id:
            for split in expense.splits:
                if accrues_debt(expense, split):
                    balances[split.user_id] += split.amount
        else:
            split = find_split(expense, viewer_id)
            if split is not None and accrues_debt(expense, split):
                balances[expense.paid_by_user_id] -= split.amount

    for settlement in settlements:
        if settlement.paid_by_user_id == viewer_id:
            balances[settlement.received_by_user_id] += settlement.amount
        elif settlement.received_by_user_id == viewer_id:
            balances[settlement.paid_by_user_id] -= settlement.amount

    return dict(balances)


def group_net_position(viewer_id: int, expenses: Iterable, settlements: Iterable) -> Decimal:
    """Viewer's total signed position over a set of records."""
    total = sum(accrue_balances(viewer_id, expenses, settlements).values(), ZERO)
    return zero_if_negligible(total)


def group_member_positions(
    viewer_id: int,
    member_ids: Sequence[int],
    expenses: Iterable,
    settlements: Iterable
) -> Dict[int, Tuple[Decimal, Decimal]]:
    """
    Viewer's (owed, owing) against each other member from one group's records.

    Settlements must come oldest first. Each one reduces the side it pays
    down and never takes it below zero.
    """
    owed = {m: ZERO for m in member_ids if m != viewer_id}
    owing = dict(owed)

    for expense in expenses:
        if expense.paid_by_user_id == viewer_id:
            for split in expense.splits:
                if split.user_id in owed and accrues_debt(expense, split):
                    owed[split.user_id] += split.amount
        elif expense.paid_by_user_id in owing:
            split = find_split(expense, viewer_id)
            if split is not None and accrues_debt(expense, split):
                owing[expense.paid_by_user_id] += split.amount

    for settlement in settlements:
        payer, receiver = settlement.paid_by_user_id, settlement.received_by_user_id
        if payer == viewer_id and receiver in owing:
            owing[receiver] = max(ZERO, owing[receiver] - settlement.amount)
        elif receiver == viewer_id and payer in owed:
            owed[payer] = max(ZERO, owed[payer] - settlement.amount)

    return {m: (owed[m], owing[m]) for m in owed}


class GroupLedger:
    """
    Pairwise debtor -> creditor matrix for a group.

    `debts[x][y]` is what x owes y after netting; at most one direction of
    each pair is non-zero. `totals[m]` is owed-to-m minus owed-by-m taken
    from the matrix before netting.
    """

    def __init__(self, member_ids: Sequence[int]):
        self.member_ids = list(member_ids)
        self.debts: Dict[int, Dict[int, Decimal]] = {
            a: {b: ZERO for b in self.member_ids if b != a} for a in self.member_ids
        }
        self.totals: Dict[int, Decimal] = {m: ZERO for m in self.member_ids}

    def _knows(self, *user_ids: int) -> bool:
        return all(uid in self.debts for uid in user_ids)

    def add_expense(self, expense) -> None:
        payer = expense.paid_by_user_id
        for split in expense.splits:
            if not accrues_debt(expense, split):
                continue
            if not self._knows(split.user_id, payer):
                continue
            self.debts[split.user_id][payer] += split.amount

    def add_settlement(self, settlement) -> None:
        payer, receiver = settlement.paid_by_user_id, settlement.received_by_user_id
        if payer == receiver or not self._knows(payer, receiver):
            return
        self.debts[payer][receiver] -= settlement.amount

    def _compute_totals(self) -> None:
        for debtor, row in self.debts.items():
            for creditor, amount in row.items():
                self.totals[creditor] += amount
                self.totals[debtor] -= amount
        for member_id, total in self.totals.items():
            self.totals[member_id] = zero_if_negligible(total)

    def _net_pairs(self) -> None:
        ids = self.member_ids
        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                diff = self.debts[a][b] - self.debts[b][a]
                if is_zero(diff):
                    self.debts[a][b] = self.debts[b][a] = ZERO
                elif diff > 0:
                    self.debts[a][b], self.debts[b][a] = diff, ZERO
                else:
                    self.debts[a][b], self.debts[b][a] = ZERO, -diff

    def settle(self) -> "GroupLedger":
        """Derive totals from the raw matrix, then net each pair."""
        self._compute_totals()
        self._net_pairs()
        return self

    def owes(self, member_id: int) -> List[DebtTo]:
        return [
            DebtTo(to_user_id=creditor, amount=amount)
            for creditor, amount in self.debts[member_id].items()
            if amount > ZERO
        ]

    def owed_by(self, member_id: int) -> List[DebtFrom]:
        return [
            DebtFrom(from_user_id=debtor, amount=self.debts[debtor][member_id])
            for debtor in self.member_ids
            if debtor != member_id and self.debts[debtor][member_id] > ZERO
        ]


def build_group_ledger(member_ids: Sequence[int], expenses: Iterable, settlements: Iterable) -> GroupLedger:
    ledger = GroupLedger(member_ids)
    for expense in expenses:
        ledger.add_expense(expense)
    for settlement in settlements:
        ledger.add_settlement(settlement)
    return ledger.settle()


# ---------------------------------------------------------------------------
# Indexed lookups
# ---------------------------------------------------------------------------

def _expense_query(db: Session):
    return db.query(Expense).options(selectinload(Expense.splits))


def get_expenses_between(db: Session, user_a: int, user_b: int) -> List[Expense]:
    """Expenses one user paid with the other in the splits, newest first."""
    involved_a = select(ExpenseSplit.expense_id).where(ExpenseSplit.user_id == user_a)
    involved_b = select(ExpenseSplit.expense_id).where(ExpenseSplit.user_id == user_b)
    return _expense_query(db).filter(
        or_(
            and_(Expense.paid_by_user_id == user_a, Expense.id.in_(involved_b)),
            and_(Expense.paid_by_user_id == user_b, Expense.id.in_(involved_a)),
        )
    ).order_by(Expense.date.desc(), Expense.id.desc()).all()


def get_settlements_between(db: Session, user_a: int, user_b: int) -> List[Settlement]:
    """Settlements between two users in either direction, newest first."""
    return db.query(Settlement).filter(
        or_(
            and_(Settlement.paid_by_user_id == user_a, Settlement.received_by_user_id == user_b),
            and_(Settlement.paid_by_user_id == user_b, Settlement.received_by_user_id == user_a),
        )
    ).order_by(Settlement.date.desc(), Settlement.id.desc()).all()


def get_user_expenses(db: Session, user_id: int) -> List[Expense]:
    """Expenses the user paid or has a split in."""
    involved = select(ExpenseSplit.expense_id).where(ExpenseSplit.user_id == user_id)
    return _expense_query(db).filter(
        or_(Expense.paid_by_user_id == user_id, Expense.id.in_(involved))
    ).all()


def get_user_settlements(db: Session, user_id: int) -> List[Settlement]:
    return db.query(Settlement).filter(
        or_(Settlement.paid_by_user_id == user_id, Settlement.received_by_user_id == user_id)
    ).all()


def get_group_expenses(db: Session, group_id: int) -> List[Expense]:
    return _expense_query(db).filter(
        Expense.group_id == group_id
    ).order_by(Expense.date.desc(), Expense.id.desc()).all()


def get_group_settlements(db: Session, group_id: int) -> List[Settlement]:
    return db.query(Settlement).filter(
        Settlement.group_id == group_id
    ).order_by(Settlement.date.desc(), Settlement.id.desc()).all()


def net_owed_by(db: Session, debtor_id: int, creditor_id: int) -> Decimal:
    """How much debtor owes creditor right now (negative if reversed)."""
    expenses = get_expenses_between(db, debtor_id, creditor_id)
    settlements = get_settlements_between(db, debtor_id, creditor_id)
    return pair_balance(creditor_id, debtor_id, expenses, settlements)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

def compute_user_balances(viewer_id: int, db: Session) -> UserBalancesResponse:
    """Dashboard balances across one-to-one and group records combined."""
    balances = accrue_balances(
        viewer_id,
        get_user_expenses(db, viewer_id),
        get_user_settlements(db, viewer_id),
    )

    nonzero = {uid: bal for uid, bal in balances.items() if not is_zero(bal)}
    users = {
        u.id: u for u in db.query(User).filter(User.id.in_(list(nonzero))).all()
    } if nonzero else {}

    you_owe: List[CounterpartBalance] = []
    you_are_owed_by: List[CounterpartBalance] = []
    for user_id, balance in nonzero.items():
        other = users.get(user_id)
        if other is None:
            # Deleted counterpart
            continue
        entry = CounterpartBalance(
            user_id=user_id,
            name=other.name or "Unknown",
            image_url=other.image_url,
            amount=abs(balance),
        )
        if balance > 0:
            you_are_owed_by.append(entry)
        else:
            you_owe.append(entry)

    you_owe.sort(key=lambda e: e.amount, reverse=True)
    you_are_owed_by.sort(key=lambda e: e.amount, reverse=True)

    owe_total = sum((e.amount for e in you_owe), ZERO)
    owed_total = sum((e.amount for e in you_are_owed_by), ZERO)

    return UserBalancesResponse(
        you_owe=owe_total,
        you_are_owed=owed_total,
        total_balance=owed_total - owe_total,
        owe_details=OweDetails(you_owe=you_owe, you_are_owed_by=you_are_owed_by),
    )


def compute_pair_balance(viewer_id: int, counterpart_id: int, db: Session) -> PairBalanceResponse:
    """Shared history and net balance between the viewer and one other user."""
    if viewer_id == counterpart_id:
        raise ValidationError("Cannot compute a balance with yourself")

    other = db.query(User).filter(User.id == counterpart_id).first()
    if not other:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    expenses = get_expenses_between(db, viewer_id, counterpart_id)
    settlements = get_settlements_between(db, viewer_id, counterpart_id)

    return PairBalanceResponse(
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
        settlements=[SettlementResponse.model_validate(s) for s in settlements],
        other_user=UserSummary.model_validate(other),
        balance=pair_balance(viewer_id, counterpart_id, expenses, settlements),
    )


def compute_group_ledger(group_id: int, viewer_id: int, db: Session) -> GroupLedgerResponse:
    """Group expenses, settlements and the netted per-member balances."""
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group:
        raise NotFoundError("Group not found or has been deleted", code="GROUP_NOT_FOUND")
    if not group.is_member(viewer_id):
        raise AuthorizationError("You are not a member of this group", code="NOT_MEMBER")

    roles = {m.user_id: m.role for m in group.members}
    users = {u.id: u for u in db.query(User).filter(User.id.in_(list(roles))).all()}
    members = [
        GroupMemberResponse(
            id=uid,
            name=users[uid].name,
            email=users[uid].email,
            image_url=users[uid].image_url,
            role=roles[uid],
        )
        for uid in roles
        if uid in users
    ]

    expenses = get_group_expenses(db, group_id)
    settlements = get_group_settlements(db, group_id)
    ledger = build_group_ledger([m.id for m in members], expenses, settlements)

    balances = [
        MemberBalance(
            **member.model_dump(),
            total_balance=ledger.totals[member.id],
            owes=ledger.owes(member.id),
            owed_by=ledger.owed_by(member.id),
        )
        for member in members
    ]

    return GroupLedgerResponse(
        group=GroupInfo(id=group.id, name=group.name, description=group.description),
        members=members,
        expenses=[ExpenseResponse.model_validate(e) for e in expenses],
        settlements=[SettlementResponse.model_validate(s) for s in settlements],
        balances=balances,
    )


def compute_settlement_data(
    entity_type: str,
    entity_id: int,
    viewer_id: int,
    db: Session
) -> Union[UserSettlementData, GroupSettlementData]:
    """
    Balances behind a settle-up screen.

    For a user: the overall net with that user, group records included.
    For a group: the viewer's position against each other member, counting
    only that group's expenses and settlements.
    """
    if entity_type == "user":
        if entity_id == viewer_id:
            raise ValidationError("Cannot settle with yourself")
        other = db.query(User).filter(User.id == entity_id).first()
        if not other:
            raise NotFoundError("User not found", code="USER_NOT_FOUND")

        net = net_owed_by(db, entity_id, viewer_id)
        return UserSettlementData(
            counterpart=SettlementCounterpart(
                user_id=other.id,
                name=other.name,
                email=other.email,
                image_url=other.image_url,
            ),
            you_are_owed=net if net > 0 else ZERO,
            you_owe=-net if net < 0 else ZERO,
            net_balance=net,
        )

    if entity_type == "group":
        group = db.query(Group).filter(Group.id == entity_id).first()
        if not group:
            raise NotFoundError("Group not found", code="GROUP_NOT_FOUND")
        if not group.is_member(viewer_id):
            raise AuthorizationError("You are not a member of this group", code="NOT_MEMBER")

        positions = group_member_positions(
            viewer_id,
            [m.user_id for m in group.members],
            get_group_expenses(db, group.id),
            reversed(get_group_settlements(db, group.id)),
        )
        users = {
            u.id: u for u in db.query(User).filter(User.id.in_(list(positions))).all()
        } if positions else {}

        balances = []
        for user_id, (owed, owing) in positions.items():
            user = users.get(user_id)
            balances.append(MemberSettlementBalance(
                user_id=user_id,
                name=user.name if user else "Unknown",
                image_url=user.image_url if user else None,
                you_are_owed=owed,
                you_owe=owing,
                net_balance=owed - owing,
            ))

        return GroupSettlementData(
            group=GroupInfo(id=group.id, name=group.name, description=group.description),
            balances=balances,
        )

    raise ValidationError("Invalid entity type; expected 'user' or 'group'", code="INVALID_ENTITY_TYPE")
