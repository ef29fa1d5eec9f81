"""
Pydantic schemas for computed balances.
"""
from pydantic import BaseModel
from typing import List, Literal, Optional
from decimal import Decimal
from splitledger.schemas.user import UserSummary
from splitledger.schemas.expense import ExpenseResponse
from splitledger.schemas.settlement import SettlementResponse
from splitledger.schemas.group import GroupMemberResponse


class CounterpartBalance(BaseModel):
    """Unsigned amount owed between the viewer and one counterpart."""
    user_id: int
    name: str
    image_url: Optional[str] = None
    amount: Decimal


class OweDetails(BaseModel):
    you_owe: List[CounterpartBalance] = []
    you_are_owed_by: List[CounterpartBalance] = []


class UserBalancesResponse(BaseModel):
    """Dashboard balances across all counterparts."""
    you_owe: Decimal
    you_are_owed: Decimal
    total_balance: Decimal
    owe_details: OweDetails


class PairBalanceResponse(BaseModel):
    """Expenses, settlements and net balance between two users."""
    expenses: List[ExpenseResponse]
    settlements: List[SettlementResponse]
    other_user: UserSummary
    balance: Decimal  # Positive = other user owes the viewer


class DebtTo(BaseModel):
    to_user_id: int
    amount: Decimal


class DebtFrom(BaseModel):
    from_user_id: int
    amount: Decimal


class MemberBalance(GroupMemberResponse):
    """Per-member totals and netted pairwise debts within a group."""
    total_balance: Decimal
    owes: List[DebtTo] = []
    owed_by: List[DebtFrom] = []


class GroupInfo(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class GroupLedgerResponse(BaseModel):
    """Full group ledger view."""
    group: GroupInfo
    members: List[GroupMemberResponse]
    expenses: List[ExpenseResponse]
    settlements: List[SettlementResponse]
    balances: List[MemberBalance]


class SettlementCounterpart(BaseModel):
    user_id: int
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None


class UserSettlementData(BaseModel):
    """What the viewer and one other user owe each other overall."""
    type: Literal["user"] = "user"
    counterpart: SettlementCounterpart
    you_are_owed: Decimal
    you_owe: Decimal
    net_balance: Decimal  # Positive = counterpart owes the viewer


class MemberSettlementBalance(BaseModel):
    """The viewer's position against one other member, within one group."""
    user_id: int
    name: str
    image_url: Optional[str] = None
    you_are_owed: Decimal
    you_owe: Decimal
    net_balance: Decimal


class GroupSettlementData(BaseModel):
    """The viewer's per-member positions inside a group."""
    type: Literal["group"] = "group"
    group: GroupInfo
    balances: List[MemberSettlementBalance]
