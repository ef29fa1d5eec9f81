"""Models package - Import all models for SQLAlchemy registration."""
from splitledger.models.user import User
from splitledger.models.group import Group, GroupMember, MemberRole
from splitledger.models.expense import Expense, ExpenseSplit, SplitType
from splitledger.models.settlement import Settlement
from splitledger.models.activity_log import ActivityLog, ActivityType

__all__ = [
    "User",
    "Group",
    "GroupMember",
    "MemberRole",
    "Expense",
    "ExpenseSplit",
    "SplitType",
    "Settlement",
    "ActivityLog",
    "ActivityType",
]
