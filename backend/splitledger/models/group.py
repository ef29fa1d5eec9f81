"""
Group model with ordered membership records.
"""
from sqlalchemy import Column, String, Text, DateTime, Enum as SQLEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from splitledger.db.base import BaseModel
from splitledger.core.utils import utcnow
import enum


class MemberRole(str, enum.Enum):
    """Group member role enumeration."""
    ADMIN = "admin"
    MEMBER = "member"


class Group(BaseModel):
    """Group of users sharing expenses."""
    __tablename__ = "groups"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True, default="")
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Relationships
    members = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMember.id",
    )
    activity_logs = relationship("ActivityLog", back_populates="group", cascade="all, delete-orphan")

    def get_member(self, user_id: int):
        """Membership record for user_id, or None."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: int) -> bool:
        return self.get_member(user_id) is not None

    def is_admin(self, user_id: int) -> bool:
        member = self.get_member(user_id)
        return member is not None and member.role == MemberRole.ADMIN


class GroupMember(BaseModel):
    """Membership of one user in one group."""
    __tablename__ = "group_members"

    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(SQLEnum(MemberRole), default=MemberRole.MEMBER, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
    added_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Relationships
    group = relationship("Group", back_populates="members")
    user = relationship("User", foreign_keys=[user_id])

    # One membership per user per group
    __table_args__ = (
        UniqueConstraint('group_id', 'user_id', name='uq_group_user_member'),
    )
