"""
Append-only activity log for group membership events.
"""
from sqlalchemy import Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON
from sqlalchemy.orm import relationship
from splitledger.db.base import BaseModel
from splitledger.core.utils import utcnow
import enum


class ActivityType(str, enum.Enum):
    """Activity log entry type."""
    GROUP_CREATED = "group_created"
    MEMBER_ADDED = "member_added"
    MEMBERS_ADDED_BULK = "members_added_bulk"
    MEMBER_REMOVED = "member_removed"
    ADMIN_TRANSFERRED = "admin_transferred"


class ActivityLog(BaseModel):
    """Activity log entry. Removed only together with its group."""
    __tablename__ = "activity_logs"

    group_id = Column(Integer, ForeignKey("groups.id"), nullable=False, index=True)
    type = Column(SQLEnum(ActivityType), nullable=False)
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    target_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    target_user_ids = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)

    # Relationships
    group = relationship("Group", back_populates="activity_logs")
