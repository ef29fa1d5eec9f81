"""
Pydantic schemas for Group entity and membership commands.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from splitledger.models.group import MemberRole
from splitledger.models.activity_log import ActivityType
from splitledger.schemas.user import UserSummary


class GroupCreate(BaseModel):
    """Schema for group creation."""
    name: str
    description: Optional[str] = None
    member_ids: List[int] = []


class GroupResponse(BaseModel):
    """Schema for group response."""
    id: int
    name: str
    description: Optional[str] = None
    created_by: int
    created_at: datetime

    class Config:
        from_attributes = True


class GroupListItem(BaseModel):
    """Schema for a group in the caller's group list."""
    id: int
    name: str
    description: Optional[str] = None
    member_count: int
    balance: Decimal  # Caller's signed position in the group


class GroupMemberResponse(BaseModel):
    """Schema for a member with role."""
    id: int
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None
    role: MemberRole


class AddMembersRequest(BaseModel):
    """Schema for adding members to a group."""
    new_member_ids: List[int] = Field(..., min_length=1)


class AddMembersResponse(BaseModel):
    added_count: int
    message: str


class TransferAdminRequest(BaseModel):
    new_admin_id: int


class LeaveGroupRequest(BaseModel):
    new_admin_id: Optional[int] = None  # Required when the caller is admin


class ActionResult(BaseModel):
    """Generic success response for membership commands."""
    success: bool = True
    message: str


class ActivityLogResponse(BaseModel):
    """Schema for an activity log entry enriched with user details."""
    id: int
    type: ActivityType
    performer: Optional[UserSummary] = None
    target_user: Optional[UserSummary] = None
    target_users: Optional[List[UserSummary]] = None
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None
