"""
Group management routes.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from splitledger.db.session import get_db
from splitledger.models.user import User
from splitledger.schemas.group import (
    ActionResult, ActivityLogResponse, AddMembersRequest, AddMembersResponse,
    GroupCreate, GroupListItem, GroupResponse, LeaveGroupRequest, TransferAdminRequest,
)
from splitledger.schemas.ledger import GroupLedgerResponse
from splitledger.api.dependencies import get_current_user
from splitledger.services import group_service, ledger_service
from splitledger.services.notification_service import send_group_invite_notification

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    group_data: GroupCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a new group with the caller as admin."""
    return group_service.create_group(
        db, current_user.id, group_data.name, group_data.description, group_data.member_ids
    )


@router.get("", response_model=List[GroupListItem])
async def list_groups(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's groups with the caller's balance in each."""
    return group_service.list_user_groups(db, current_user.id)


@router.get("/{group_id}/ledger", response_model=GroupLedgerResponse)
async def get_group_ledger(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Group expenses, settlements and per-member balances."""
    return ledger_service.compute_group_ledger(group_id, current_user.id, db)


@router.get("/{group_id}/activity", response_model=List[ActivityLogResponse])
async def get_group_activity(
    group_id: int,
    limit: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Recent membership activity, newest first."""
    return group_service.get_activity_log(db, group_id, current_user.id, limit)


@router.post("/{group_id}/members", response_model=AddMembersResponse)
async def add_members(
    group_id: int,
    request: AddMembersRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add members (admin only). Invite notifications are sent after the response."""
    result = group_service.add_members(db, group_id, current_user.id, request.new_member_ids)

    for notification in result.notifications:
        background_tasks.add_task(send_group_invite_notification, notification)

    return AddMembersResponse(
        added_count=result.added_count,
        message=f"Successfully added {result.added_count} member(s)"
    )


@router.delete("/{group_id}/members/{member_id}", response_model=ActionResult)
async def remove_member(
    group_id: int,
    member_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a member (admin only)."""
    group_service.remove_member(db, group_id, current_user.id, member_id)
    return ActionResult(message="Member removed successfully")


@router.post("/{group_id}/transfer-admin", response_model=ActionResult)
async def transfer_admin(
    group_id: int,
    request: TransferAdminRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Transfer the admin role to another member (admin only)."""
    group_service.transfer_admin(db, group_id, current_user.id, request.new_admin_id)
    return ActionResult(message="Admin role transferred successfully")


@router.post("/{group_id}/leave", response_model=ActionResult)
async def leave_group(
    group_id: int,
    request: Optional[LeaveGroupRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Leave a group. Admins must name a new admin unless they are the last member."""
    new_admin_id = request.new_admin_id if request else None
    group_deleted = group_service.leave_group(db, group_id, current_user.id, new_admin_id)
    if group_deleted:
        return ActionResult(message="Left group and group deleted (no members left)")
    return ActionResult(message="Left group successfully")


@router.delete("/{group_id}", response_model=ActionResult)
async def delete_group(
    group_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Delete a group with all its expenses and settlements (admin only)."""
    group_service.delete_group(db, group_id, current_user.id)
    return ActionResult(message="Group deleted successfully")
