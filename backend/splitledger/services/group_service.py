"""
Group membership manager.

Sole mutator of group membership and sole writer of membership activity
log entries. Every command validates fully before its first write. Member
departures (remove / leave) commit the membership change first and then
rewrite the group's expenses and settlements; if that second step fails the
membership change stands and the failure is logged, leaving
cleanup_orphaned_settlements to reconcile later.
"""
import logging
from typing import Dict, List, Optional
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from splitledger.core.config import settings
from splitledger.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from splitledger.core.utils import utcnow
from splitledger.models.activity_log import ActivityLog, ActivityType
from splitledger.models.expense import Expense
from splitledger.models.group import Group, GroupMember, MemberRole
from splitledger.models.settlement import Settlement
from splitledger.models.user import User
from splitledger.schemas.group import ActivityLogResponse, GroupListItem
from splitledger.schemas.user import UserSummary
from splitledger.services.ledger_service import get_group_expenses, get_group_settlements, group_net_position
from splitledger.services.notification_service import GroupInviteNotification

logger = logging.getLogger(__name__)


class AddMembersResult:
    """Outcome of add_members: count plus the notifications to dispatch."""
    def __init__(self, added_count: int, notifications: List[GroupInviteNotification]):
        self.added_count = added_count
        self.notifications = notifications


def _load_group(db: Session, group_id: int, lock: bool = False) -> Group:
    """Fetch a group, taking a row lock for membership edits."""
    query = db.query(Group).filter(Group.id == group_id)
    if lock:
        query = query.with_for_update()
    group = query.first()
    if not group:
        raise NotFoundError("Group not found", code="GROUP_NOT_FOUND")
    return group


def _require_admin(group: Group, user_id: int, action: str) -> None:
    if not group.is_admin(user_id):
        raise AuthorizationError(f"Only group admins can {action}", code="NOT_ADMIN")


def _log_activity(
    db: Session,
    group_id: int,
    activity_type: ActivityType,
    performed_by: int,
    target_user_id: Optional[int] = None,
    target_user_ids: Optional[List[int]] = None,
    details: Optional[Dict] = None
) -> None:
    db.add(ActivityLog(
        group_id=group_id,
        type=activity_type,
        performed_by=performed_by,
        target_user_id=target_user_id,
        target_user_ids=target_user_ids,
        timestamp=utcnow(),
        details=details,
    ))


def _assign_admin(group: Group, new_admin_id: int) -> None:
    """Make new_admin_id the only admin."""
    for member in group.members:
        member.role = MemberRole.ADMIN if member.user_id == new_admin_id else MemberRole.MEMBER


def _delete_group_records(db: Session, group: Group) -> None:
    """Hard-delete a group with its expenses, settlements, members and log."""
    for expense in db.query(Expense).filter(Expense.group_id == group.id).all():
        db.delete(expense)
    for settlement in db.query(Settlement).filter(Settlement.group_id == group.id).all():
        db.delete(settlement)
    db.delete(group)


def _cascade_departure(db: Session, group_id: int, user_id: int) -> None:
    """
    Rewrite group expenses and settlements after user_id left the group.

    The user's split is dropped; an expense with no splits left is deleted;
    an expense the user paid moves to the first remaining split holder,
    whose split is marked paid. Settlements involving the user are deleted.
    """
    try:
        for expense in get_group_expenses(db, group_id):
            remaining = [split for split in expense.splits if split.user_id != user_id]
            if not remaining:
                db.delete(expense)
                continue

            for split in [s for s in expense.splits if s.user_id == user_id]:
                expense.splits.remove(split)

            if expense.paid_by_user_id == user_id:
                new_payer = remaining[0].user_id
                expense.paid_by_user_id = new_payer
                for split in remaining:
                    split.paid = split.user_id == new_payer

        settlements = db.query(Settlement).filter(
            Settlement.group_id == group_id,
            or_(Settlement.paid_by_user_id == user_id, Settlement.received_by_user_id == user_id),
        ).all()
        for settlement in settlements:
            db.delete(settlement)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.error(
            f"Cascade cleanup failed for user {user_id} leaving group {group_id}; membership change kept",
            exc_info=True,
        )


def create_group(
    db: Session,
    caller_id: int,
    name: str,
    description: Optional[str] = None,
    member_ids: Optional[List[int]] = None
) -> Group:
    """Create a group with the caller as admin."""
    if not name or not name.strip():
        raise ValidationError("Group name cannot be empty")

    unique_ids = [caller_id]
    for user_id in member_ids or []:
        if user_id not in unique_ids:
            unique_ids.append(user_id)

    found = {uid for (uid,) in db.query(User.id).filter(User.id.in_(unique_ids)).all()}
    for user_id in unique_ids:
        if user_id not in found:
            raise NotFoundError(f"User with ID {user_id} not found", code="USER_NOT_FOUND")

    now = utcnow()
    group = Group(
        name=name.strip(),
        description=(description or "").strip(),
        created_by=caller_id,
    )
    for user_id in unique_ids:
        group.members.append(GroupMember(
            user_id=user_id,
            role=MemberRole.ADMIN if user_id == caller_id else MemberRole.MEMBER,
            joined_at=now,
            added_by=caller_id,
        ))
    db.add(group)
    db.flush()

    _log_activity(
        db, group.id, ActivityType.GROUP_CREATED, caller_id,
        details={"member_count": len(unique_ids)},
    )
    db.commit()
    db.refresh(group)

    logger.info(f"Group {group.id} created by user {caller_id} with {len(unique_ids)} member(s)")
    return group


def add_members(db: Session, group_id: int, caller_id: int, new_member_ids: List[int]) -> AddMembersResult:
    """Add users to a group. Admin only."""
    group = _load_group(db, group_id, lock=True)
    _require_admin(group, caller_id, "add members")

    existing = {m.user_id for m in group.members}
    to_add: List[int] = []
    for user_id in new_member_ids:
        if user_id not in existing and user_id not in to_add:
            to_add.append(user_id)

    if not to_add:
        raise ValidationError("All selected users are already members of this group", code="ALREADY_MEMBERS")

    users = {u.id: u for u in db.query(User).filter(User.id.in_(to_add)).all()}
    for user_id in to_add:
        if user_id not in users:
            raise NotFoundError(f"User with ID {user_id} not found", code="USER_NOT_FOUND")

    now = utcnow()
    for user_id in to_add:
        group.members.append(GroupMember(
            user_id=user_id,
            role=MemberRole.MEMBER,
            joined_at=now,
            added_by=caller_id,
        ))

    single = len(to_add) == 1
    _log_activity(
        db, group.id,
        ActivityType.MEMBER_ADDED if single else ActivityType.MEMBERS_ADDED_BULK,
        caller_id,
        target_user_id=to_add[0] if single else None,
        target_user_ids=None if single else to_add,
        details={"member_count": len(group.members), "added_count": len(to_add)},
    )
    db.commit()

    inviter = db.query(User).filter(User.id == caller_id).first()
    notifications = [
        GroupInviteNotification(
            recipient_id=user_id,
            recipient_email=users[user_id].email,
            recipient_name=users[user_id].name,
            group_name=group.name,
            inviter_name=inviter.name if inviter else "Someone",
        )
        for user_id in to_add
    ]

    logger.info(f"User {caller_id} added {len(to_add)} member(s) to group {group_id}")
    return AddMembersResult(len(to_add), notifications)


def remove_member(db: Session, group_id: int, caller_id: int, member_id: int) -> None:
    """Remove another member from a group. Admin only."""
    group = _load_group(db, group_id, lock=True)
    _require_admin(group, caller_id, "remove members")

    if member_id == caller_id:
        raise ValidationError("Admins cannot remove themselves. Use 'Leave Group' instead.", code="SELF_REMOVAL")

    member = group.get_member(member_id)
    if member is None:
        raise NotFoundError("Member not found in group", code="MEMBER_NOT_FOUND")

    group.members.remove(member)
    _log_activity(
        db, group.id, ActivityType.MEMBER_REMOVED, caller_id,
        target_user_id=member_id,
        details={"member_count": len(group.members)},
    )
    db.commit()
    logger.info(f"User {member_id} removed from group {group_id} by user {caller_id}")

    _cascade_departure(db, group_id, member_id)


def transfer_admin(db: Session, group_id: int, caller_id: int, new_admin_id: int) -> None:
    """Hand the admin role to another member. Admin only."""
    group = _load_group(db, group_id, lock=True)
    _require_admin(group, caller_id, "transfer admin role")

    if new_admin_id == caller_id:
        raise ValidationError("You are already the admin", code="SELF_TRANSFER")
    if not group.is_member(new_admin_id):
        raise NotFoundError("User is not a member of this group", code="MEMBER_NOT_FOUND")

    _assign_admin(group, new_admin_id)
    _log_activity(db, group.id, ActivityType.ADMIN_TRANSFERRED, caller_id, target_user_id=new_admin_id)
    db.commit()
    logger.info(f"Admin of group {group_id} transferred from user {caller_id} to user {new_admin_id}")


def leave_group(db: Session, group_id: int, caller_id: int, new_admin_id: Optional[int] = None) -> bool:
    """
    Leave a group. Returns True if the group was deleted as a result.

    An admin leaving a group that still has other members must name one of
    them as the new admin. The last member leaving deletes the group.
    """
    group = _load_group(db, group_id, lock=True)

    member = group.get_member(caller_id)
    if member is None:
        raise AuthorizationError("You are not a member of this group", code="NOT_MEMBER")

    others = [m for m in group.members if m.user_id != caller_id]

    if not others:
        _delete_group_records(db, group)
        db.commit()
        logger.info(f"User {caller_id} left group {group_id}; group deleted (no members left)")
        return True

    if member.role == MemberRole.ADMIN:
        if new_admin_id is None:
            raise ValidationError(
                "Admins must transfer admin role before leaving. Please specify a new admin.",
                code="NEW_ADMIN_REQUIRED",
            )
        if new_admin_id == caller_id:
            raise ValidationError("Cannot transfer admin role to yourself", code="SELF_TRANSFER")
        if not group.is_member(new_admin_id):
            raise ValidationError("New admin must be a member of this group", code="INVALID_NEW_ADMIN")

        _assign_admin(group, new_admin_id)
        _log_activity(db, group.id, ActivityType.ADMIN_TRANSFERRED, caller_id, target_user_id=new_admin_id)

    group.members.remove(member)
    _log_activity(
        db, group.id, ActivityType.MEMBER_REMOVED, caller_id,
        target_user_id=caller_id,
        details={"member_count": len(group.members)},
    )
    db.commit()
    logger.info(f"User {caller_id} left group {group_id}")

    _cascade_departure(db, group_id, caller_id)
    return False


def delete_group(db: Session, group_id: int, caller_id: int) -> None:
    """Delete a group and everything recorded in it. Admin only."""
    group = _load_group(db, group_id, lock=True)
    _require_admin(group, caller_id, "delete groups")

    _delete_group_records(db, group)
    db.commit()
    logger.info(f"Group {group_id} deleted by user {caller_id}")


def list_user_groups(db: Session, user_id: int) -> List[GroupListItem]:
    """Groups the user belongs to, with the user's balance in each."""
    groups = db.query(Group).join(GroupMember).filter(
        GroupMember.user_id == user_id
    ).order_by(Group.id).all()

    items = []
    for group in groups:
        balance = group_net_position(
            user_id,
            get_group_expenses(db, group.id),
            get_group_settlements(db, group.id),
        )
        items.append(GroupListItem(
            id=group.id,
            name=group.name,
            description=group.description,
            member_count=len(group.members),
            balance=balance,
        ))
    return items


def get_activity_log(db: Session, group_id: int, viewer_id: int, limit: Optional[int] = None) -> List[ActivityLogResponse]:
    """
    Newest-first activity for a group.

    A missing group or a viewer who is no longer a member gets an empty list,
    since that is the normal state right after leaving or deleting.
    """
    group = db.query(Group).filter(Group.id == group_id).first()
    if not group or not group.is_member(viewer_id):
        return []

    logs = db.query(ActivityLog).filter(
        ActivityLog.group_id == group_id
    ).order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc()).limit(limit or settings.ACTIVITY_LOG_LIMIT).all()

    user_ids = set()
    for log in logs:
        user_ids.add(log.performed_by)
        if log.target_user_id:
            user_ids.add(log.target_user_id)
        user_ids.update(log.target_user_ids or [])
    users = {
        u.id: UserSummary.model_validate(u)
        for u in db.query(User).filter(User.id.in_(list(user_ids))).all()
    } if user_ids else {}

    return [
        ActivityLogResponse(
            id=log.id,
            type=log.type,
            performer=users.get(log.performed_by),
            target_user=users.get(log.target_user_id) if log.target_user_id else None,
            target_users=[users[uid] for uid in log.target_user_ids if uid in users] if log.target_user_ids else None,
            timestamp=log.timestamp,
            metadata=log.details,
        )
        for log in logs
    ]
