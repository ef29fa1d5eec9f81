"""
Contacts: the people and groups a user can record expenses with.
"""
from sqlalchemy.orm import Session
from splitledger.models.group import Group, GroupMember
from splitledger.models.user import User
from splitledger.schemas.contact import ContactGroup, ContactsResponse, ContactUser
from splitledger.services.ledger_service import get_user_expenses


def get_all_contacts(db: Session, user_id: int) -> ContactsResponse:
    """
    Everyone the user shares an expense with, plus every member of the
    user's groups even before any expense exists. Both lists sort by name.
    """
    contact_ids = set()
    for expense in get_user_expenses(db, user_id):
        contact_ids.add(expense.paid_by_user_id)
        contact_ids.update(split.user_id for split in expense.splits)

    groups = db.query(Group).join(GroupMember).filter(GroupMember.user_id == user_id).all()
    for group in groups:
        contact_ids.update(member.user_id for member in group.members)

    contact_ids.discard(user_id)
    users = db.query(User).filter(User.id.in_(list(contact_ids))).all() if contact_ids else []

    contacts = [
        ContactUser(id=u.id, name=u.name, email=u.email, image_url=u.image_url)
        for u in users
    ]
    contacts.sort(key=lambda c: (c.name.casefold(), c.id))

    group_items = [
        ContactGroup(
            id=g.id,
            name=g.name,
            description=g.description,
            member_count=len(g.members),
        )
        for g in groups
    ]
    group_items.sort(key=lambda g: (g.name.casefold(), g.id))

    return ContactsResponse(users=contacts, groups=group_items)
