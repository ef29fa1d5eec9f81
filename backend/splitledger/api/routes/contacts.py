"""
Contact routes.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from splitledger.db.session import get_db
from splitledger.models.user import User
from splitledger.schemas.contact import ContactsResponse
from splitledger.api.dependencies import get_current_user
from splitledger.services import contact_service

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("", response_model=ContactsResponse)
async def get_all_contacts(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """People the caller shares expenses or groups with, and the caller's groups."""
    return contact_service.get_all_contacts(db, current_user.id)
