"""
Pydantic schemas for the contacts listing.
"""
from pydantic import BaseModel
from typing import List, Literal, Optional


class ContactUser(BaseModel):
    """Someone the caller shares expenses or a group with."""
    id: int
    name: str
    email: Optional[str] = None
    image_url: Optional[str] = None
    type: Literal["user"] = "user"


class ContactGroup(BaseModel):
    """One of the caller's groups."""
    id: int
    name: str
    description: Optional[str] = None
    member_count: int
    type: Literal["group"] = "group"


class ContactsResponse(BaseModel):
    users: List[ContactUser] = []
    groups: List[ContactGroup] = []
