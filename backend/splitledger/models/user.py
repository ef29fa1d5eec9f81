"""
User model for authentication and identity.
"""
from sqlalchemy import Column, String, Boolean
from splitledger.db.base import BaseModel


class User(BaseModel):
    """User model. Referenced by id from every other entity."""
    __tablename__ = "users"

    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    image_url = Column(String(500), nullable=True)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
