"""
Shared fixtures: in-memory database, API client and record factories.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from datetime import datetime
from decimal import Decimal
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import splitledger.models  # noqa: F401
from splitledger.core.security import create_user_token
from splitledger.db.base import Base
from splitledger.db.session import get_db
from splitledger.main import app
from splitledger.models.user import User
from splitledger.schemas.expense import ExpenseCreate, SplitCreate
from splitledger.schemas.settlement import SettlementCreate
from splitledger.services import expense_service, group_service, settlement_service

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(name: str, email: str = None) -> User:
        user = User(
            name=name,
            email=email or f"{name.lower()}@example.com",
            hashed_password="not-a-real-hash",
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    return make_user("Carol")


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_user_token(user.id, user.email)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_expense(db):
    """Create an expense through the service. splits: {user: amount} or [(user, amount, paid)]."""
    def _make(payer: User, amount, splits, group=None, creator: User = None, description="Dinner"):
        if isinstance(splits, dict):
            items = [(user, value, user.id == payer.id) for user, value in splits.items()]
        else:
            items = splits
        data = ExpenseCreate(
            description=description,
            amount=Decimal(str(amount)),
            date=datetime(2026, 3, 15, 19, 30),
            paid_by_user_id=payer.id,
            splits=[
                SplitCreate(user_id=user.id, amount=Decimal(str(value)), paid=paid)
                for user, value, paid in items
            ],
            group_id=group.id if group else None,
        )
        return expense_service.create_expense(db, (creator or payer).id, data)
    return _make


@pytest.fixture
def make_settlement(db):
    def _make(payer: User, receiver: User, amount, group=None, caller: User = None):
        data = SettlementCreate(
            amount=Decimal(str(amount)),
            paid_by_user_id=payer.id,
            received_by_user_id=receiver.id,
            group_id=group.id if group else None,
        )
        return settlement_service.create_settlement(db, (caller or payer).id, data)
    return _make


@pytest.fixture
def make_group(db):
    def _make(admin: User, *members: User, name="Trip"):
        return group_service.create_group(db, admin.id, name, "", [m.id for m in members])
    return _make
