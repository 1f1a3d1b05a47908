from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from cashback.auth import create_token, hash_password
from cashback.db import Base, get_db, make_engine
from cashback.intake import create_submission, create_withdrawal
from cashback.main import app
from cashback.models import Brand, Profile
from cashback.schemas import SubmissionCreate, WithdrawalCreate

PASSWORD = "secret123"
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'cashback-test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False,
                        expire_on_commit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_profile(db):
    counter = {"n": 0}

    def _make(balance="0", is_admin=False, email=None) -> Profile:
        counter["n"] += 1
        profile = Profile(
            email=email or f"user{counter['n']}@example.com",
            password_hash=_PASSWORD_HASH,
            full_name="Test User",
            instagram_id="test.user",
            phone_number="9999999999",
            wallet_balance=Decimal(balance),
            is_admin=is_admin,
        )
        db.add(profile)
        db.commit()
        return profile

    return _make


@pytest.fixture
def make_brand(db):
    def _make(name="Acme", cashback="50") -> Brand:
        brand = Brand(name=name, description=f"{name} campaign", cashback_amount=Decimal(cashback))
        db.add(brand)
        db.commit()
        return brand

    return _make


@pytest.fixture
def make_submission(db):
    def _make(user, brand, url="https://instagram.com/p/abc123"):
        return create_submission(db, user, SubmissionCreate(
            brand_id=brand.id, platform="instagram", content_url=url,
        ))

    return _make


@pytest.fixture
def make_withdrawal(db):
    def _make(user, amount, upi_id="someone@okbank"):
        return create_withdrawal(db, user, WithdrawalCreate(
            amount=Decimal(amount), method="upi", upi_id=upi_id,
        ))

    return _make


def auth_headers(profile: Profile) -> dict:
    return {"Authorization": f"Bearer {create_token(profile.id)}"}


def balance_of(session_factory, profile_id: str) -> Decimal:
    """Read the balance through a fresh session so nothing cached leaks in."""
    session = session_factory()
    try:
        return Decimal(session.get(Profile, profile_id).wallet_balance)
    finally:
        session.close()
