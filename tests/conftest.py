import os
import time

import pytest

# Set test environment before anything from calcula is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_URL"] = "https://project.supabase.co"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-with-at-least-32-bytes!!"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["FRONTEND_URL"] = "https://app.example.com"

import jwt
from fastapi.testclient import TestClient

from calcula.db.base import Base
from calcula.db.session import SessionLocal, engine
import calcula.models  # noqa: F401
from calcula.models import Affiliate, AffiliateLink, Profile

ADMIN_ID = "00000000-0000-0000-0000-00000000a001"
USER_ID = "00000000-0000-0000-0000-00000000b001"


def make_token(user_id: str, email: str = "user@example.com", audience: str = "authenticated", expires_in: int = 3600) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": audience,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(payload, os.environ["SUPABASE_JWT_SECRET"], algorithm="HS256")


def auth_header(user_id: str, email: str = "user@example.com") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture
def db():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    from calcula.main import app
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def admin_headers(db):
    db.add(Profile(user_id=ADMIN_ID, email="admin@example.com", plan="enterprise", is_admin=True))
    db.commit()
    return auth_header(ADMIN_ID, "admin@example.com")


@pytest.fixture
def user_headers(db):
    db.add(Profile(user_id=USER_ID, email="user@example.com", plan="free"))
    db.commit()
    return auth_header(USER_ID, "user@example.com")


@pytest.fixture
def affiliate(db):
    """Active affiliate with 10% commission and one referral link (code ANA10)."""
    aff = Affiliate(
        name="Ana Souza",
        email="ana@example.com",
        status="active",
        commission_type="percentage",
        commission_percentage=10,
        commission_fixed_amount=0,
        total_sales=0,
        total_commissions=0,
    )
    db.add(aff)
    db.flush()
    db.add(AffiliateLink(affiliate_id=aff.id, link_code="ANA10"))
    db.commit()
    db.refresh(aff)
    return aff
