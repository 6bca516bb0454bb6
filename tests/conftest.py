"""
Shared pytest configuration
Uses an in-memory SQLite database through aiosqlite
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base, get_db
from db.models import User
from dependencies.settings import get_settings
from main import app
from settings import (
    Settings,
    StripeSettings,
    AuthSettings,
    AdminSettings,
    N8NSettings,
    WalletSettings,
    RedisSettings,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_WEBHOOK_SECRET = "whsec_test_secret"
TEST_AUTH_SECRET = "test-auth-secret"
DATA_ANALYZER_WEBHOOK = "https://quantumtaskai.app.n8n.cloud/webhook/data-analyzer"


@pytest.fixture
def test_settings():
    """Settings with Stripe, admin and one agent workflow configured"""
    return Settings(
        environment="development",
        secret="test-admin-signing-secret",
        stripe=StripeSettings(
            secret_key="sk_test_123",
            webhook_secret=TEST_WEBHOOK_SECRET,
        ),
        auth=AuthSettings(jwt_secret=TEST_AUTH_SECRET),
        admin=AdminSettings(username="admin", password="adminpass"),
        n8n=N8NSettings(webhook_data_analyzer=DATA_ANALYZER_WEBHOOK),
        wallet=WalletSettings(webhook_rate_limit=100, webhook_rate_window=60),
        redis=RedisSettings(enabled=False),
    )


@pytest.fixture
async def test_db():
    """Session on a fresh database with all tables"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with TestSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_client(test_db, test_settings):
    """HTTP client with the test database and settings"""
    async def override_get_db():
        yield test_db

    async def override_get_settings():
        return test_settings

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = override_get_settings
    app.state.webhook_limiter = None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.webhook_limiter = None


@pytest.fixture
def make_user(test_db):
    """Factory inserting a user with the given balances"""
    async def _make_user(
        user_id="user-1",
        email="user@example.com",
        wallet_balance="0.00",
        credits=0,
        name="Test User"
    ) -> User:
        user = User(
            id=user_id,
            email=email,
            name=name,
            wallet_balance=Decimal(wallet_balance),
            credits=credits,
        )
        test_db.add(user)
        await test_db.commit()
        await test_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user_token():
    """Factory for auth provider access tokens"""
    def _user_token(user_id="user-1", expires_in=3600, audience="authenticated", secret=TEST_AUTH_SECRET) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "aud": audience,
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        }
        return jwt.encode(payload, secret, algorithm="HS256")

    return _user_token


@pytest.fixture
def auth_headers(user_token):
    return {"Authorization": f"Bearer {user_token()}"}


def sign_stripe_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp=None) -> str:
    """Stripe-Signature header for a payload"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def stripe_event():
    """Factory returning (body, headers) of a signed checkout.session.completed event"""
    def _stripe_event(session: dict, event_type="checkout.session.completed", secret=TEST_WEBHOOK_SECRET):
        body = json.dumps({
            "id": "evt_test_1",
            "object": "event",
            "type": event_type,
            "data": {"object": session},
        })
        headers = {
            "stripe-signature": sign_stripe_payload(body, secret),
            "content-type": "application/json",
        }
        return body, headers

    return _stripe_event


def wallet_session(session_id="cs_test_wallet_1", user_id="user-1", package_id="wallet_25", payment_status="paid"):
    """Checkout session created by the wallet checkout"""
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "status": "complete",
        "client_reference_id": user_id,
        "amount_total": 2500,
        "currency": "aed",
        "metadata": {
            "package_id": package_id,
            "user_id": user_id,
            "wallet_amount": "25",
            "bonus_amount": "0",
            "type": "wallet_topup",
        },
    }


def payment_link_session(
    session_id="cs_test_link_1",
    amount_total=9999,
    client_reference_id=None,
    email="user@example.com",
    metadata=None
):
    """Checkout session of a Stripe Payment Link"""
    return {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": "paid",
        "status": "complete",
        "client_reference_id": client_reference_id,
        "amount_total": amount_total,
        "currency": "aed",
        "customer_details": {"email": email},
        "metadata": metadata or {},
    }


@pytest.fixture
def wallet_session_factory():
    return wallet_session


@pytest.fixture
def payment_link_session_factory():
    return payment_link_session
