"""Test configuration and fixtures"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["VAPI_WEBHOOK_SECRET"] = "vapi-test-secret"
os.environ["RESEND_API_KEY"] = ""
os.environ["SLACK_ALERTS_WEBHOOK"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from uuid import uuid4

from app.main import app
from app.database import Base, get_db
from app.models.user import User, UserRole
from app.api.auth import create_access_token, get_password_hash

from factories import create_organization, create_plan, create_restaurant


# Test database URL (use in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    """Create test database session"""
    session_factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def enqueued_alerts(monkeypatch):
    """Capture alert ids instead of sending them to Celery"""
    queued = []
    monkeypatch.setattr("app.alerts.dispatcher.enqueue_alert_delivery", queued.append)
    return queued


@pytest.fixture
async def test_plan(test_db):
    """A plan with a 100 minute quota"""
    return await create_plan(test_db)


@pytest.fixture
async def test_organization(test_db, test_plan):
    return await create_organization(test_db, plan=test_plan, billing_email="billing@example.com")


@pytest.fixture
async def test_restaurant(test_db, test_organization):
    return await create_restaurant(
        test_db,
        test_organization,
        phone="+15551234567",
        vapi_phone_number_id="phone-number-1",
        address_json={"street": "123 Test St", "city": "Berlin"},
        settings_json={
            "hours": {
                "monday": {"open": "09:00", "close": "21:00"},
                "sunday": {"closed": True},
            },
        },
    )


@pytest.fixture
async def test_user(test_db, test_organization):
    """Create an organization admin"""
    user = User(
        id=uuid4(),
        organization_id=test_organization.id,
        email="test@example.com",
        hashed_password=get_password_hash("testpass123"),
        full_name="Test User",
        role=UserRole.ORGANIZATION_ADMIN,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()

    return user


@pytest.fixture
async def test_viewer(test_db, test_organization):
    """Create a staff viewer in the test organization"""
    user = User(
        id=uuid4(),
        organization_id=test_organization.id,
        email="viewer@example.com",
        hashed_password=get_password_hash("viewerpass123"),
        full_name="Viewer User",
        role=UserRole.STAFF_VIEWER,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()

    return user


@pytest.fixture
async def test_admin_user(test_db):
    """Create a super admin user"""
    user = User(
        id=uuid4(),
        email="admin@example.com",
        hashed_password=get_password_hash("adminpass123"),
        full_name="Admin User",
        role=UserRole.SUPER_ADMIN,
        is_active=True,
    )
    test_db.add(user)
    await test_db.commit()

    return user


@pytest.fixture
async def client(test_db):
    """Create test client with overridden database"""
    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def authenticated_client(client, test_user):
    """Create authenticated test client"""
    client.headers["Authorization"] = f"Bearer {create_access_token(test_user)}"
    return client


@pytest.fixture
async def viewer_client(client, test_viewer):
    client.headers["Authorization"] = f"Bearer {create_access_token(test_viewer)}"
    return client


@pytest.fixture
async def admin_client(client, test_admin_user):
    """Create admin authenticated test client"""
    client.headers["Authorization"] = f"Bearer {create_access_token(test_admin_user)}"
    return client
