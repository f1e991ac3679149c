import os

# Settings are read at import time; point them at the test database first
os.environ["DATABASE_URL"] = "sqlite:///./test_tamudastay.db"

import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from tamudastay import models
from tamudastay.database import Base, create_db_engine, get_db, get_redis_client
from tamudastay.fallback_storage import FallbackStorage
from tamudastay.main import app
from tamudastay.routers.booking_router import booking_write_limiter
from tamudastay.security import create_access_token, hash_password
from tamudastay.storage import DatabaseStorage
from tamudastay.storage_switch import StorageSwitch

# --- Test Database Setup ---
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_tamudastay.db"

# Same SQLite transaction handling as the app; SAVEPOINTs need SQLAlchemy to emit BEGIN itself
engine = create_db_engine(SQLALCHEMY_DATABASE_URL)


# Commits inside the app release a SAVEPOINT; the outer transaction is rolled back per test
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine, join_transaction_mode="create_savepoint"
)

TEST_PASSWORD = "Secret#Pass1"
TEST_PASSWORD_HASH = hash_password(TEST_PASSWORD)


# --- Database Management Fixtures ---
@pytest.fixture(scope="session", autouse=True)
def setup_db():
    """Creates and drops the test database tables."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Provides a clean database session for each test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def db_storage(db_session):
    return DatabaseStorage(db_session)


@pytest.fixture
def fallback():
    return FallbackStorage()


# --- Mocking External Services ---
@pytest.fixture(scope="function", autouse=True)
def mock_background_tasks(mocker):
    """
    Mocks the background tasks and the Redis/limiter setup that run on app lifespan.
    """
    mocker.patch("tamudastay.main.run_outbox_poller", new_callable=AsyncMock)
    mocker.patch("tamudastay.main.run_booking_scheduler", new_callable=AsyncMock)
    mocker.patch("tamudastay.main.redis.from_url", return_value=AsyncMock())
    mocker.patch("tamudastay.main.FastAPILimiter.init", new_callable=AsyncMock)


@pytest.fixture(scope="function", autouse=True)
def storage_switch():
    """A fresh, untripped switch per test; the fallback store is rebuilt from seed data."""
    switch = StorageSwitch(enabled=True)
    app.state.storage_switch = switch
    return switch


@pytest.fixture
def fake_redis():
    redis_client = MagicMock()
    redis_client.get.return_value = None
    return redis_client


# --- API Test Client Fixture ---
@pytest.fixture(scope="function")
def client(db_session, fake_redis):
    """Provides a TestClient wired to the test session, a fake Redis and no rate limit."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis_client] = lambda: fake_redis
    app.dependency_overrides[booking_write_limiter] = lambda: None

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


# --- Data helpers ---
@pytest.fixture
def create_user(db_session):
    def _create(username="guest", role=models.UserRole.USER, status=models.UserStatus.ACTIVE):
        user = models.User(
            username=username,
            email=f"{username}@example.com",
            name=username.title(),
            hashed_password=TEST_PASSWORD_HASH,
            role=role,
            status=status,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _create


@pytest.fixture
def create_property(db_session):
    def _create(owner=None, status=models.PropertyStatus.APPROVED, visible=True, **overrides):
        values = dict(
            title="Riad with Garden",
            description="Quiet riad close to the medina",
            price=Decimal("95.00"),
            price_unit="night",
            images=[],
            location="Tetouan",
            bedrooms=2,
            bathrooms=1,
            capacity=4,
            amenities=["WiFi"],
            featured=False,
            status=status,
            is_active=visible,
            is_visible=visible,
            owner_id=owner.id if owner is not None else None,
        )
        values.update(overrides)
        prop = models.Property(**values)
        db_session.add(prop)
        db_session.commit()
        db_session.refresh(prop)
        return prop

    return _create


@pytest.fixture
def create_booking(db_session):
    def _create(prop, check_in, check_out, user=None, status=models.BookingStatus.CONFIRMED):
        booking = models.Booking(
            property_id=prop.id,
            user_id=user.id if user is not None else None,
            guest_name="Existing Guest",
            guest_email="existing@example.com",
            check_in=check_in,
            check_out=check_out,
            guests=2,
            amount=Decimal("300.00"),
            status=status,
        )
        db_session.add(booking)
        db_session.commit()
        db_session.refresh(booking)
        return booking

    return _create


@pytest.fixture
def auth_headers():
    """Builds an Authorization header for a user."""
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role.value, user.username)}"}

    return _headers


@pytest.fixture
def future():
    """Date ``n`` days from today; booking requests may not start in the past."""
    def _future(days):
        return datetime.date.today() + datetime.timedelta(days=days)

    return _future


@pytest.fixture
def password():
    """Plain-text password of every user made by ``create_user``."""
    return TEST_PASSWORD
