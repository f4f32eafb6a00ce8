"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, schema created and dropped around each test
- Session token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Generator

# Must be set before any swivel import reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TESTING"] = "1"
os.environ.setdefault("ENV", "dev")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from swivel.core.deps import COOKIE_NAME, get_db
from swivel.core.security import create_session_token, hash_password
from swivel.db.base import Base
from swivel.db.enums import Role, SubscriptionStatus
from swivel.db.models import Organization, Profile, User
from swivel.db.session import SessionLocal, engine
from swivel.main import app
from swivel.services.provisioning_service import trial_ends_at
from swivel.utils import utcnow

TEST_PASSWORD = "secret-pass"
CSRF_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    App code commits freely; dropping the tables afterwards isolates tests.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_user(db: Session, *, verified: bool = True, full_name: str = "Test User") -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"test-{uuid.uuid4().hex[:8]}@test.com",
        password_hash=hash_password(TEST_PASSWORD),
        full_name=full_name,
        email_verified_at=utcnow() if verified else None,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def user_factory(db: Session):
    """Create extra users: `user_factory(verified=False)`."""
    def factory(**kwargs) -> User:
        return make_user(db, **kwargs)
    return factory


@pytest.fixture(scope="function")
def test_user(db: Session) -> User:
    """Verified user with no organization yet."""
    return make_user(db)


@pytest.fixture(scope="function")
def test_org(db: Session, test_user: User) -> Organization:
    """Organization with test_user as its admin."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        created_by_user_id=test_user.id,
    )
    db.add(org)
    db.flush()
    db.add(
        Profile(
            id=test_user.id,
            organization_id=org.id,
            full_name=test_user.full_name,
            email=test_user.email,
            role=Role.ADMIN.value,
            subscription_status=SubscriptionStatus.TRIAL.value,
            plan="starter",
            trial_ends_at=trial_ends_at(),
        )
    )
    db.commit()
    return org


@pytest.fixture(scope="function")
def staff_user(db: Session, test_org: Organization) -> User:
    """Second member of test_org with the staff role."""
    user = make_user(db, full_name="Staff User")
    db.add(
        Profile(
            id=user.id,
            organization_id=test_org.id,
            full_name=user.full_name,
            email=user.email,
            role=Role.STAFF.value,
            subscription_status=SubscriptionStatus.TRIAL.value,
            plan="starter",
        )
    )
    db.commit()
    return user


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str
    cookie_name: str = COOKIE_NAME


def session_token_for(user: User) -> str:
    return create_session_token(user_id=user.id, token_version=user.token_version)


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    """Session for the provisioned admin."""
    return TestAuth(user=test_user, token=session_token_for(test_user))


@pytest.fixture(scope="function")
def new_user_auth(test_user: User) -> TestAuth:
    """Session for a verified user who has not been provisioned."""
    return TestAuth(user=test_user, token=session_token_for(test_user))


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(db: Session, test_auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    """Provisioned admin with session cookie and CSRF header."""
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers=CSRF_HEADERS,
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def new_user_client(db: Session, new_user_auth: TestAuth) -> AsyncGenerator[AsyncClient, None]:
    """Signed-in user without an organization, with CSRF header."""
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={new_user_auth.cookie_name: new_user_auth.token},
        headers=CSRF_HEADERS,
    ) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def staff_client(db: Session, staff_user: User) -> AsyncGenerator[AsyncClient, None]:
    _override_db(db)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={COOKIE_NAME: session_token_for(staff_user)},
        headers=CSRF_HEADERS,
    ) as c:
        yield c
    app.dependency_overrides.clear()
