"""
Pytest configuration and fixtures for escrow core tests
"""

import pytest
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Set test environment variables before importing the app
os.environ["ENV"] = "test"
# In-memory SQLite by default; point TEST_DATABASE_URL at PostgreSQL to run the locking tests
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/1")
os.environ["JWT_SECRET"] = "test-secret-key-min-32-chars-for-testing-only"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["NOTIFICATIONS_ENABLED"] = "false"

from escrow_core.infrastructure.database import Base, get_db
import escrow_core.models  # noqa: F401
from escrow_core.main import app
from escrow_core.core.users.models import User, UserRole
from escrow_core.core.marketplace.models import Listing
from escrow_core.services.notifications import get_notification_sink
from escrow_core.services import wallet_ledger
from tests.factories import RecordingSink, make_listing, make_user

IS_SQLITE = os.environ["DATABASE_URL"].startswith("sqlite")

# Create test database engine
test_engine = create_engine(
    os.environ["DATABASE_URL"],
    poolclass=StaticPool,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Create a fresh database session for each test.
    Clears all tables before and after each test.
    """
    Base.metadata.drop_all(bind=test_engine)
    Base.metadata.create_all(bind=test_engine)

    db = TestSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session: Session):
    """
    Session factory for code that opens and closes its own sessions (job scripts).

    Sessions share the test engine but not the identity map of db_session, so
    closing them leaves the fixture objects attached.
    """
    return TestSessionLocal


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture(scope="function")
def client(db_session: Session, sink: RecordingSink):
    """
    Create FastAPI test client with dependency overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def buyer(db_session: Session) -> User:
    return make_user(db_session, "alici")


@pytest.fixture
def seller(db_session: Session) -> User:
    return make_user(db_session, "satici")


@pytest.fixture
def outsider(db_session: Session) -> User:
    return make_user(db_session, "yabanci")


@pytest.fixture
def moderator(db_session: Session) -> User:
    return make_user(db_session, "moderator", UserRole.MODERATOR)


@pytest.fixture
def funded_buyer(db_session: Session, buyer: User) -> User:
    """Buyer with 500.00 TL available"""
    wallet_ledger.credit(db_session, buyer.id, 50000)
    return buyer


@pytest.fixture
def listing(db_session: Session, seller: User) -> Listing:
    """ACTIVE listing priced 200.00 TL"""
    return make_listing(db_session, seller)
