"""
Test configuration and fixtures for the community events backend tests.
"""
import os
import pytest
import pytest_asyncio
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db.base import Base, get_db
from app.core.security import create_access_token
from app.models.user import User
from app.models.organization import Organization
from app.models.org_membership import OrgMembership, OrgMembershipRole
from app.models.event import Event, EventType
from app.models.event_registration import EventRegistration, RegistrationStatus
from app.models.submission import EventProjectSubmission
from app.schemas.submission import SubmissionCreate
from app.services.submissions import create_submission, load_submission


# Use a file-based SQLite DB to avoid :memory: multiple-connection issues
# with SQLAlchemy + aiosqlite (each new connection would see an empty DB).
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=NullPool,
    )

    # pysqlite's implicit transaction handling breaks SAVEPOINT; emit BEGIN ourselves
    @sa_event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @sa_event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    # Clean up test database file
    try:
        os.remove("./test.db")
    except OSError:
        pass


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


# ============================================================================
# Users and tokens
# ============================================================================

@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory creating users with unique emails."""
    counter = {"n": 0}

    async def _make_user(name: Optional[str] = None, **fields) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=fields.pop("email", f"user{n}@example.com"),
            name=name or f"User {n}",
            username=fields.pop("username", f"user{n}"),
            **fields,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


def headers_for(user: User) -> dict:
    """Bearer headers for a user."""
    return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}


@pytest.fixture
def auth_headers_for():
    return headers_for


@pytest_asyncio.fixture
async def organizer(make_user) -> User:
    """Event organizer."""
    return await make_user("Olivia Organizer", phone_number="+1 555 0100")


@pytest_asyncio.fixture
async def leader(make_user) -> User:
    """Team leader with private contact details."""
    return await make_user(
        "Lena Leader",
        phone_number="+1 555 0101",
        wechat_id="lena_wx",
        region="Berlin",
        user_role_string="Engineer",
        current_work_on="Robots",
    )


@pytest_asyncio.fixture
async def auth_headers(leader: User) -> dict:
    """Authorization headers for the team leader."""
    return headers_for(leader)


# ============================================================================
# Organizations and events
# ============================================================================

@pytest_asyncio.fixture
async def test_org(db_session: AsyncSession, organizer: User) -> Organization:
    """Create a test organization owned by the organizer."""
    org = Organization(
        name="Test Organization",
        description="A test organization for testing",
        owner_id=organizer.id,
    )
    db_session.add(org)
    await db_session.flush()

    membership = OrgMembership(
        organization_id=org.id,
        user_id=organizer.id,
        role=OrgMembershipRole.OWNER,
        is_active=True,
        joined_at=datetime.now(timezone.utc),
    )
    db_session.add(membership)
    await db_session.flush()

    return org


@pytest_asyncio.fixture
async def hackathon(db_session: AsyncSession, organizer: User, test_org: Organization) -> Event:
    """Running hackathon accepting submissions and votes."""
    now = datetime.now(timezone.utc)
    event = Event(
        title="Spring Hackathon",
        type=EventType.HACKATHON,
        start_time=now - timedelta(days=1),
        end_time=now + timedelta(days=1),
        organizer_id=organizer.id,
        organization_id=test_org.id,
        submissions_open=True,
        voting_open=True,
    )
    db_session.add(event)
    await db_session.flush()
    return event


@pytest.fixture
def register(db_session: AsyncSession):
    """Factory registering users for an event."""
    async def _register(event: Event, *users: User, status: RegistrationStatus = RegistrationStatus.APPROVED):
        registrations = [
            EventRegistration(event_id=event.id, user_id=user.id, status=status)
            for user in users
        ]
        db_session.add_all(registrations)
        await db_session.flush()
        return registrations

    return _register


@pytest.fixture
def make_submission(db_session: AsyncSession):
    """Factory creating submissions through the lifecycle service."""
    async def _make_submission(event: Event, submitter: User, name: str = "Project", **fields) -> EventProjectSubmission:
        fields.setdefault("community_use_authorization", True)
        data = SubmissionCreate(name=name, **fields)
        submission = await create_submission(db_session, event, data, submitter.id)
        return await load_submission(db_session, submission.id)

    return _make_submission
