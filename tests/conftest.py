import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, get_db
from app.api.deps import get_password_hash, create_access_token
from app.models.organization import Organization
from app.models.prospect import Prospect
from app.models.user import User
from app.services.segments.scope import OrganizationScope, PersonalScope

from tests.factories import TEST_PASSWORD, ProspectFactory, UserFactory

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"


@pytest_asyncio.fixture
async def test_db():
    """Create test database and tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


async def _create_user(db: AsyncSession, **overrides) -> User:
    data = UserFactory(**overrides)
    data["hashed_password"] = get_password_hash(TEST_PASSWORD)
    user = User(**data)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(test_db: AsyncSession):
    """Create a test user working in personal scope."""
    return await _create_user(test_db, email="test@example.com", first_name="Test", last_name="User")


@pytest_asyncio.fixture
async def other_user(test_db: AsyncSession):
    """A second personal-scope user whose data must stay invisible to test_user."""
    return await _create_user(test_db, email="other@example.com")


@pytest_asyncio.fixture
async def organization(test_db: AsyncSession):
    """An organization; see org_user and org_teammate for its members."""
    org = Organization(name="Acme Web Studio", owner_id=0)
    test_db.add(org)
    await test_db.commit()
    await test_db.refresh(org)
    return org


@pytest_asyncio.fixture
async def org_user(test_db: AsyncSession, organization: Organization):
    user = await _create_user(
        test_db, email="owner@acme.example.com", organization_id=organization.id, org_role="owner"
    )
    organization.owner_id = user.id
    await test_db.commit()
    return user


@pytest_asyncio.fixture
async def org_teammate(test_db: AsyncSession, organization: Organization):
    return await _create_user(
        test_db, email="member@acme.example.com", organization_id=organization.id, org_role="member"
    )


@pytest.fixture
def personal_scope(test_user: User) -> PersonalScope:
    return PersonalScope(actor_id=test_user.id)


@pytest.fixture
def org_scope(org_user: User, organization: Organization) -> OrganizationScope:
    return OrganizationScope(actor_id=org_user.id, tenant_id=organization.id)


@pytest_asyncio.fixture
async def make_prospects(test_db: AsyncSession):
    """Insert prospects built by ProspectFactory; returns them with ids loaded."""

    async def _make(owner: User, *rows: dict) -> list[Prospect]:
        prospects = [
            Prospect(**ProspectFactory(owner_id=owner.id, organization_id=owner.organization_id, **row))
            for row in rows
        ]
        test_db.add_all(prospects)
        await test_db.commit()
        for prospect in prospects:
            await test_db.refresh(prospect)
        return prospects

    return _make


@pytest_asyncio.fixture
async def client(test_db: AsyncSession):
    """Create test client with overridden database."""

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def authenticated_client(client: AsyncClient, test_user: User):
    """Create authenticated test client."""
    # Login to get token
    response = await client.post(
        "/api/v2/auth/login",
        json={"email": "test@example.com", "password": TEST_PASSWORD},
    )
    token = response.json()["access_token"]

    client.headers["Authorization"] = f"Bearer {token}"
    return client


@pytest_asyncio.fixture
async def client_for(test_db: AsyncSession):
    """
    Factory for extra clients authenticated as other users.

    Usage:
        org_client = await client_for(org_user)
    """
    opened: list[AsyncClient] = []

    async def override_get_db():
        yield test_db

    app.dependency_overrides[get_db] = override_get_db

    async def _client(user: User) -> AsyncClient:
        token = create_access_token({"sub": str(user.id), "email": user.email})
        ac = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers={"Authorization": f"Bearer {token}"},
        )
        opened.append(ac)
        return ac

    yield _client

    for ac in opened:
        await ac.aclose()
    app.dependency_overrides.clear()
