"""
Test fixtures for the ambassador program backend tests.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Recording realtime publisher and mock cache
- Test data factories for tiers, profiles, ambassadors and achievements
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ.setdefault("ADMIN_SECRET", "test_admin_secret")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
# DB settings required by Settings validation (tests use SQLite in-memory, these are not actually used)
os.environ.setdefault("DB_USER", "test")
os.environ.setdefault("DB_PASSWORD", "test")
os.environ.setdefault("DB_NAME", "test")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("TIMEZONE", "America/Sao_Paulo")

import pytest
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional, Tuple

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from backend.app.core.base import Base
from backend.app.main import app
from backend.app.api.deps import get_session, get_cache, get_publisher
from backend.app.core.limiter import limiter
from backend.app.models.user import Profile
from backend.app.models.ambassador import Ambassador, AmbassadorTier
from backend.app.models.achievement import AmbassadorAchievement
import backend.app.models.referral  # noqa: F401  register tables with Base.metadata
import backend.app.models.payout  # noqa: F401
import backend.app.models.click  # noqa: F401
import backend.app.models.notification  # noqa: F401
import backend.app.models.material  # noqa: F401


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Create test engine with StaticPool for in-memory SQLite
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class MockCacheService:
    """Mock Redis cache for testing without actual Redis."""

    def __init__(self):
        self._cache = {}

    async def get(self, key: str):
        return self._cache.get(key)

    async def set(self, key: str, value, ttl: int = 300):
        self._cache[key] = value

    async def delete(self, key: str):
        self._cache.pop(key, None)

    async def get_tiers(self):
        return self._cache.get("ambassador:tiers:all")

    async def set_tiers(self, tiers):
        self._cache["ambassador:tiers:all"] = tiers

    async def invalidate_tiers(self):
        self._cache.pop("ambassador:tiers:all", None)

    async def get_ranking(self, limit: int):
        return self._cache.get(f"ambassador:ranking:{limit}")

    async def set_ranking(self, limit: int, ranking):
        self._cache[f"ambassador:ranking:{limit}"] = ranking

    async def invalidate_ranking(self):
        for k in [k for k in self._cache if k.startswith("ambassador:ranking:")]:
            self._cache.pop(k, None)

    async def get_public_directory(self):
        return self._cache.get("ambassador:public:directory")

    async def set_public_directory(self, directory):
        self._cache["ambassador:public:directory"] = directory

    async def invalidate_public_directory(self):
        self._cache.pop("ambassador:public:directory", None)


class RecordingPublisher:
    """Stands in for RealtimePublisher; keeps every published event."""

    def __init__(self):
        self.published: List[Tuple[int, str, Dict]] = []

    async def publish(self, ambassador_id: int, event: str, payload: Optional[Dict] = None) -> bool:
        self.published.append((ambassador_id, event, payload or {}))
        return True

    def events_for(self, ambassador_id: int) -> List[str]:
        return [event for aid, event, _ in self.published if aid == ambassador_id]


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Creates all tables before and drops after each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def mock_cache() -> MockCacheService:
    """Provide mock cache service for testing."""
    return MockCacheService()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
async def client(
    test_session: AsyncSession,
    mock_cache: MockCacheService,
    publisher: RecordingPublisher,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.
    Overrides database, cache and realtime dependencies.

    Note: a fresh session is created for each API call to avoid
    transaction conflicts with the test_session used for fixtures.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    async def override_get_cache():
        yield mock_cache

    async def override_get_publisher():
        yield publisher

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_cache] = override_get_cache
    app.dependency_overrides[get_publisher] = override_get_publisher
    # In-memory rate limit counters outlive a single test
    limiter.reset()

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

@pytest.fixture
async def tiers(test_session: AsyncSession) -> List[AmbassadorTier]:
    """bronze (0, 5%), silver (10, 8%, 3% recurring for 6 months), gold (30, 12%, 5% for 12 months)."""
    rows = [
        AmbassadorTier(id="bronze", name="Bronze", min_sales=0, commission_rate=Decimal("5"),
                       recurring_rate=Decimal("0"), recurring_months=0, display_order=1, benefits=["Link exclusivo"]),
        AmbassadorTier(id="silver", name="Prata", min_sales=10, commission_rate=Decimal("8"),
                       recurring_rate=Decimal("3"), recurring_months=6, display_order=2, benefits=[]),
        AmbassadorTier(id="gold", name="Ouro", min_sales=30, commission_rate=Decimal("12"),
                       recurring_rate=Decimal("5"), recurring_months=12, display_order=3, benefits=[]),
    ]
    test_session.add_all(rows)
    await test_session.commit()
    return rows


async def create_profile(session: AsyncSession, user_id: int, full_name: str = "Maria Silva", **fields) -> Profile:
    profile = Profile(user_id=user_id, full_name=full_name, email=f"user{user_id}@example.com", **fields)
    session.add(profile)
    await session.commit()
    return profile


async def create_ambassador(
    session: AsyncSession,
    user_id: int,
    referral_code: str,
    *,
    tier_id: str = "bronze",
    lifetime_sales: int = 0,
    total_points: int = 0,
    active: bool = True,
    full_name: str = "Maria Silva",
    profile_fields: Optional[Dict] = None,
    **fields,
) -> Ambassador:
    """Insert profile + ambassador directly (bypasses enrollment rules)."""
    await create_profile(session, user_id, full_name, **(profile_fields or {}))
    ambassador = Ambassador(
        user_id=user_id,
        referral_code=referral_code,
        tier_id=tier_id,
        lifetime_sales=lifetime_sales,
        total_points=total_points,
        active=active,
        **fields,
    )
    session.add(ambassador)
    await session.commit()
    await session.refresh(ambassador)
    return ambassador


@pytest.fixture
async def ambassador(test_session: AsyncSession, tiers) -> Ambassador:
    """Active bronze ambassador with code MARIA1."""
    return await create_ambassador(test_session, 1001, "MARIA1")


@pytest.fixture
async def silver_ambassador(test_session: AsyncSession, tiers) -> Ambassador:
    """Active silver ambassador with exactly 10 sales."""
    return await create_ambassador(test_session, 1002, "ANA10", tier_id="silver", lifetime_sales=10, full_name="Ana Souza")


@pytest.fixture
async def achievements(test_session: AsyncSession) -> List[AmbassadorAchievement]:
    rows = [
        AmbassadorAchievement(name="Primeira venda", requirement_type="sales", requirement_value=1, points=50, display_order=1),
        AmbassadorAchievement(name="Cem pontos", requirement_type="points", requirement_value=100, points=20, display_order=2),
        AmbassadorAchievement(name="Primeiro clique", requirement_type="clicks", requirement_value=1, points=5, display_order=3),
        AmbassadorAchievement(name="Misteriosa", requirement_type="unknown_metric", requirement_value=1, points=999, display_order=4),
    ]
    test_session.add_all(rows)
    await test_session.commit()
    return rows


@pytest.fixture
def make_ambassador(test_session: AsyncSession, tiers):
    """Factory fixture: `await make_ambassador(user_id, code, **fields)`."""
    async def _make(user_id: int, referral_code: str, **fields) -> Ambassador:
        return await create_ambassador(test_session, user_id, referral_code, **fields)
    return _make
