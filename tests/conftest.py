"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock for expiry boundaries
- In-memory store, token service and onboarding coordinator
- A PostgreSQL pool that skips the test when the database is unreachable
"""

from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.cache.privileges import AccountPrivilegeCache
from src.adapters.repository.memory import (
    InMemoryAccountDirectory,
    InMemoryDatabase,
    InMemoryTokenRepository,
)
from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings
from src.domain.onboarding import OnboardingCoordinator
from src.domain.ports import Account
from src.domain.tokens import AdminTokenService

# Lowest bcrypt cost; keeps account fixtures fast
TEST_BCRYPT_COST = 4

TEST_PASSWORD = "password123"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 1, 13, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def token_repository(memory_db: InMemoryDatabase) -> InMemoryTokenRepository:
    return InMemoryTokenRepository(memory_db)


@pytest.fixture
def directory(memory_db: InMemoryDatabase) -> InMemoryAccountDirectory:
    return InMemoryAccountDirectory(memory_db, bcrypt_cost=TEST_BCRYPT_COST)


@pytest.fixture
def privilege_cache(directory: InMemoryAccountDirectory) -> AccountPrivilegeCache:
    return AccountPrivilegeCache(directory)


@pytest.fixture
def token_service(
    token_repository: InMemoryTokenRepository, clock: FrozenClock
) -> AdminTokenService:
    return AdminTokenService(repository=token_repository, clock=clock)


@pytest.fixture
def coordinator(
    token_service: AdminTokenService,
    directory: InMemoryAccountDirectory,
    privilege_cache: AccountPrivilegeCache,
) -> OnboardingCoordinator:
    return OnboardingCoordinator(
        tokens=token_service, identity=directory, privileges=privilege_cache
    )


@pytest.fixture
def make_account(directory: InMemoryAccountDirectory) -> Callable[..., Account]:
    """Factory creating accounts in the in-memory directory."""

    def _make(email: str, password: str = TEST_PASSWORD) -> Account:
        return directory.sign_up(email, password)

    return _make


@pytest.fixture(scope="session")
def pg_pool() -> Generator[ConnectionPool, None, None]:
    """
    Connection pool against DATABASE_URL with migrations applied.

    Skips dependent tests when PostgreSQL cannot be reached.
    """
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    try:
        pool.wait(timeout=2.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_pg(pg_pool: ConnectionPool) -> ConnectionPool:
    """Empty the token and account tables before a PostgreSQL test."""
    with pg_pool.connection() as conn:
        conn.execute("DELETE FROM admin_registration_tokens")
        conn.execute("DELETE FROM accounts")
        conn.commit()
    return pg_pool
