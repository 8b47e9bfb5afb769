# tests/conftest.py
"""
Pytest configuration for the week block store.

Every test gets a fresh in-memory SQLite database, an in-memory cache and
process-local scope locks, so no Redis or database server is needed.
"""

import os

# Set the environment BEFORE any weekblocks imports
os.environ.setdefault("CI", "true")
os.environ["WEEKBLOCKS_DATABASE_URL"] = "sqlite://"
os.environ["WEEKBLOCKS_REDIS_URL"] = ""
os.environ["WEEKBLOCKS_ENVIRONMENT"] = "testing"

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from weekblocks.core.block_lock import ScopeLockManager
from weekblocks.database import Base, init_db
from weekblocks.models import Scope, ScopeMember
from weekblocks.services.cache_service import CacheService
from weekblocks.services.week_block_store import WeekBlockStore

DEFAULT_MEMBERS = (("Alice Brown", "AB"), ("Chris Dale", "CD"))


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory) -> Session:
    """Database session for a single test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def cache_service() -> CacheService:
    return CacheService()


@pytest.fixture
def locks() -> ScopeLockManager:
    return ScopeLockManager(None, ttl_s=5, wait_timeout_s=2.0, poll_interval_s=0.01)


@pytest.fixture
def make_scope(db: Session) -> Callable[..., str]:
    """Create an active scope with members; returns its id."""

    def _make(
        scope_id: str,
        members: Iterable[tuple] = DEFAULT_MEMBERS,
        last_activity_at: Optional[datetime] = None,
    ) -> str:
        scope = Scope(
            scope_id=scope_id,
            name=scope_id.replace("-", " ").title(),
            is_active=True,
            last_activity_at=last_activity_at or datetime.now(timezone.utc),
        )
        for display_name, initials in members:
            scope.members.append(ScopeMember(display_name=display_name, initials=initials))
        db.add(scope)
        db.commit()
        return scope_id

    return _make


@pytest.fixture
def scope(make_scope) -> str:
    return make_scope("team-alpha")


@pytest.fixture
def store(db: Session, cache_service: CacheService, locks: ScopeLockManager) -> WeekBlockStore:
    return WeekBlockStore.create(db, cache_service, locks)


@pytest.fixture
def long_ago() -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=60)
