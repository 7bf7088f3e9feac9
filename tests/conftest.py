"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of questboard.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, date, datetime, time, timedelta  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from questboard.database.models import (  # noqa: E402
    Base,
    InstanceStatus,
    MemberRole,
    MemberStatus,
    Quest,
    QuestInstance,
    QuestSignup,
    QuestStatus,
    ReviewStatus,
    SignupStatus,
    Squad,
    SquadMember,
    SquadStatus,
)

# Fixed "now" for anything time-sensitive.
NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Questboard tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Notifiers
# ---------------------------------------------------------------------------
class RecordingNotifier:
    """Keeps every notify() call in memory."""

    def __init__(self) -> None:
        self.sent: list[tuple[list[int], str, dict[str, Any]]] = []

    def notify(self, user_ids: list[int], kind: str, payload: dict[str, Any]) -> None:
        self.sent.append((list(user_ids), kind, dict(payload)))

    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.sent]

    def recipients(self, kind: str) -> list[int]:
        return sorted(uid for ids, k, _ in self.sent if k == kind for uid in ids)


class BrokenNotifier:
    def notify(self, user_ids, kind, payload):
        raise ConnectionError("mail relay unreachable")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def broken_notifier() -> BrokenNotifier:
    return BrokenNotifier()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
class Factory:
    """Inserts rows directly, bypassing the lifecycle services."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def _add(self, row):
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            return row.id

    def quest(
        self,
        *,
        title: str = "Sunset Hike",
        creator_id: int | None = 500,
        status: QuestStatus = QuestStatus.DRAFT,
        review_status: ReviewStatus = ReviewStatus.PENDING_REVIEW,
        **kwargs,
    ) -> int:
        return self._add(Quest(
            title=title, creator_id=creator_id, status=status,
            review_status=review_status, **kwargs,
        ))

    def instance(
        self,
        quest_id: int | None = None,
        *,
        status: InstanceStatus = InstanceStatus.RECRUITING,
        starts_in: timedelta = timedelta(days=3),
        **kwargs,
    ) -> int:
        if quest_id is None:
            quest_id = self.quest(status=QuestStatus.OPEN, review_status=ReviewStatus.APPROVED)
        start = NOW + starts_in
        kwargs.setdefault("title", "Sunset Hike #1")
        kwargs.setdefault("capacity", 20)
        return self._add(QuestInstance(
            quest_id=quest_id,
            status=status,
            scheduled_date=start.date(),
            start_time=start.time().replace(tzinfo=None),
            **kwargs,
        ))

    def signups(
        self, instance_id: int, user_ids: list[int], status: SignupStatus = SignupStatus.CONFIRMED
    ) -> None:
        with Session(self.engine) as session:
            session.add_all(
                QuestSignup(instance_id=instance_id, user_id=uid, status=status) for uid in user_ids
            )
            session.commit()

    def squad(
        self,
        instance_id: int,
        *,
        members: list[int] = (1, 2, 3),
        leaders: list[int] | None = None,
        status: SquadStatus = SquadStatus.DRAFT,
        ready: list[int] = (),
        **kwargs,
    ) -> int:
        leaders = [members[0]] if leaders is None else leaders
        squad = Squad(instance_id=instance_id, name=kwargs.pop("name", "Trail Blazers"),
                      status=status, **kwargs)
        squad.members = [
            SquadMember(
                user_id=uid,
                role=MemberRole.LEADER if uid in leaders else MemberRole.MEMBER,
                status=MemberStatus.ACTIVE,
                readiness_confirmed_at=NOW if uid in ready else None,
            )
            for uid in members
        ]
        return self._add(squad)

    def get(self, model, pk):
        with Session(self.engine, expire_on_commit=False) as session:
            row = session.get(model, pk)
            if row is not None:
                session.expunge(row)
            return row


@pytest.fixture
def factory(db_engine: Engine) -> Factory:
    return Factory(db_engine)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------
def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from questboard.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


@pytest.fixture
def client(db_engine: Engine):
    """TestClient wired to the in-memory engine and default config."""
    from fastapi.testclient import TestClient

    from questboard.api.deps import get_config, get_engine
    from questboard.api.main import app
    from questboard.config import QuestboardConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: QuestboardConfig(
        community_name="Test", dashboard_port=8000
    )
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
