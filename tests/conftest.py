"""Pytest configuration and fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from bookquest import create_app, db
from bookquest.clock import Clock
from bookquest.models import UserProgress
from bookquest.services import (
    AchievementChecker,
    EventService,
    QuestLifecycle,
    QuestService,
    RewardService,
)
from bookquest.services.quest_schedule import DEFAULT_EXPIRY_NOTIFICATIONS
from bookquest.storage import SQLAlchemyStorage
from bookquest.utils.timeutil import to_storage

# A Monday
FIXED_NOW = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = FIXED_NOW, timezone: str = "UTC"):
        self.current = now
        self.timezone = timezone

    def now(self) -> datetime:
        return self.current

    def timezone_of(self, user_id: int) -> str:
        return self.timezone

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def app():
    """Create and configure a test application instance."""
    app = create_app("testing")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def clock(app):
    """Fixed clock, also used by the API handlers."""
    clock = FixedClock()
    app.extensions["bookquest.clock"] = clock
    return clock


@pytest.fixture
def storage(app):
    return SQLAlchemyStorage()


@pytest.fixture
def rewards(storage, clock):
    return RewardService(storage, clock)


@pytest.fixture
def lifecycle(storage, clock, rewards):
    return QuestLifecycle(storage, clock, rewards)


@pytest.fixture
def quest_service(storage, clock):
    return QuestService(storage, clock)


@pytest.fixture
def checker(storage, clock, rewards):
    return AchievementChecker(storage, clock, rewards)


@pytest.fixture
def events(storage, clock):
    return EventService(storage, clock)


@pytest.fixture
def user(app):
    """Established user whose account is past the new-user bonus window."""
    progress = UserProgress(
        user_id=1,
        total_xp=0,
        total_coins=0,
        current_streak=0,
        longest_streak=0,
        created_at=datetime(2024, 1, 1),
    )
    db.session.add(progress)
    db.session.commit()
    return progress.user_id


@pytest.fixture
def progress_of(app):
    """Fresh read of a user's progress row."""

    def _get(user_id: int = 1) -> UserProgress:
        progress = db.session.get(UserProgress, user_id)
        db.session.refresh(progress)
        return progress

    return _get


@pytest.fixture
def make_quest(storage, clock):
    """Factory for quests with sensible defaults, keyword overrides apply."""

    def _make(user_id: int = 1, metadata: dict | None = None, **overrides):
        now = clock.now()
        fields = {
            "user_id": user_id,
            "title": "Read for 30 minutes",
            "quest_type": "daily",
            "difficulty": 2,
            "xp_reward": 0,
            "coin_reward": 0,
            "target_value": 30,
            "progress": 0,
            "status": "pending",
            "created_at": now,
            "expires_at": now + timedelta(hours=12),
            "auto_renew": False,
            "grace_period_minutes": 60,
        }
        fields.update(overrides)
        for key, value in fields.items():
            if isinstance(value, datetime):
                fields[key] = to_storage(value)

        meta = {
            "streak_count": 0,
            "bonus_multiplier": 1.0,
            "expiry_notifications": dict(DEFAULT_EXPIRY_NOTIFICATIONS),
        }
        meta.update(metadata or {})

        with storage.transaction():
            return storage.create_quest(fields, meta)

    return _make
