"""Tests for achievement conditions and unlocking."""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from types import MappingProxyType

import pytest

from bookquest.errors import UnknownAchievement
from bookquest.models import AchievementAward, RewardHistory
from bookquest.services import AchievementChecker
from bookquest.services.achievement_checker import (
    CATALOG,
    CATALOG_BY_ID,
    AchievementCondition,
    evaluate_condition,
)
from bookquest.storage import StatsSnapshot


def stats(**fields):
    return StatsSnapshot(user_id=1, **fields)


class TestConditions:
    """Test cases for the condition handlers."""

    def test_books_read(self):
        definition = CATALOG_BY_ID["bookworm"]
        assert evaluate_condition(definition, stats(books_count=3)) == (3, 10)

    def test_daily_pages_use_best_day(self):
        definition = CATALOG_BY_ID["page_turner"]
        current, required = evaluate_condition(
            definition, stats(total_pages=5000, max_daily_pages=400)
        )
        assert (current, required) == (400, 1000)

    def test_weekend_warrior_needs_weekend_pages(self):
        definition = CATALOG_BY_ID["weekend_warrior"]
        assert evaluate_condition(definition, stats()) == (0, 1)

    def test_weekend_warrior_met(self):
        definition = CATALOG_BY_ID["weekend_warrior"]
        current, required = evaluate_condition(
            definition, stats(weekend_pages=20, weekday_pages=10)
        )
        assert current >= required

    def test_exact_hour(self):
        definition = CATALOG_BY_ID["midnight_reader"]
        snapshot = stats(start_hour_counts=MappingProxyType({0: 2, 5: 1}))
        assert evaluate_condition(definition, snapshot) == (2, 1)

    def test_night_owl(self):
        definition = CATALOG_BY_ID["night_owl"]
        snapshot = stats(start_hour_counts=MappingProxyType({22: 4}))
        assert evaluate_condition(definition, snapshot) == (0, 1)

    def test_unknown_condition_type(self):
        definition = CATALOG_BY_ID["bookworm"]
        mystery = replace(
            definition, condition=AchievementCondition(type="mystery", value=1)
        )
        assert evaluate_condition(mystery, stats(books_count=99)) is None

    def test_title_becomes_badge(self):
        reward = CATALOG_BY_ID["speed_reader"].reward
        assert reward.badges == ("Speed Reader",)
        assert CATALOG_BY_ID["bookworm"].reward.badges == ()

    def test_catalog_ids_unique(self):
        assert len(CATALOG) == len(CATALOG_BY_ID)


class TestUnlocking:
    """Test cases for checking and unlocking achievements."""

    def add_book(self, storage, book_id, **fields):
        with storage.transaction():
            storage.record_book(1, book_id, **fields)

    def test_first_book_unlocks(self, checker, storage, user, progress_of):
        self.add_book(storage, 1, genre="fiction")

        unlocked = checker.check_and_unlock(user)

        assert [a["id"] for a in unlocked] == ["first_book"]
        assert progress_of().total_xp == 50
        assert progress_of().total_coins == 25
        assert checker.check_and_unlock(user) == []

    def test_unlock_twice_grants_once(self, checker, user):
        assert checker.unlock_achievement(user, "streak_week") is True
        assert checker.unlock_achievement(user, "streak_week") is False

        assert AchievementAward.query.filter_by(user_id=user).count() == 1
        assert (
            RewardHistory.query.filter_by(user_id=user, reward_type="achievement").count()
            == 1
        )

    def test_lost_race_is_a_no_op(self, checker, storage, user, progress_of, monkeypatch):
        """The loser of a concurrent unlock hits the unique constraint."""
        checker.unlock_achievement(user, "streak_week")
        xp = progress_of().total_xp

        real_has_award = storage.has_award
        calls = []

        def stale_has_award(user_id, achievement_id):
            calls.append(achievement_id)
            if len(calls) == 1:
                return False
            return real_has_award(user_id, achievement_id)

        monkeypatch.setattr(storage, "has_award", stale_has_award)

        assert checker.unlock_achievement(user, "streak_week") is False
        assert AchievementAward.query.filter_by(user_id=user).count() == 1
        assert progress_of().total_xp == xp

    def test_unknown_achievement(self, checker, user):
        with pytest.raises(UnknownAchievement):
            checker.unlock_achievement(user, "nope")

    def test_early_session_unlocks_early_bird(self, checker, storage, user, clock):
        start = datetime(2024, 6, 3, 5, 30, tzinfo=UTC)
        with storage.transaction():
            storage.record_reading_session(
                user,
                None,
                started_at=start,
                ended_at=start + timedelta(minutes=30),
                duration_minutes=30,
                focus_score=80,
                pages_read=10,
            )

        unlocked = checker.check_and_unlock(user)
        assert [a["id"] for a in unlocked] == ["early_bird"]

    def test_start_hour_uses_user_timezone(self, checker, storage, user, clock):
        clock.timezone = "Asia/Seoul"
        # 05:30 in Seoul
        start = datetime(2024, 6, 2, 20, 30, tzinfo=UTC)
        with storage.transaction():
            storage.record_reading_session(
                user,
                None,
                started_at=start,
                ended_at=start + timedelta(minutes=30),
                duration_minutes=30,
                focus_score=80,
                pages_read=10,
            )

        assert checker.get_stats(user).sessions_started(before=6) == 1


class TestUserAchievements:
    """Test cases for the achievement overview."""

    def test_secret_achievements_hidden_until_earned(self, checker, user):
        overview = checker.get_user_achievements(user)

        available = {a["id"] for a in overview["available"]}
        assert "midnight_reader" not in available
        assert "bookworm" in available
        assert all(p["achievement_id"] != "page_turner" for p in overview["progress"])

    def test_progress_percent(self, checker, storage, user):
        with storage.transaction():
            for book_id in (1, 2, 3):
                storage.record_book(user, book_id)

        progress = {
            p["achievement_id"]: p for p in checker.get_user_achievements(user)["progress"]
        }
        assert progress["bookworm"]["current"] == 3
        assert progress["bookworm"]["percent"] == 30

    def test_earned_listed(self, checker, user):
        checker.unlock_achievement(user, "streak_week")
        earned = checker.get_user_achievements(user)["earned"]
        assert [a["id"] for a in earned] == ["streak_week"]
        assert earned[0]["earned_at"] is not None

    def test_public_catalog(self):
        public = AchievementChecker.get_public_achievements()
        assert all(not a["is_secret"] for a in public)
        reading = AchievementChecker.get_achievements_by_category("reading")
        assert reading and all(a["category"] == "reading" for a in reading)
