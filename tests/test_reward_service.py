"""Tests for applying rewards and tracking activity streaks."""

from datetime import date, datetime

from bookquest import db
from bookquest.models import LevelHistory, RewardHistory, UserBadge, UserProgress
from bookquest.services import Reward
from bookquest.utils.timeutil import ensure_utc


class TestApplyReward:
    """Test cases for RewardService.apply_reward."""

    def test_level_up_folds_bonus_into_grant(self, rewards, user, progress_of):
        """90 XP plus 30 XP crosses into level 2 and pays the level-up coins."""
        progress_of().total_xp = 90
        db.session.commit()

        result = rewards.apply_reward(user, Reward(xp=30), "quest", "Q7")

        assert result == {
            "xp": 30,
            "coins": 50,
            "badges": [],
            "leveled_up": True,
            "new_level": 2,
        }
        progress = progress_of()
        assert progress.total_xp == 120
        assert progress.total_coins == 50
        assert progress.level == 2
        assert LevelHistory.query.filter_by(user_id=user).count() == 1

    def test_retry_with_same_source_pays_once(self, rewards, user, progress_of):
        first = rewards.apply_reward(user, Reward(xp=20, coins=10), "quest", "Q1")
        second = rewards.apply_reward(user, Reward(xp=20, coins=10), "quest", "Q1")

        assert first == second
        assert progress_of().total_xp == 20
        assert progress_of().total_coins == 10
        assert RewardHistory.query.filter_by(user_id=user).count() == 1

    def test_crossing_several_levels_pays_reached_level_once(
        self, rewards, user, progress_of
    ):
        result = rewards.apply_reward(user, Reward(xp=250), "bonus", "big")

        assert result["new_level"] == 3
        assert result["coins"] == 75
        assert progress_of().total_coins == 75

        history = LevelHistory.query.filter_by(user_id=user).all()
        assert [(h.old_level, h.new_level) for h in history] == [(1, 3)]

    def test_milestone_level_grants_badge(self, rewards, user, progress_of):
        progress_of().total_xp = 390
        db.session.commit()

        result = rewards.apply_reward(user, Reward(xp=20), "bonus", "m5")

        assert result["new_level"] == 5
        assert result["coins"] == 100
        assert result["badges"] == ["Reading Novice"]
        badges = [b["name"] for b in rewards.get_user_badges(user)]
        assert badges == ["Reading Novice"]

    def test_no_level_up(self, rewards, user):
        result = rewards.apply_reward(user, Reward(xp=10, coins=3), "bonus", "small")
        assert result["leveled_up"] is False
        assert result["new_level"] is None

    def test_badge_granted_once(self, rewards, user):
        rewards.apply_reward(user, Reward(badges=("First Book",)), "bonus", "a")
        rewards.apply_reward(user, Reward(badges=("First Book",)), "bonus", "b")
        assert UserBadge.query.filter_by(user_id=user).count() == 1

    def test_creates_progress_for_unknown_user(self, rewards, app):
        rewards.apply_reward(42, Reward(xp=5), "bonus", "hello")
        assert db.session.get(UserProgress, 42).total_xp == 5

    def test_new_account_age_follows_clock(self, rewards, clock, app):
        rewards.apply_reward(42, Reward(xp=5), "bonus", "hello")

        created = db.session.get(UserProgress, 42).created_at
        assert ensure_utc(created) == clock.now()
        assert rewards.balance_multiplier(42, clock.now()) == 1.5

        clock.advance(days=30)
        assert rewards.balance_multiplier(42, clock.now()) == 1.0


class TestRegisterActivity:
    """Test cases for the daily activity streak."""

    def test_first_activity_starts_streak(self, rewards, user):
        assert rewards.register_activity(user, date(2024, 6, 3)) == 1

    def test_same_day_counts_once(self, rewards, user):
        rewards.register_activity(user, date(2024, 6, 3))
        assert rewards.register_activity(user, date(2024, 6, 3)) is None

    def test_consecutive_days_extend_streak(self, rewards, user, progress_of):
        rewards.register_activity(user, date(2024, 6, 3))
        assert rewards.register_activity(user, date(2024, 6, 4)) == 2
        assert progress_of().longest_streak == 2

    def test_gap_resets_streak_and_keeps_longest(self, rewards, user, progress_of):
        rewards.register_activity(user, date(2024, 6, 3))
        rewards.register_activity(user, date(2024, 6, 4))
        assert rewards.register_activity(user, date(2024, 6, 7)) == 1

        progress = progress_of()
        assert progress.current_streak == 1
        assert progress.longest_streak == 2
        assert progress.last_activity_date == date(2024, 6, 7)


class TestGrantActivityReward:
    """Test cases for balanced activity payouts."""

    def test_multiplier_applied(self, rewards, user):
        result = rewards.grant_activity_reward(
            user, Reward(xp=20, coins=10), "quest", 1, multiplier=1.5
        )
        assert result["xp"] == 30
        assert result["coins"] == 15

    def test_replay_returns_stored_result(self, rewards, user, progress_of):
        first = rewards.grant_activity_reward(user, Reward(20, 10), "reading", 5)
        second = rewards.grant_activity_reward(user, Reward(20, 10), "reading", 5)

        assert first == second
        assert progress_of().total_xp == 20

    def test_streak_milestone_bonus(self, rewards, user, progress_of):
        progress = progress_of()
        progress.current_streak = 6
        progress.longest_streak = 6
        progress.last_activity_date = date(2024, 6, 2)
        db.session.commit()

        result = rewards.grant_activity_reward(user, Reward(10, 4), "reading", 9)

        assert result["xp"] == 110
        # 54 coins plus the level 2 bonus
        assert result["coins"] == 104
        assert result["badges"] == ["Week Streak"]
        assert progress_of().current_streak == 7

    def test_returning_user_gets_double(self, rewards, user, progress_of):
        progress_of().last_activity_date = date(2024, 5, 20)
        db.session.commit()

        result = rewards.grant_activity_reward(user, Reward(10, 5), "reading", 3)

        assert result["xp"] == 20
        assert result["coins"] == 10

    def test_new_account_bonus(self, rewards, clock, app):
        db.session.add(UserProgress(user_id=7, created_at=datetime(2024, 6, 1)))
        db.session.commit()

        result = rewards.grant_activity_reward(7, Reward(10, 4), "reading", 1)

        assert result["xp"] == 15
        assert result["coins"] == 6

    def test_balancing_can_be_disabled(self, rewards, app):
        app.config["REWARD_BALANCING_ENABLED"] = False
        db.session.add(UserProgress(user_id=7, created_at=datetime(2024, 6, 1)))
        db.session.commit()

        result = rewards.grant_activity_reward(7, Reward(10, 4), "reading", 1)

        assert result["xp"] == 10


class TestRewardQueries:
    """Test cases for the read-only helpers."""

    def test_user_summary(self, rewards, user):
        rewards.apply_reward(user, Reward(xp=120, coins=5), "bonus", "x")
        summary = rewards.get_user_summary(user)

        assert summary["level"] == 2
        assert summary["total_xp"] == 120
        assert summary["xp_to_next_level"] == 80
        assert summary["badges"] == []
        assert summary["recent_rewards"][0]["source_id"] == "x"

    def test_reward_history_limit(self, rewards, user):
        for i in range(4):
            rewards.apply_reward(user, Reward(xp=1), "bonus", i)
        assert len(rewards.get_reward_history(user, limit=3)) == 3
