"""Tests for reward math and the reward balancer."""

from datetime import UTC, date, datetime
from types import SimpleNamespace

import pytest

from bookquest.services import Reward, RewardBalancer, RewardCalculator

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


def make_progress(created_at, last_activity_date=None, total_xp=0):
    return SimpleNamespace(
        created_at=created_at,
        last_activity_date=last_activity_date,
        total_xp=total_xp,
    )


class TestReward:
    """Test cases for the Reward value."""

    def test_add_merges_badges_without_duplicates(self):
        total = Reward(10, 5, ("A",)) + Reward(1, 1, ("A", "B"))
        assert total == Reward(11, 6, ("A", "B"))

    def test_add_none(self):
        reward = Reward(10, 5)
        assert reward + None is reward

    def test_scaled_rounds_half_up(self):
        assert Reward(15, 5).scaled(1.5) == Reward(23, 8)

    def test_scaled_keeps_badges(self):
        assert Reward(10, 0, ("X",)).scaled(2).badges == ("X",)


class TestRewardCalculator:
    """Test cases for the pure reward formulas."""

    def test_quest_reward_perfect(self):
        assert RewardCalculator.calculate_quest_reward(3, "perfect") == Reward(90, 45)

    def test_quest_reward_poor(self):
        assert RewardCalculator.calculate_quest_reward(1, "poor") == Reward(16, 8)

    def test_unknown_quality_counts_as_normal(self):
        assert RewardCalculator.quality_multiplier("legendary") == 1.0
        assert RewardCalculator.quality_multiplier(None) == 1.0

    def test_reading_reward_caps_time(self):
        reward = RewardCalculator.calculate_reading_reward(300, 50, 0)
        assert reward == Reward(120, 48)

    def test_reading_reward_without_focus_bonus(self):
        reward = RewardCalculator.calculate_reading_reward(30, 69, 5)
        assert reward == Reward(40, 16)

    def test_streak_bonus_on_milestone(self):
        assert RewardCalculator.calculate_streak_bonus(7) == Reward(
            100, 50, ("Week Streak",)
        )

    def test_no_streak_bonus_between_milestones(self):
        assert RewardCalculator.calculate_streak_bonus(8) is None
        assert RewardCalculator.calculate_streak_bonus(0) is None

    def test_book_completion_reward(self):
        assert RewardCalculator.calculate_book_completion_reward(300) == Reward(150, 60)

    def test_first_book_reward(self):
        assert RewardCalculator.first_book_reward() == Reward(50, 25, ("First Book",))


class TestRewardBalancer:
    """Test cases for the payout multiplier."""

    def test_new_account_bonus(self):
        progress = make_progress(datetime(2024, 6, 1))
        assert RewardBalancer.calculate_multiplier(progress, NOW) == 1.5

    def test_returning_user_bonus(self):
        progress = make_progress(datetime(2024, 1, 1), date(2024, 5, 24))
        assert RewardBalancer.calculate_multiplier(progress, NOW) == 2.0

    def test_recently_active_user(self):
        progress = make_progress(datetime(2024, 1, 1), date(2024, 6, 2))
        assert RewardBalancer.calculate_multiplier(progress, NOW) == 1.0

    def test_never_active_established_user(self):
        progress = make_progress(datetime(2024, 1, 1))
        assert RewardBalancer.calculate_multiplier(progress, NOW) == 1.0

    def test_high_level_penalty(self):
        # level 26
        progress = make_progress(datetime(2024, 1, 1), date(2024, 6, 2), 2500)
        assert RewardBalancer.calculate_multiplier(progress, NOW) == pytest.approx(0.9)

    def test_returning_veteran(self):
        # level 61
        progress = make_progress(datetime(2024, 1, 1), date(2024, 5, 1), 6000)
        assert RewardBalancer.calculate_multiplier(progress, NOW) == pytest.approx(1.6)

    def test_uses_given_local_day(self):
        progress = make_progress(datetime(2024, 1, 1), date(2024, 5, 27))
        assert RewardBalancer.calculate_multiplier(
            progress, NOW, today=date(2024, 6, 2)
        ) == 1.0
        assert RewardBalancer.calculate_multiplier(
            progress, NOW, today=date(2024, 6, 3)
        ) == 2.0
