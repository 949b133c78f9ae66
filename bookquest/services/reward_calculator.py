"""Reward calculation service."""

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from bookquest.services.level_service import LevelService
from bookquest.utils.timeutil import ensure_utc


class CompletionQuality(str, Enum):
    """How well a quest was completed."""

    PERFECT = "perfect"
    GOOD = "good"
    NORMAL = "normal"
    POOR = "poor"


@dataclass(frozen=True)
class Reward:
    """An amount of XP and coins plus badge names."""

    xp: int = 0
    coins: int = 0
    badges: tuple[str, ...] = ()

    def __add__(self, other: "Reward | None") -> "Reward":
        if other is None:
            return self
        badges = self.badges + tuple(b for b in other.badges if b not in self.badges)
        return Reward(self.xp + other.xp, self.coins + other.coins, badges)

    def scaled(self, factor: float) -> "Reward":
        """Scale amounts by ``factor``, rounding half up."""
        return Reward(
            int(self.xp * factor + 0.5), int(self.coins * factor + 0.5), self.badges
        )

    def to_dict(self) -> dict:
        return {"xp": self.xp, "coins": self.coins, "badges": list(self.badges)}


class RewardCalculator:
    """Pure reward math."""

    QUEST_XP_PER_DIFFICULTY = 20
    QUEST_COINS_PER_DIFFICULTY = 10

    QUALITY_MULTIPLIERS = {
        CompletionQuality.PERFECT.value: 1.5,
        CompletionQuality.GOOD.value: 1.2,
        CompletionQuality.NORMAL.value: 1.0,
        CompletionQuality.POOR.value: 0.8,
    }

    READING_TIME_CAP_MINUTES = 120
    FOCUS_BONUS_THRESHOLD = 70
    FOCUS_BONUS = 1.2

    # streak days -> (xp, coins, badge)
    STREAK_BONUSES = {
        7: (100, 50, "Week Streak"),
        14: (250, 125, "Two Week Streak"),
        30: (500, 250, "Month Streak"),
        60: (1000, 500, "Two Month Streak"),
        100: (2000, 1000, "Hundred Day Streak"),
    }

    FIRST_BOOK_BADGE = "First Book"

    @classmethod
    def quality_multiplier(cls, completion_quality: str | None) -> float:
        """Factor for a completion quality; unknown values count as normal."""
        return cls.QUALITY_MULTIPLIERS.get(
            completion_quality or CompletionQuality.NORMAL.value, 1.0
        )

    @classmethod
    def calculate_quest_reward(
        cls, difficulty: int, completion_quality: str = CompletionQuality.NORMAL.value
    ) -> Reward:
        """Base quest reward scaled by completion quality, floored."""
        factor = cls.quality_multiplier(completion_quality)
        return Reward(
            xp=math.floor(difficulty * cls.QUEST_XP_PER_DIFFICULTY * factor),
            coins=math.floor(difficulty * cls.QUEST_COINS_PER_DIFFICULTY * factor),
        )

    @classmethod
    def calculate_reading_reward(
        cls, duration_minutes: int, focus_score: int, pages_read: int
    ) -> Reward:
        """
        Reward for a finished reading session.
        Time counts up to two hours; each page is worth 2 XP.
        """
        time_xp = min(duration_minutes, cls.READING_TIME_CAP_MINUTES)
        focus_bonus = (
            cls.FOCUS_BONUS if focus_score >= cls.FOCUS_BONUS_THRESHOLD else 1.0
        )
        page_bonus = pages_read * 2
        xp = math.floor((time_xp + page_bonus) * focus_bonus)
        return Reward(xp=xp, coins=math.floor(xp * 0.4))

    @classmethod
    def calculate_streak_bonus(cls, streak_days: int) -> Reward | None:
        """Bonus at streak milestones, ``None`` on any other day."""
        bonus = cls.STREAK_BONUSES.get(streak_days)
        if bonus is None:
            return None
        xp, coins, badge = bonus
        return Reward(xp=xp, coins=coins, badges=(badge,))

    @classmethod
    def calculate_book_completion_reward(cls, page_count: int) -> Reward:
        return Reward(
            xp=math.floor(page_count * 0.5), coins=math.floor(page_count * 0.2)
        )

    @classmethod
    def first_book_reward(cls) -> Reward:
        return Reward(xp=50, coins=25, badges=(cls.FIRST_BOOK_BADGE,))


class RewardBalancer:
    """Scales payouts by account age, inactivity and level."""

    NEW_USER_DAYS = 7
    NEW_USER_BONUS = 1.5
    RETURN_AFTER_DAYS = 7
    RETURN_BONUS = 2.0
    MIN_MULTIPLIER = 0.5
    MAX_MULTIPLIER = 3.0

    @classmethod
    def calculate_multiplier(
        cls, progress, now: datetime, today: date | None = None
    ) -> float:
        """Multiplier for a user's next payout.

        Must be computed before the triggering event updates
        ``last_activity_date``.
        """
        multiplier = 1.0
        today = today or ensure_utc(now).date()

        account_age_days = (ensure_utc(now) - ensure_utc(progress.created_at)).days
        if account_age_days <= cls.NEW_USER_DAYS:
            multiplier *= cls.NEW_USER_BONUS
        elif (
            progress.last_activity_date is not None
            and (today - progress.last_activity_date).days >= cls.RETURN_AFTER_DAYS
        ):
            multiplier *= cls.RETURN_BONUS

        level = LevelService.calculate_level(progress.total_xp or 0)
        if level > 50:
            multiplier *= 0.8
        elif level > 20:
            multiplier *= 0.9

        return max(cls.MIN_MULTIPLIER, min(multiplier, cls.MAX_MULTIPLIER))
