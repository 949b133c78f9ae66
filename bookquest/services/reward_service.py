"""Reward application service.

``apply_reward`` is the only code path that changes a user's XP, coins or
badge set.
"""

import logging
from datetime import date, datetime

from bookquest.clock import Clock, SystemClock
from bookquest.config import get_setting
from bookquest.services.level_service import LevelService
from bookquest.services.reward_calculator import Reward, RewardBalancer, RewardCalculator
from bookquest.storage import SQLAlchemyStorage, StorageAdapter
from bookquest.utils.timeutil import local_time

logger = logging.getLogger(__name__)


def _result(record: dict) -> dict:
    return {
        "xp": record["xp"],
        "coins": record["coins"],
        "badges": list(record["badges"] or []),
        "leveled_up": record["leveled_up"],
        "new_level": record["new_level"],
    }


class RewardService:
    """Applies rewards atomically and tracks daily activity streaks."""

    def __init__(
        self, storage: StorageAdapter | None = None, clock: Clock | None = None
    ):
        self.storage = storage or SQLAlchemyStorage()
        self.clock = clock or SystemClock()

    def apply_reward(
        self,
        user_id: int,
        reward: Reward,
        source_type: str,
        source_id: int | str | None = None,
    ) -> dict:
        """
        Credit a reward in one transaction.

        ``(user_id, source_type, source_id)`` is the idempotency key: a retry
        returns the stored result without paying again. When the grant
        crosses into a new level, the bonus for the level reached is folded
        into the same write.
        """
        source_key = str(source_id) if source_id is not None else None

        with self.storage.transaction():
            if source_key is not None:
                existing = self.storage.find_reward(user_id, source_type, source_key)
                if existing is not None:
                    logger.info(
                        f"Reward {source_type}:{source_key} already paid "
                        f"to user {user_id}, skipping"
                    )
                    return _result(existing)

            progress = self.storage.read_user_progress(
                user_id, for_update=True, now=self.clock.now()
            )
            new_total = progress.total_xp + reward.xp
            old_level = LevelService.calculate_level(progress.total_xp)
            new_level = LevelService.calculate_level(new_total)

            combined = reward
            if new_level > old_level:
                bonus = LevelService.calculate_level_up_reward(new_level)
                combined = combined + Reward(
                    coins=bonus["coins"], badges=tuple(bonus["badges"])
                )
                self.storage.record_level_up(
                    user_id, old_level, new_level, new_total, bonus
                )

            self.storage.apply_user_delta(user_id, combined.xp, combined.coins)

            leveled_up = new_level > old_level
            result = {
                "xp": combined.xp,
                "coins": combined.coins,
                "badges": list(combined.badges),
                "leveled_up": leveled_up,
                "new_level": new_level if leveled_up else None,
            }
            self.storage.record_reward(user_id, source_type, source_key, result)

            for badge in combined.badges:
                self.storage.grant_badge_if_absent(user_id, badge)

        logger.info(
            f"User {user_id} rewarded from {source_type}:{source_key}: "
            f"+{combined.xp} XP, +{combined.coins} coins"
        )
        if leveled_up:
            logger.info(f"User {user_id} leveled up {old_level} -> {new_level}")
        return result

    def register_activity(self, user_id: int, today: date) -> int | None:
        """
        Count ``today`` towards the user's daily activity streak.

        Returns the new streak, or ``None`` if today was already counted.
        """
        with self.storage.transaction():
            progress = self.storage.read_user_progress(
                user_id, for_update=True, now=self.clock.now()
            )
            last = progress.last_activity_date

            if last is not None and today <= last:
                return None

            if last is not None and (today - last).days == 1:
                streak = progress.current_streak + 1
            else:
                streak = 1

            longest = max(progress.longest_streak, streak)
            self.storage.update_activity(user_id, streak, longest, today)

        logger.info(f"User {user_id} activity streak is now {streak} days")
        return streak

    def local_today(self, user_id: int, now: datetime | None = None) -> date:
        now = now or self.clock.now()
        return local_time(now, self.clock.timezone_of(user_id)).date()

    def balance_multiplier(
        self, user_id: int, now: datetime, today: date | None = None
    ) -> float:
        if not get_setting("REWARD_BALANCING_ENABLED", True):
            return 1.0
        progress = self.storage.read_user_progress(user_id, now=now)
        return RewardBalancer.calculate_multiplier(progress, now, today)

    def grant_activity_reward(
        self,
        user_id: int,
        base: Reward,
        source_type: str,
        source_id: int | str,
        multiplier: float = 1.0,
    ) -> dict:
        """
        Pay a balanced reward for a user activity.

        Scales ``base`` by ``multiplier`` and the balancer, counts the day
        towards the activity streak and folds any streak bonus into one
        ``apply_reward`` call.
        """
        with self.storage.transaction():
            existing = self.storage.find_reward(user_id, source_type, str(source_id))
            if existing is not None:
                return _result(existing)

            now = self.clock.now()
            today = self.local_today(user_id, now)
            # Balancer sees the activity date from before this event
            factor = multiplier * self.balance_multiplier(user_id, now, today)
            reward = base.scaled(factor)

            streak = self.register_activity(user_id, today)
            if streak:
                reward = reward + RewardCalculator.calculate_streak_bonus(streak)

            return self.apply_reward(user_id, reward, source_type, source_id)

    def get_reward_history(self, user_id: int, limit: int = 10) -> list[dict]:
        return [row.to_dict() for row in self.storage.list_rewards(user_id, limit)]

    def get_user_badges(self, user_id: int) -> list[dict]:
        return [badge.to_dict() for badge in self.storage.list_badges(user_id)]

    def get_user_summary(self, user_id: int) -> dict:
        """Progress totals with badges and the latest rewards."""
        progress = self.storage.read_user_progress(user_id, now=self.clock.now())
        summary = progress.to_dict()
        summary["badges"] = self.get_user_badges(user_id)
        summary["recent_rewards"] = self.get_reward_history(user_id, limit=5)
        return summary
