"""Achievement checking service.

The catalog is data: every definition carries one condition, and
``CONDITION_HANDLERS`` maps each condition type to a function of the user's
statistics snapshot returning ``(current, required)``.
"""

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from bookquest.clock import Clock, SystemClock
from bookquest.errors import DuplicateAward, StorageConflict, UnknownAchievement
from bookquest.models.achievement import ACHIEVEMENTS
from bookquest.services.reward_calculator import Reward
from bookquest.services.reward_service import RewardService
from bookquest.storage import SQLAlchemyStorage, StatsSnapshot, StorageAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementCondition:
    type: str
    value: float | None = None
    timeframe: str | None = None
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    icon: str
    category: str
    kind: str
    rarity: str
    condition: AchievementCondition
    rewards: Mapping[str, Any]
    is_secret: bool = False
    unlock_message: str = ""

    @property
    def reward(self) -> Reward:
        """Fixed reward; a title is granted as a badge."""
        title = self.rewards.get("title")
        return Reward(
            xp=self.rewards.get("xp", 0),
            coins=self.rewards.get("coins", 0),
            badges=(title,) if title else (),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "kind": self.kind,
            "rarity": self.rarity,
            "rewards": dict(self.rewards),
            "is_secret": self.is_secret,
            "unlock_message": self.unlock_message,
        }


def _build_definition(entry: dict) -> AchievementDefinition:
    cond = entry["condition"]
    return AchievementDefinition(
        id=entry["id"],
        name=entry["name"],
        description=entry["description"],
        icon=entry["icon"],
        category=entry["category"],
        kind=entry["kind"],
        rarity=entry["rarity"],
        condition=AchievementCondition(
            type=cond["type"],
            value=cond.get("value"),
            timeframe=cond.get("timeframe"),
            params=MappingProxyType(dict(cond.get("params", {}))),
        ),
        rewards=MappingProxyType(dict(entry["rewards"])),
        is_secret=entry.get("is_secret", False),
        unlock_message=entry.get("unlock_message", ""),
    )


CATALOG: tuple[AchievementDefinition, ...] = tuple(
    _build_definition(entry) for entry in ACHIEVEMENTS
)
CATALOG_BY_ID: Mapping[str, AchievementDefinition] = MappingProxyType(
    {definition.id: definition for definition in CATALOG}
)


# ============ Condition handlers ============


def _books_read(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.books_count, cond.value


def _pages_read(stats: StatsSnapshot, cond: AchievementCondition):
    if cond.timeframe == "daily":
        return stats.max_daily_pages, cond.value
    return stats.total_pages, cond.value


def _time_spent(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.total_minutes, cond.value


def _quests_completed(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.quests_completed, cond.value


def _streak_days(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.longest_streak, cond.value


def _level_reached(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.level, cond.value


def _genre_diversity(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.genre_count, cond.value


def _speed_reading(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.max_pages_per_hour, cond.params.get("pages_per_hour", 100)


def _early_bird(stats: StatsSnapshot, cond: AchievementCondition):
    if "exact_hour" in cond.params:
        return stats.sessions_started(at=cond.params["exact_hour"]), 1
    return stats.sessions_started(before=cond.params.get("before_hour", 6)), 1


def _night_owl(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.sessions_started(after=cond.params.get("after_hour", 23)), 1


def _weekend_warrior(stats: StatsSnapshot, cond: AchievementCondition):
    # Met when weekend pages reach multiplier x weekday pages (and are nonzero)
    multiplier = cond.params.get("multiplier", 2)
    required = max(math.ceil(stats.weekday_pages * multiplier), 1)
    return stats.weekend_pages, required


def _perfectionist(stats: StatsSnapshot, cond: AchievementCondition):
    return stats.consecutive_perfect, cond.params.get("consecutive_perfect", 10)


CONDITION_HANDLERS: Mapping[
    str, Callable[[StatsSnapshot, AchievementCondition], tuple]
] = MappingProxyType(
    {
        "books_read": _books_read,
        "pages_read": _pages_read,
        "time_spent": _time_spent,
        "quests_completed": _quests_completed,
        "streak_days": _streak_days,
        "level_reached": _level_reached,
        "genre_diversity": _genre_diversity,
        "speed_reading": _speed_reading,
        "early_bird": _early_bird,
        "night_owl": _night_owl,
        "weekend_warrior": _weekend_warrior,
        "perfectionist": _perfectionist,
    }
)


def evaluate_condition(
    definition: AchievementDefinition, stats: StatsSnapshot
) -> tuple[float, float] | None:
    """``(current, required)`` for a definition, ``None`` for unknown types."""
    handler = CONDITION_HANDLERS.get(definition.condition.type)
    if handler is None:
        return None
    current, required = handler(stats, definition.condition)
    if required is None:
        return None
    return current, required


class AchievementChecker:
    """Service for checking and unlocking achievements."""

    def __init__(
        self,
        storage: StorageAdapter | None = None,
        clock: Clock | None = None,
        rewards: RewardService | None = None,
    ):
        self.storage = storage or SQLAlchemyStorage()
        self.clock = clock or SystemClock()
        self.rewards = rewards or RewardService(self.storage, self.clock)

    @staticmethod
    def get_definition(achievement_id: str) -> AchievementDefinition:
        definition = CATALOG_BY_ID.get(achievement_id)
        if definition is None:
            raise UnknownAchievement(achievement_id)
        return definition

    def get_stats(self, user_id: int) -> StatsSnapshot:
        return self.storage.read_aggregate_stats(
            user_id, self.clock.timezone_of(user_id)
        )

    def check_user_achievements(self, user_id: int) -> dict:
        """
        Evaluate every not-yet-earned definition, secret ones included,
        against one fresh statistics snapshot.
        """
        stats = self.get_stats(user_id)
        earned = {award.achievement_id for award in self.storage.list_awards(user_id)}

        unlocked = []
        progress = []
        for definition in CATALOG:
            if definition.id in earned:
                continue
            evaluation = evaluate_condition(definition, stats)
            if evaluation is None:
                continue
            current, required = evaluation
            if current >= required:
                unlocked.append(definition)
            else:
                progress.append((definition, current, required))

        return {"unlocked": unlocked, "progress": progress}

    def unlock_achievement(self, user_id: int, achievement_id: str) -> bool:
        """
        Record the award and pay its reward in one transaction.

        Returns ``False`` when the user already has the achievement, including
        when a concurrent caller won the race.
        """
        definition = self.get_definition(achievement_id)

        try:
            with self.storage.transaction():
                if not self.storage.record_award(user_id, achievement_id):
                    raise DuplicateAward(
                        f"Achievement {achievement_id} already earned",
                        {"user_id": user_id, "achievement_id": achievement_id},
                    )
                self.rewards.apply_reward(
                    user_id, definition.reward, "achievement", achievement_id
                )
        except DuplicateAward:
            return False
        except StorageConflict:
            if self.storage.has_award(user_id, achievement_id):
                logger.info(
                    f"Achievement {achievement_id} for user {user_id} "
                    f"was unlocked concurrently"
                )
                return False
            raise

        logger.info(f"Achievement unlocked for user {user_id}: {achievement_id}")
        return True

    def check_and_unlock(self, user_id: int) -> list[dict]:
        """Unlock every newly met achievement. Returns the unlocked ones."""
        newly_unlocked = []
        for definition in self.check_user_achievements(user_id)["unlocked"]:
            if self.unlock_achievement(user_id, definition.id):
                newly_unlocked.append(definition.to_dict())
        return newly_unlocked

    def get_user_achievements(self, user_id: int) -> dict:
        """Earned awards, public achievements still available, and progress.

        Secret achievements only show up once earned.
        """
        awards = self.storage.list_awards(user_id)
        earned_ids = {award.achievement_id for award in awards}

        earned = []
        for award in awards:
            definition = CATALOG_BY_ID.get(award.achievement_id)
            if definition is None:
                continue
            earned.append({**definition.to_dict(), **award.to_dict()})

        available = [
            d.to_dict() for d in CATALOG if not d.is_secret and d.id not in earned_ids
        ]

        progress = [
            {
                "achievement_id": definition.id,
                "current": current,
                "required": required,
                "percent": min(round(current / required * 100), 100) if required else 0,
            }
            for definition, current, required in self.check_user_achievements(user_id)[
                "progress"
            ]
            if not definition.is_secret
        ]

        return {"earned": earned, "available": available, "progress": progress}

    @staticmethod
    def get_public_achievements() -> list[dict]:
        return [d.to_dict() for d in CATALOG if not d.is_secret]

    @staticmethod
    def get_achievements_by_category(category: str) -> list[dict]:
        return [
            d.to_dict() for d in CATALOG if d.category == category and not d.is_secret
        ]
