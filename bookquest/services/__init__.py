"""Business logic services."""

from bookquest.services.achievement_checker import AchievementChecker
from bookquest.services.event_service import EventService
from bookquest.services.level_service import LevelService
from bookquest.services.quest_lifecycle import QuestLifecycle, TransitionResult
from bookquest.services.quest_service import QuestService
from bookquest.services.reward_calculator import (
    CompletionQuality,
    Reward,
    RewardBalancer,
    RewardCalculator,
)
from bookquest.services.reward_service import RewardService

__all__ = [
    "AchievementChecker",
    "EventService",
    "LevelService",
    "QuestLifecycle",
    "TransitionResult",
    "QuestService",
    "CompletionQuality",
    "Reward",
    "RewardBalancer",
    "RewardCalculator",
    "RewardService",
]
