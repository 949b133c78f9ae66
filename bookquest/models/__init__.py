"""Database models."""

from bookquest.models.achievement import AchievementAward
from bookquest.models.quest import (
    Quest,
    QuestKind,
    QuestMetadata,
    QuestStatus,
    QuestStatusHistory,
    QuestType,
)
from bookquest.models.reading import Book, ReadingSession
from bookquest.models.reward import LevelHistory, RewardHistory, UserBadge
from bookquest.models.user_progress import UserProgress

__all__ = [
    "Quest",
    "QuestMetadata",
    "QuestStatusHistory",
    "QuestStatus",
    "QuestType",
    "QuestKind",
    "UserProgress",
    "RewardHistory",
    "LevelHistory",
    "UserBadge",
    "AchievementAward",
    "Book",
    "ReadingSession",
]
