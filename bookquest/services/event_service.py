"""Caller-supplied events.

Each event is turned into one atomic reward. Achievements are checked after
the reward transaction has committed, so a lost achievement race never rolls
back the event itself.
"""

import logging
from datetime import datetime, timedelta

from bookquest.clock import Clock, SystemClock
from bookquest.errors import BookNotFound
from bookquest.models.quest import QuestStatus
from bookquest.services.achievement_checker import AchievementChecker
from bookquest.services.quest_lifecycle import QuestLifecycle
from bookquest.services.reward_calculator import CompletionQuality, RewardCalculator
from bookquest.services.reward_service import RewardService
from bookquest.storage import SQLAlchemyStorage, StorageAdapter
from bookquest.utils.timeutil import ensure_utc

logger = logging.getLogger(__name__)


class EventService:
    """Entry points for quest, reading and book events."""

    def __init__(
        self, storage: StorageAdapter | None = None, clock: Clock | None = None
    ):
        self.storage = storage or SQLAlchemyStorage()
        self.clock = clock or SystemClock()
        self.rewards = RewardService(self.storage, self.clock)
        self.lifecycle = QuestLifecycle(self.storage, self.clock, self.rewards)
        self.achievements = AchievementChecker(self.storage, self.clock, self.rewards)

    def quest_completed(
        self,
        quest_id: int,
        completion_quality: str = CompletionQuality.NORMAL.value,
    ) -> dict:
        quest = self.lifecycle.get_quest(quest_id)
        result = self.lifecycle.transition(
            quest,
            QuestStatus.COMPLETED.value,
            reason="Quest completed",
            completion_quality=completion_quality,
        )
        return {
            "quest": result.quest.to_dict(),
            "reward": result.reward,
            "multiplier": result.multiplier,
            "achievements": self.achievements.check_and_unlock(quest.user_id),
        }

    def reading_session_ended(
        self,
        user_id: int,
        session_id: int | None,
        duration_minutes: int,
        focus_score: int,
        pages_read: int,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        book_id: int | None = None,
    ) -> dict:
        """Record a finished session and pay the reading reward.

        Replaying the same ``session_id`` pays nothing new.
        """
        ended_at = ensure_utc(ended_at) or self.clock.now()
        started_at = ensure_utc(started_at) or ended_at - timedelta(
            minutes=duration_minutes
        )

        with self.storage.transaction():
            session = self.storage.record_reading_session(
                user_id,
                session_id,
                book_id=book_id,
                started_at=started_at,
                ended_at=ended_at,
                duration_minutes=duration_minutes,
                focus_score=focus_score,
                pages_read=pages_read,
            )
            base = RewardCalculator.calculate_reading_reward(
                duration_minutes, focus_score, pages_read
            )
            reward = self.rewards.grant_activity_reward(
                user_id, base, "reading", session.id
            )

        logger.info(
            f"Reading session {session.id} of user {user_id}: "
            f"{duration_minutes} min, {pages_read} pages"
        )
        return {
            "session": session.to_dict(),
            "reward": reward,
            "achievements": self.achievements.check_and_unlock(user_id),
        }

    def book_registered(
        self,
        user_id: int,
        book_id: int | None = None,
        is_first: bool | None = None,
        genre: str | None = None,
        page_count: int | None = None,
        title: str | None = None,
    ) -> dict:
        """Record a book. The user's first book earns a one-time bonus.

        ``is_first`` defaults to whether the user had no books before.
        """
        with self.storage.transaction():
            had_books = self.storage.count_books(user_id) > 0
            book = self.storage.record_book(
                user_id, book_id, title=title, genre=genre, page_count=page_count
            )
            if is_first is None:
                is_first = not had_books

            reward = None
            if is_first:
                # Keyed on the user: the first-book bonus is paid once ever
                reward = self.rewards.apply_reward(
                    user_id, RewardCalculator.first_book_reward(), "first_book", user_id
                )

        return {
            "book": book.to_dict(),
            "reward": reward,
            "achievements": self.achievements.check_and_unlock(user_id),
        }

    def book_completed(
        self, user_id: int, book_id: int, page_count: int | None = None
    ) -> dict:
        with self.storage.transaction():
            book = self.storage.complete_book(user_id, book_id, self.clock.now())
            if book is None:
                raise BookNotFound(book_id)
            pages = page_count or book.page_count or 0
            reward = self.rewards.apply_reward(
                user_id,
                RewardCalculator.calculate_book_completion_reward(pages),
                "book_completion",
                book.id,
            )

        logger.info(f"User {user_id} finished book {book.id} ({pages} pages)")
        return {
            "book": book.to_dict(),
            "reward": reward,
            "achievements": self.achievements.check_and_unlock(user_id),
        }
