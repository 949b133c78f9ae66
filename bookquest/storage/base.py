"""Storage boundary required by the engine.

The engine assumes an external transactional record store. Every mutating
engine operation runs inside ``transaction()``, which must give
read-modify-write atomicity per user: either everything written inside the
block becomes visible or nothing does. Lost races surface as
``StorageConflict``.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping


@dataclass(frozen=True)
class StatsSnapshot:
    """Aggregate statistics for one user, computed once per evaluation."""

    user_id: int
    level: int = 1
    total_xp: int = 0
    books_count: int = 0
    genre_count: int = 0
    quests_completed: int = 0
    consecutive_perfect: int = 0
    longest_streak: int = 0
    total_pages: int = 0
    total_minutes: int = 0
    max_daily_pages: int = 0
    max_pages_per_hour: int = 0
    weekend_pages: int = 0
    weekday_pages: int = 0
    # Local start hour -> number of sessions started in that hour
    start_hour_counts: Mapping[int, int] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def sessions_started(self, before: int | None = None, at: int | None = None,
                         after: int | None = None) -> int:
        """Count sessions by local start hour."""
        counts = self.start_hour_counts
        if at is not None:
            return counts.get(at, 0)
        if before is not None:
            return sum(n for hour, n in counts.items() if hour < before)
        if after is not None:
            return sum(n for hour, n in counts.items() if hour >= after)
        return sum(counts.values())


class StorageAdapter(ABC):
    """Record store for quests, user progress, rewards and awards."""

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """Atomic unit of work. Nested blocks join the outermost one."""

    # ============ Quests ============

    @abstractmethod
    def read_quest(self, quest_id: int, for_update: bool = False):
        """Return the quest or ``None``. ``for_update`` locks and reloads the row."""

    @abstractmethod
    def create_quest(self, fields: dict[str, Any], metadata: dict[str, Any]):
        """Insert a quest together with its 1:1 metadata row."""

    @abstractmethod
    def write_quest_transition(
        self, quest, status: str, history: dict[str, Any], changes: dict[str, Any]
    ):
        """Persist a new status plus field changes and append a history row."""

    @abstractmethod
    def update_quest_fields(self, quest, **changes):
        """Persist field changes that are not status transitions."""

    @abstractmethod
    def increment_quest_progress(self, quest, amount: float):
        """Add to the stored progress in place and return the fresh quest."""

    @abstractmethod
    def update_quest_metadata(self, quest, **changes):
        """Persist metadata changes (streak count, multiplier)."""

    @abstractmethod
    def append_history(
        self,
        quest_id: int,
        from_status: str,
        to_status: str,
        actor: str,
        reason: str,
        at: datetime,
    ):
        """Append a history row without changing the quest."""

    @abstractmethod
    def list_history(self, quest_id: int) -> list:
        """History rows, newest first."""

    @abstractmethod
    def history_exists(self, quest_id: int, reason: str, since: datetime) -> bool:
        """Whether a history row with this reason was written after ``since``."""

    @abstractmethod
    def list_expiry_candidates(self, now: datetime) -> list:
        """Quests whose nominal expiry has passed and may need processing."""

    @abstractmethod
    def list_expiring_between(self, start: datetime, end: datetime) -> list:
        """Open quests whose expiry falls inside ``(start, end]``."""

    @abstractmethod
    def list_user_quests(self, user_id: int, statuses: list[str] | None = None) -> list:
        """Quests owned by the user, newest first."""

    @abstractmethod
    def completed_template_ids(self, user_id: int) -> set[str]:
        """Template ids of quests the user has completed."""

    # ============ User progress ============

    @abstractmethod
    def read_user_progress(
        self, user_id: int, for_update: bool = False, now: datetime | None = None
    ):
        """
        Return the user's progress row, creating an empty one if missing.
        A created row starts its account age at ``now``.
        """

    @abstractmethod
    def apply_user_delta(self, user_id: int, xp_delta: int, coin_delta: int):
        """Atomically add to the user's totals and return the fresh row."""

    @abstractmethod
    def update_activity(
        self,
        user_id: int,
        current_streak: int,
        longest_streak: int,
        last_activity_date: date,
    ):
        """Persist activity streak fields."""

    # ============ Rewards and badges ============

    @abstractmethod
    def find_reward(
        self, user_id: int, reward_type: str, source_id: str | None
    ) -> dict | None:
        """Previously recorded reward for the idempotency key, if any."""

    @abstractmethod
    def record_reward(
        self, user_id: int, reward_type: str, source_id: str | None, result: dict
    ):
        """Append to reward history."""

    @abstractmethod
    def record_level_up(
        self, user_id: int, old_level: int, new_level: int, total_xp: int, rewards: dict
    ):
        """Append to level history."""

    @abstractmethod
    def grant_badge_if_absent(self, user_id: int, badge_name: str) -> bool:
        """Grant a badge; ``False`` if the user already owns it."""

    @abstractmethod
    def list_badges(self, user_id: int) -> list:
        """Badges owned by the user, newest first."""

    @abstractmethod
    def list_rewards(self, user_id: int, limit: int = 10) -> list:
        """Reward history, newest first."""

    # ============ Achievements ============

    @abstractmethod
    def has_award(self, user_id: int, achievement_id: str) -> bool:
        """Whether the achievement was already earned."""

    @abstractmethod
    def record_award(self, user_id: int, achievement_id: str) -> bool:
        """Insert an award; ``False`` if already present."""

    @abstractmethod
    def list_awards(self, user_id: int) -> list:
        """Awards, newest first."""

    @abstractmethod
    def read_aggregate_stats(self, user_id: int, timezone: str) -> StatsSnapshot:
        """Compute a fresh statistics snapshot."""

    # ============ Books and reading ============

    @abstractmethod
    def record_book(self, user_id: int, book_id: int | None, **fields):
        """Insert (or return the existing) book."""

    @abstractmethod
    def complete_book(self, user_id: int, book_id: int, completed_at: datetime):
        """Mark a book finished; returns the book or ``None``."""

    @abstractmethod
    def record_reading_session(self, user_id: int, session_id: int | None, **fields):
        """Insert (or return the existing) reading session."""

    @abstractmethod
    def count_books(self, user_id: int) -> int:
        """Number of books the user registered."""
