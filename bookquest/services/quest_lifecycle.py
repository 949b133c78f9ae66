"""Quest lifecycle state machine."""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from bookquest.clock import Clock, SystemClock
from bookquest.config import get_setting
from bookquest.errors import (
    AlreadyExpired,
    IncompleteProgress,
    InvalidProgress,
    InvalidTransition,
    QuestNotFound,
)
from bookquest.models.quest import Quest, QuestStatus, QuestType
from bookquest.services.quest_schedule import (
    DEFAULT_EXPIRY_NOTIFICATIONS,
    SCHEDULED_TYPES,
    calculate_expiry_time,
    next_renewal_time,
    renewal_pattern_for,
    warning_window,
)
from bookquest.services.reward_calculator import (
    CompletionQuality,
    Reward,
    RewardCalculator,
)
from bookquest.services.reward_service import RewardService
from bookquest.storage import SQLAlchemyStorage, StorageAdapter
from bookquest.utils.timeutil import ensure_utc, isoformat, to_storage

logger = logging.getLogger(__name__)

S = QuestStatus

TRANSITIONS = {
    S.PENDING.value: frozenset({S.ACTIVE.value, S.LOCKED.value}),
    S.ACTIVE.value: frozenset({S.PAUSED.value, S.COMPLETED.value, S.FAILED.value}),
    S.PAUSED.value: frozenset({S.ACTIVE.value, S.FAILED.value}),
    S.COMPLETED.value: frozenset({S.READY_TO_CLAIM.value}),
    S.READY_TO_CLAIM.value: frozenset({S.COMPLETED.value}),
    S.FAILED.value: frozenset({S.PENDING.value}),
    S.EXPIRED.value: frozenset({S.PENDING.value}),
    S.LOCKED.value: frozenset({S.PENDING.value}),
    S.LEGENDARY.value: frozenset({S.COMPLETED.value}),
    S.STREAK.value: frozenset({S.ACTIVE.value, S.COMPLETED.value}),
}

TERMINAL_STATUSES = frozenset(
    {S.COMPLETED.value, S.EXPIRED.value, S.LEGENDARY.value}
)
PAYOUT_STATUSES = frozenset({S.COMPLETED.value, S.READY_TO_CLAIM.value})
PROGRESS_STATUSES = frozenset({S.ACTIVE.value, S.PAUSED.value, S.STREAK.value})
WARNING_STATUSES = frozenset({S.PENDING.value, S.ACTIVE.value, S.PAUSED.value})

# Quest types whose completions build QuestMetadata.streak_count
STREAK_QUEST_TYPES = frozenset({QuestType.DAILY.value, QuestType.STREAK.value})

SYSTEM_ACTOR = "system"
WARNING_DEDUP_WINDOW = timedelta(hours=1)


def is_valid_transition(from_status: str, to_status: str) -> bool:
    """Whether ``from_status -> to_status`` is an edge of the state machine."""
    return to_status in TRANSITIONS.get(from_status, ())


def calculate_reward_multiplier(
    quest: Quest, completion_time: datetime | None, streak_count: int = 0
) -> float:
    """
    Reward multiplier owed at completion.

    Streak adds 10% per cycle (capped at +100%), finishing in the first half
    of the window adds 50% (25% within three quarters) and hard quests add 20%.
    """
    multiplier = 1.0
    if streak_count > 0:
        multiplier += min(streak_count * 0.10, 1.00)

    created = ensure_utc(quest.created_at)
    expires = ensure_utc(quest.expires_at)
    if completion_time and created and expires and expires > created:
        ratio = (ensure_utc(completion_time) - created) / (expires - created)
        if ratio <= 0.5:
            multiplier += 0.50
        elif ratio <= 0.75:
            multiplier += 0.25

    if (quest.difficulty or 0) >= 4:
        multiplier += 0.20

    return round(multiplier, 2)


@dataclass
class TransitionResult:
    """Outcome of a successful status change."""

    quest: Quest
    previous_status: str
    new_status: str
    reward: dict | None = None
    multiplier: float | None = None

    def to_dict(self) -> dict:
        return {
            "quest": self.quest.to_dict(),
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "reward": self.reward,
            "multiplier": self.multiplier,
        }


class QuestLifecycle:
    """Validates and performs quest status changes, expiry and renewal."""

    def __init__(
        self,
        storage: StorageAdapter | None = None,
        clock: Clock | None = None,
        rewards: RewardService | None = None,
    ):
        self.storage = storage or SQLAlchemyStorage()
        self.clock = clock or SystemClock()
        self.rewards = rewards or RewardService(self.storage, self.clock)

    @property
    def weekly_reset_day(self) -> int:
        return get_setting("WEEKLY_RESET_DAY", 6)

    def get_quest(self, quest_id: int) -> Quest:
        quest = self.storage.read_quest(quest_id)
        if quest is None:
            raise QuestNotFound(quest_id)
        return quest

    def _lock(self, quest: Quest) -> Quest:
        """Row-locked, freshly read copy of ``quest``. Call inside a transaction."""
        locked = self.storage.read_quest(quest.id, for_update=True)
        if locked is None:
            raise QuestNotFound(quest.id)
        return locked

    # ============ Transitions ============

    def transition(
        self,
        quest: Quest,
        new_status: str,
        reason: str | None = None,
        actor: str = "user",
        completion_quality: str = CompletionQuality.NORMAL.value,
    ) -> TransitionResult:
        """Move ``quest`` to ``new_status``.

        Every check runs against the locked row, not the caller's copy.
        Entering ``completed`` or ``ready_to_claim`` pays the quest reward in
        the same transaction. The payout is keyed on the quest id, so the
        completed/ready_to_claim loop pays only once.
        """
        new_status = getattr(new_status, "value", new_status)
        reward = multiplier = None

        with self.storage.transaction():
            quest = self._lock(quest)
            current = quest.status

            # Unmet targets are reported whatever the current status is
            if new_status == S.COMPLETED.value and not quest.is_target_reached:
                raise IncompleteProgress(quest.progress, quest.target_value)

            if not self._edge_allowed(current, new_status, actor):
                raise InvalidTransition(current, new_status)

            now = self.clock.now()
            expires = ensure_utc(quest.expires_at)
            if (
                expires is not None
                and now > expires
                and new_status not in (S.EXPIRED.value, S.PENDING.value)
            ):
                raise AlreadyExpired(quest.id, expires)

            changes = self._status_changes(quest, new_status, now, completion_quality)
            self.storage.write_quest_transition(
                quest,
                new_status,
                {"actor": actor, "reason": reason, "at": now},
                changes,
            )
            if new_status in PAYOUT_STATUSES:
                reward, multiplier = self._pay_out(quest, now)

        logger.info(
            f"Quest {quest.id} transitioned {current} -> {new_status} by {actor}"
        )
        return TransitionResult(quest, current, new_status, reward, multiplier)

    def _edge_allowed(self, current: str, new_status: str, actor: str) -> bool:
        if is_valid_transition(current, new_status):
            return True
        # System expiry edge, used by the sweep only
        return (
            actor == SYSTEM_ACTOR
            and new_status == S.EXPIRED.value
            and current not in TERMINAL_STATUSES
        )

    def _status_changes(
        self, quest: Quest, new_status: str, now: datetime, completion_quality: str
    ) -> dict:
        stamp = to_storage(now)
        changes = {}

        if new_status == S.ACTIVE.value:
            if quest.started_at is None:
                changes["started_at"] = stamp
        elif new_status == S.PAUSED.value:
            changes["paused_at"] = stamp
        elif new_status == S.COMPLETED.value:
            if quest.completed_at is None:
                changes["completed_at"] = stamp
                changes["completion_quality"] = completion_quality
                changes["progress"] = min(quest.progress, quest.target_value)
        elif new_status in (S.FAILED.value, S.EXPIRED.value):
            changes["failed_at"] = stamp
        elif new_status == S.PENDING.value and quest.status in (
            S.FAILED.value,
            S.EXPIRED.value,
        ):
            timezone = self.clock.timezone_of(quest.user_id)
            changes["expires_at"] = to_storage(
                calculate_expiry_time(
                    quest.quest_type, timezone, now, self.weekly_reset_day
                )
            )

        return changes

    def _pay_out(self, quest: Quest, now: datetime) -> tuple[dict, float]:
        meta = quest.quest_metadata
        streak_count = meta.streak_count if meta else 0
        completed_at = ensure_utc(quest.completed_at) or now
        multiplier = calculate_reward_multiplier(quest, completed_at, streak_count)

        quality = quest.completion_quality or CompletionQuality.NORMAL.value
        if quest.xp_reward or quest.coin_reward:
            factor = RewardCalculator.quality_multiplier(quality)
            base = Reward(
                xp=math.floor(quest.xp_reward * factor),
                coins=math.floor(quest.coin_reward * factor),
            )
        else:
            base = RewardCalculator.calculate_quest_reward(quest.difficulty, quality)

        first_payout = (
            self.storage.find_reward(quest.user_id, "quest", str(quest.id)) is None
        )
        reward = self.rewards.grant_activity_reward(
            quest.user_id, base, "quest", quest.id, multiplier
        )

        if first_payout:
            meta_changes = {"bonus_multiplier": multiplier}
            if quest.quest_type in STREAK_QUEST_TYPES:
                meta_changes["streak_count"] = streak_count + 1
            self.storage.update_quest_metadata(quest, **meta_changes)

        return reward, multiplier

    # ============ Progress ============

    def update_progress(self, quest: Quest, amount: float) -> Quest:
        """Add ``amount`` to the quest's progress. Progress never decreases."""
        if amount < 0:
            raise InvalidProgress(
                "Progress cannot decrease", {"quest_id": quest.id, "amount": amount}
            )

        with self.storage.transaction():
            quest = self._lock(quest)
            if quest.status not in PROGRESS_STATUSES:
                raise InvalidProgress(
                    f"Cannot update progress of a {quest.status} quest",
                    {"quest_id": quest.id, "status": quest.status},
                )
            quest = self.storage.increment_quest_progress(quest, amount)
        return quest

    # ============ Expiry and renewal ============

    def is_renewable(self, quest: Quest) -> bool:
        return (
            bool(quest.auto_renew)
            and quest.quest_type in SCHEDULED_TYPES
            and quest.renewed_at is None
        )

    def check_expiry(self, quest: Quest, now: datetime | None = None) -> dict | None:
        """
        Expire (or renew) a quest once its grace period is over.
        Returns ``None`` while the quest is still inside its window, or when
        it reached a final status in the meantime.
        """
        now = now or self.clock.now()

        with self.storage.transaction():
            quest = self._lock(quest)
            expires = ensure_utc(quest.expires_at)
            if expires is None:
                return None

            deadline = expires + timedelta(minutes=quest.grace_period_minutes or 0)
            if now <= deadline:
                return None

            if quest.status in TERMINAL_STATUSES and not (
                quest.status == S.COMPLETED.value and self.is_renewable(quest)
            ):
                return None

            meta = quest.quest_metadata
            notifications = (meta.expiry_notifications if meta else None) or {}
            outcome = {
                "quest_id": quest.id,
                "user_id": quest.user_id,
                "title": quest.title,
                "notify": (
                    bool(notifications.get("expired")) and quest.completed_at is None
                ),
            }

            if self.is_renewable(quest):
                renewed = self.renew(quest, now)
                outcome.update(action="renewed", new_quest_id=renewed.id)
            else:
                self.transition(
                    quest,
                    S.EXPIRED.value,
                    reason="Quest expired due to time limit",
                    actor=SYSTEM_ACTOR,
                )
                outcome["action"] = "expired"
        return outcome

    def renew(self, quest: Quest, now: datetime | None = None) -> Quest:
        """
        Close the current cycle of a recurring quest and open the next one.

        The new quest keeps the streak when the old cycle was completed and
        starts from zero when it was missed.
        """
        now = now or self.clock.now()

        with self.storage.transaction():
            quest = self._lock(quest)
            if not self.is_renewable(quest):
                raise InvalidTransition(quest.status, "renewed")

            timezone = self.clock.timezone_of(quest.user_id)
            meta = quest.quest_metadata
            cycle_completed = quest.completed_at is not None
            streak_count = (meta.streak_count if meta else 0) if cycle_completed else 0

            pattern = (meta.renewal_pattern if meta else None) or renewal_pattern_for(
                quest.quest_type, self.weekly_reset_day
            )
            expires_at = next_renewal_time(pattern, timezone, now)

            if quest.status not in TERMINAL_STATUSES:
                changes = {} if cycle_completed else {"failed_at": to_storage(now)}
                self.storage.write_quest_transition(
                    quest,
                    S.EXPIRED.value,
                    {"actor": SYSTEM_ACTOR, "reason": "Renewed for next cycle", "at": now},
                    changes,
                )
            self.storage.update_quest_fields(quest, renewed_at=to_storage(now))

            new_quest = self.storage.create_quest(
                {
                    "user_id": quest.user_id,
                    "template_id": quest.template_id,
                    "title": quest.title,
                    "description": quest.description,
                    "type": quest.type,
                    "quest_type": quest.quest_type,
                    "difficulty": quest.difficulty,
                    "xp_reward": quest.xp_reward,
                    "coin_reward": quest.coin_reward,
                    "target_value": quest.target_value,
                    "progress": 0,
                    "status": S.PENDING.value,
                    "expires_at": to_storage(expires_at),
                    "auto_renew": quest.auto_renew,
                    "grace_period_minutes": quest.grace_period_minutes,
                    "created_at": to_storage(now),
                },
                {
                    "renewal_pattern": pattern,
                    "expiry_notifications": (
                        meta.expiry_notifications if meta else None
                    )
                    or dict(DEFAULT_EXPIRY_NOTIFICATIONS),
                    "streak_count": streak_count,
                    "bonus_multiplier": meta.bonus_multiplier if meta else 1.0,
                },
            )

        logger.info(
            f"Quest {quest.id} renewed as quest {new_quest.id} "
            f"(streak {streak_count}, expires {isoformat(new_quest.expires_at)})"
        )
        return new_quest

    def expire_overdue(self, now: datetime | None = None) -> dict:
        """Sweep every overdue quest. One bad quest never aborts the sweep."""
        now = now or self.clock.now()
        candidates = self.storage.list_expiry_candidates(now)
        summary = {"processed": 0, "expired": 0, "renewed": 0, "skipped": 0, "failed": 0}
        results = []

        for quest in candidates:
            quest_id = quest.id
            try:
                outcome = self.check_expiry(quest, now)
            except Exception as e:
                logger.exception(f"Failed to process expiry of quest {quest_id}: {e}")
                summary["failed"] += 1
                results.append({"quest_id": quest_id, "action": "error", "error": str(e)})
                continue

            if outcome is None:
                summary["skipped"] += 1
                continue
            summary["processed"] += 1
            summary[outcome["action"]] += 1
            results.append(outcome)

        logger.info(
            f"Expiry sweep: {summary['processed']} processed, "
            f"{summary['renewed']} renewed, {summary['expired']} expired, "
            f"{summary['skipped']} in grace, {summary['failed']} failed"
        )
        return {**summary, "results": results}

    def due_expiry_warnings(self, now: datetime | None = None) -> list[dict]:
        """
        Select expiry warnings that are due and record them.

        Delivery is left to the caller. A warning already recorded for the
        same quest and window within the last hour is not repeated.
        """
        now = now or self.clock.now()
        since = now - WARNING_DEDUP_WINDOW
        warnings = []

        with self.storage.transaction():
            for quest in self.storage.list_expiring_between(now, now + timedelta(hours=24)):
                if quest.status not in WARNING_STATUSES:
                    continue
                meta = quest.quest_metadata
                enabled = (
                    meta.expiry_notifications if meta else None
                ) or DEFAULT_EXPIRY_NOTIFICATIONS
                remaining = ensure_utc(quest.expires_at) - now
                window = warning_window(remaining, enabled)
                if window is None:
                    continue

                reason = f"expiry_warning:{window}"
                if self.storage.history_exists(quest.id, reason, since):
                    continue
                self.storage.append_history(
                    quest.id, quest.status, quest.status, SYSTEM_ACTOR, reason, now
                )
                warnings.append(
                    {
                        "quest_id": quest.id,
                        "user_id": quest.user_id,
                        "title": quest.title,
                        "window": window,
                        "expires_at": isoformat(quest.expires_at),
                        "minutes_remaining": int(remaining.total_seconds() // 60),
                    }
                )

        if warnings:
            logger.info(f"{len(warnings)} expiry warnings due")
        return warnings

    def get_history(self, quest_id: int) -> list[dict]:
        self.get_quest(quest_id)
        return [row.to_dict() for row in self.storage.list_history(quest_id)]
