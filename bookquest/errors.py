"""Domain errors raised by the gamification engine.

Deterministic errors (illegal transitions, unmet completion criteria,
configuration misses) are surfaced to the caller immediately and must not be
retried. ``StorageConflict`` is the only retryable error: the caller repeats
the whole operation with the same idempotency key.
"""

from typing import Any


class GamificationError(Exception):
    """Base class for engine errors."""

    code = "GAMIFICATION_ERROR"
    is_retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidTransition(GamificationError):
    """The requested status edge is not part of the state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Cannot transition quest from {from_status} to {to_status}",
            {"current_status": from_status, "requested_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class IncompleteProgress(GamificationError):
    """Completion attempted before progress reached the target."""

    code = "INCOMPLETE_PROGRESS"

    def __init__(self, progress: float, target: float):
        super().__init__(
            "Quest target has not been reached yet",
            {"progress": progress, "target": target},
        )
        self.progress = progress
        self.target = target


class AlreadyExpired(GamificationError):
    """The quest's expiry instant has passed."""

    code = "ALREADY_EXPIRED"

    def __init__(self, quest_id: int, expires_at):
        super().__init__(
            f"Quest {quest_id} has expired",
            {"quest_id": quest_id, "expires_at": expires_at.isoformat()},
        )


class InvalidProgress(GamificationError):
    """Progress update that would break monotonicity or hit a frozen quest."""

    code = "INVALID_PROGRESS"


class DuplicateAward(GamificationError):
    """Award already present; callers treat this as a successful no-op."""

    code = "DUPLICATE_AWARD"


class StorageConflict(GamificationError):
    """Transaction lost a race or failed; retry the whole operation."""

    code = "STORAGE_CONFLICT"
    is_retryable = True


class QuestNotFound(GamificationError):
    code = "QUEST_NOT_FOUND"

    def __init__(self, quest_id: int):
        super().__init__(f"Quest {quest_id} not found", {"quest_id": quest_id})


class UnknownAchievement(GamificationError):
    code = "UNKNOWN_ACHIEVEMENT"

    def __init__(self, achievement_id: str):
        super().__init__(
            f"Unknown achievement: {achievement_id}",
            {"achievement_id": achievement_id},
        )


class UnknownTemplate(GamificationError):
    code = "UNKNOWN_TEMPLATE"

    def __init__(self, template_id: str):
        super().__init__(
            f"Unknown quest template: {template_id}", {"template_id": template_id}
        )


class BookNotFound(GamificationError):
    code = "BOOK_NOT_FOUND"

    def __init__(self, book_id: int):
        super().__init__(f"Book {book_id} not found", {"book_id": book_id})
