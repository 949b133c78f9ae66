"""Clock boundary.

The engine never calls an ambient clock: every service receives a clock and
threads ``now`` explicitly into the pure schedule and multiplier functions.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

from flask import current_app, has_app_context

from bookquest.config import get_setting

FALLBACK_TIMEZONE = "Asia/Seoul"


class Clock(ABC):
    """Supplies the current instant and a user's timezone."""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""

    @abstractmethod
    def timezone_of(self, user_id: int) -> str:
        """IANA timezone name for the user."""


def default_timezone() -> str:
    return get_setting("DEFAULT_TIMEZONE", FALLBACK_TIMEZONE)


def get_clock() -> Clock:
    """The app's configured clock, or the wall clock outside an app."""
    if has_app_context():
        return current_app.extensions["bookquest.clock"]
    return SystemClock()


class SystemClock(Clock):
    """Wall clock; timezone from the user's progress row."""

    def now(self) -> datetime:
        return datetime.now(UTC)

    def timezone_of(self, user_id: int) -> str:
        from bookquest import db
        from bookquest.models import UserProgress

        progress = db.session.get(UserProgress, user_id)
        if progress and progress.timezone:
            return progress.timezone
        return default_timezone()
