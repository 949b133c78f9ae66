"""Quest expiry and renewal schedule.

Pure functions of ``(now, timezone)``; nothing here reads a clock or storage.
"""

import calendar
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from bookquest.models.quest import QuestType
from bookquest.utils.timeutil import ensure_utc

SUNDAY = 6

# Warning windows, narrowest first
EXPIRY_WARNING_WINDOWS = (
    ("15m_before", timedelta(minutes=15)),
    ("1h_before", timedelta(hours=1)),
    ("6h_before", timedelta(hours=6)),
    ("24h_before", timedelta(hours=24)),
)

DEFAULT_EXPIRY_NOTIFICATIONS = {
    "24h_before": True,
    "6h_before": True,
    "1h_before": True,
    "15m_before": True,
    "expired": True,
}

SCHEDULED_TYPES = (
    QuestType.DAILY.value,
    QuestType.WEEKLY.value,
    QuestType.MONTHLY.value,
    QuestType.STREAK.value,
)


def _local_midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def _first_of_next_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def _days_until_weekday(today: date, weekday: int) -> int:
    """Days until the next ``weekday`` (Monday=0), never zero."""
    return (weekday - today.weekday()) % 7 or 7


def calculate_expiry_time(
    quest_type: str,
    timezone: str,
    now: datetime,
    weekly_reset_day: int = SUNDAY,
) -> datetime:
    """Expiry instant for a quest created at ``now``.

    >>> from datetime import UTC
    >>> calculate_expiry_time("daily", "Asia/Seoul",
    ...     datetime(2024, 1, 1, 14, 59, tzinfo=UTC)).isoformat()
    '2024-01-02T00:00:00+09:00'
    """
    tz = ZoneInfo(timezone)
    now = ensure_utc(now)
    today = now.astimezone(tz).date()

    if quest_type in (QuestType.DAILY.value, QuestType.STREAK.value):
        return _local_midnight(today + timedelta(days=1), tz)
    if quest_type == QuestType.WEEKLY.value:
        days = _days_until_weekday(today, weekly_reset_day)
        return _local_midnight(today + timedelta(days=days), tz)
    if quest_type == QuestType.MONTHLY.value:
        return _local_midnight(_first_of_next_month(today), tz)
    if quest_type == QuestType.EVENT.value:
        return (now + timedelta(days=7)).astimezone(tz)
    if quest_type == QuestType.ADAPTIVE.value:
        return (now + timedelta(days=3)).astimezone(tz)
    return (now + timedelta(hours=24)).astimezone(tz)


def _parse_time_of_day(value: str | None) -> time:
    if not value:
        return time.min
    hour, _, minute = value.partition(":")
    return time(int(hour), int(minute or 0))


def next_renewal_time(pattern: dict, timezone: str, now: datetime) -> datetime:
    """Start of the next cycle described by a renewal pattern."""
    tz = ZoneInfo(timezone)
    today = ensure_utc(now).astimezone(tz).date()
    at = _parse_time_of_day(pattern.get("time"))
    interval = pattern.get("interval", "daily")

    if interval == "weekly":
        days = _days_until_weekday(today, pattern.get("day_of_week", 0))
        day = today + timedelta(days=days)
    elif interval == "monthly":
        first = _first_of_next_month(today)
        last_day = calendar.monthrange(first.year, first.month)[1]
        day_of_month = min(max(pattern.get("day_of_month", 1), 1), last_day)
        day = first.replace(day=day_of_month)
    else:
        day = today + timedelta(days=1)

    return datetime.combine(day, at, tzinfo=tz)


def renewal_pattern_for(quest_type: str, weekly_reset_day: int = SUNDAY) -> dict | None:
    """Renewal pattern matching the expiry rule of a scheduled quest type."""
    if quest_type in (QuestType.DAILY.value, QuestType.STREAK.value):
        return {"interval": "daily", "time": "00:00"}
    if quest_type == QuestType.WEEKLY.value:
        return {"interval": "weekly", "time": "00:00", "day_of_week": weekly_reset_day}
    if quest_type == QuestType.MONTHLY.value:
        return {"interval": "monthly", "time": "00:00", "day_of_month": 1}
    return None


def warning_window(remaining: timedelta, enabled: dict) -> str | None:
    """Narrowest enabled warning window that ``remaining`` falls into.

    A disabled window falls through to the next wider one.
    """
    if remaining <= timedelta(0):
        return None
    for name, span in EXPIRY_WARNING_WINDOWS:
        if remaining <= span and enabled.get(name):
            return name
    return None


def expiry_risk_level(expires_at: datetime | None, now: datetime) -> str:
    """Coarse urgency label: safe, warning (6h), critical (1h) or expired."""
    if expires_at is None:
        return "safe"
    remaining = ensure_utc(expires_at) - ensure_utc(now)
    if remaining <= timedelta(0):
        return "expired"
    if remaining <= timedelta(hours=1):
        return "critical"
    if remaining <= timedelta(hours=6):
        return "warning"
    return "safe"
