"""Tests for quest expiry and renewal scheduling."""

from datetime import UTC, datetime, timedelta

import pytest

from bookquest.services.quest_schedule import (
    DEFAULT_EXPIRY_NOTIFICATIONS,
    calculate_expiry_time,
    expiry_risk_level,
    next_renewal_time,
    renewal_pattern_for,
    warning_window,
)

MONDAY_NOON = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


class TestCalculateExpiryTime:
    """Test cases for expiry instants."""

    def test_daily_one_minute_before_local_midnight(self):
        # 23:59 in Seoul
        now = datetime(2024, 1, 1, 14, 59, tzinfo=UTC)
        expires = calculate_expiry_time("daily", "Asia/Seoul", now)

        assert expires.isoformat() == "2024-01-02T00:00:00+09:00"
        assert expires == datetime(2024, 1, 1, 15, 0, tzinfo=UTC)

    def test_daily_at_local_midnight_rolls_a_full_day(self):
        now = datetime(2024, 1, 1, 15, 0, tzinfo=UTC)
        expires = calculate_expiry_time("daily", "Asia/Seoul", now)
        assert expires.isoformat() == "2024-01-03T00:00:00+09:00"

    def test_streak_expires_like_daily(self):
        assert calculate_expiry_time("streak", "UTC", MONDAY_NOON) == datetime(
            2024, 6, 4, tzinfo=UTC
        )

    def test_weekly_resets_on_sunday(self):
        assert calculate_expiry_time("weekly", "UTC", MONDAY_NOON) == datetime(
            2024, 6, 9, tzinfo=UTC
        )

    def test_weekly_on_reset_day_moves_a_week(self):
        sunday = datetime(2024, 6, 9, 8, 0, tzinfo=UTC)
        assert calculate_expiry_time("weekly", "UTC", sunday) == datetime(
            2024, 6, 16, tzinfo=UTC
        )

    def test_weekly_custom_reset_day(self):
        assert calculate_expiry_time(
            "weekly", "UTC", MONDAY_NOON, weekly_reset_day=2
        ) == datetime(2024, 6, 5, tzinfo=UTC)

    def test_monthly_over_year_end(self):
        now = datetime(2024, 12, 15, 12, 0, tzinfo=UTC)
        assert calculate_expiry_time("monthly", "UTC", now) == datetime(
            2025, 1, 1, tzinfo=UTC
        )

    @pytest.mark.parametrize(
        "quest_type,delta",
        [("event", timedelta(days=7)), ("adaptive", timedelta(days=3))],
    )
    def test_relative_types(self, quest_type, delta):
        assert calculate_expiry_time(quest_type, "UTC", MONDAY_NOON) == (
            MONDAY_NOON + delta
        )

    def test_naive_now_is_utc(self):
        naive = datetime(2024, 1, 1, 14, 59)
        assert calculate_expiry_time("daily", "Asia/Seoul", naive) == datetime(
            2024, 1, 1, 15, 0, tzinfo=UTC
        )


class TestNextRenewalTime:
    """Test cases for renewal patterns."""

    def test_daily_at_time(self):
        pattern = {"interval": "daily", "time": "06:30"}
        assert next_renewal_time(pattern, "UTC", MONDAY_NOON) == datetime(
            2024, 6, 4, 6, 30, tzinfo=UTC
        )

    def test_weekly_same_weekday_moves_a_week(self):
        pattern = {"interval": "weekly", "time": "00:00", "day_of_week": 0}
        assert next_renewal_time(pattern, "UTC", MONDAY_NOON) == datetime(
            2024, 6, 10, tzinfo=UTC
        )

    def test_monthly_clamps_to_month_length(self):
        pattern = {"interval": "monthly", "time": "00:00", "day_of_month": 31}
        now = datetime(2024, 1, 15, tzinfo=UTC)
        assert next_renewal_time(pattern, "UTC", now) == datetime(
            2024, 2, 29, tzinfo=UTC
        )

    def test_pattern_for_types(self):
        assert renewal_pattern_for("daily") == {"interval": "daily", "time": "00:00"}
        assert renewal_pattern_for("weekly", 3)["day_of_week"] == 3
        assert renewal_pattern_for("monthly")["day_of_month"] == 1
        assert renewal_pattern_for("event") is None


class TestWarningWindow:
    """Test cases for expiry warning windows."""

    def test_narrowest_window(self):
        window = warning_window(timedelta(minutes=10), DEFAULT_EXPIRY_NOTIFICATIONS)
        assert window == "15m_before"

    def test_disabled_window_falls_through(self):
        enabled = {"15m_before": False, "1h_before": True}
        assert warning_window(timedelta(minutes=10), enabled) == "1h_before"

    def test_wide_window(self):
        window = warning_window(timedelta(hours=3), DEFAULT_EXPIRY_NOTIFICATIONS)
        assert window == "6h_before"

    def test_outside_all_windows(self):
        assert warning_window(timedelta(hours=30), DEFAULT_EXPIRY_NOTIFICATIONS) is None
        assert warning_window(timedelta(0), DEFAULT_EXPIRY_NOTIFICATIONS) is None


class TestExpiryRiskLevel:
    """Test cases for the urgency label."""

    @pytest.mark.parametrize(
        "remaining,level",
        [
            (timedelta(hours=12), "safe"),
            (timedelta(hours=5), "warning"),
            (timedelta(minutes=30), "critical"),
            (timedelta(minutes=-1), "expired"),
        ],
    )
    def test_levels(self, remaining, level):
        assert expiry_risk_level(MONDAY_NOON + remaining, MONDAY_NOON) == level

    def test_no_expiry(self):
        assert expiry_risk_level(None, MONDAY_NOON) == "safe"
