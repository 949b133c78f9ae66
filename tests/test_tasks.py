"""Tests for periodic maintenance tasks and CLI commands."""

from datetime import timedelta

from bookquest import db
from bookquest.celery_app import build_beat_schedule
from bookquest.models import Quest
from bookquest.tasks import expire_quests_async, scan_expiry_warnings_async


class TestQuestTasks:
    """Test cases for the Celery tasks (run in-process)."""

    def test_expire_quests_task(self, app, make_quest, user, clock):
        quest = make_quest(
            status="active",
            created_at=clock.now() - timedelta(hours=12),
            expires_at=clock.now() - timedelta(hours=2),
        )

        result = expire_quests_async.apply().get()

        assert result["expired"] == 1
        assert "results" not in result
        assert db.session.get(Quest, quest.id).status == "expired"

    def test_scan_warnings_task_without_quests(self, app):
        result = scan_expiry_warnings_async.apply().get()
        assert result == {"success": True, "count": 0}

    def test_beat_schedule_from_config(self, app):
        schedule = build_beat_schedule(app.config)
        assert schedule["expire-overdue-quests"]["schedule"] == 300.0
        assert schedule["scan-expiry-warnings"]["schedule"] == 900.0

    def test_beat_schedule_overrides(self):
        schedule = build_beat_schedule({"EXPIRY_SWEEP_INTERVAL": 60})
        assert schedule["expire-overdue-quests"]["schedule"] == 60.0
        assert schedule["expire-overdue-quests"]["options"]["expires"] == 60.0


class TestCommands:
    """Test cases for the flask CLI commands."""

    def test_expire_quests_command(self, app, make_quest, user, clock):
        make_quest(
            status="active",
            created_at=clock.now() - timedelta(hours=12),
            expires_at=clock.now() - timedelta(hours=2),
        )

        result = app.test_cli_runner().invoke(args=["expire-quests"])

        assert result.exit_code == 0
        assert "1 expired" in result.output

    def test_expiry_warnings_command(self, app):
        result = app.test_cli_runner().invoke(args=["expiry-warnings"])
        assert result.exit_code == 0
        assert "0 warnings due" in result.output
