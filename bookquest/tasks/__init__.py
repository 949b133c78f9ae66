"""Celery tasks package."""

from bookquest.tasks.quest_tasks import expire_quests_async, scan_expiry_warnings_async

__all__ = [
    "expire_quests_async",
    "scan_expiry_warnings_async",
]
