"""Celery application: the timer behind the quest sweeps."""

import os

from celery import Celery

celery = Celery(
    "bookquest",
    broker=os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/1"),
    backend=os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/1"),
    include=["bookquest.tasks.quest_tasks"],
)

celery.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_time_limit=300,
    task_soft_time_limit=240,
    worker_prefetch_multiplier=1,
    # A sweep lost with its worker is picked up again; sweeps are idempotent
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    broker_connection_retry_on_startup=True,
)


def build_beat_schedule(config) -> dict:
    """Periodic sweeps; a run older than its own interval is dropped."""
    sweep_interval = float(config.get("EXPIRY_SWEEP_INTERVAL", 300))
    warning_interval = float(config.get("EXPIRY_WARNING_INTERVAL", 900))
    return {
        "expire-overdue-quests": {
            "task": "bookquest.tasks.quest_tasks.expire_quests_async",
            "schedule": sweep_interval,
            "options": {"expires": sweep_interval},
        },
        "scan-expiry-warnings": {
            "task": "bookquest.tasks.quest_tasks.scan_expiry_warnings_async",
            "schedule": warning_interval,
            "options": {"expires": warning_interval},
        },
    }


def init_celery(app):
    """Bind Celery to the Flask app: broker settings, beat, app context."""
    celery.conf.update(
        broker_url=app.config.get("CELERY_BROKER_URL"),
        result_backend=app.config.get("CELERY_RESULT_BACKEND"),
        beat_schedule=build_beat_schedule(app.config),
    )

    class ContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = ContextTask
    return celery
