"""Periodic quest maintenance tasks."""

import structlog

from bookquest.celery_app import celery

logger = structlog.get_logger()


@celery.task(bind=True, max_retries=3, default_retry_delay=60)
def expire_quests_async(self):
    """Expire or renew every overdue quest."""
    from bookquest.clock import get_clock
    from bookquest.services import QuestLifecycle

    try:
        logger.info("expire_quests_started")
        summary = QuestLifecycle(clock=get_clock()).expire_overdue()
        logger.info(
            "expire_quests_completed",
            processed=summary["processed"],
            expired=summary["expired"],
            renewed=summary["renewed"],
            failed=summary["failed"],
        )
        return {key: value for key, value in summary.items() if key != "results"}

    except Exception as e:
        logger.error("expire_quests_failed", error=str(e))
        raise self.retry(exc=e)


@celery.task(bind=True, max_retries=2, default_retry_delay=60)
def scan_expiry_warnings_async(self):
    """Record due expiry warnings."""
    from bookquest.clock import get_clock
    from bookquest.services import QuestLifecycle

    try:
        warnings = QuestLifecycle(clock=get_clock()).due_expiry_warnings()
        for warning in warnings:
            logger.info(
                "expiry_warning_due",
                quest_id=warning["quest_id"],
                user_id=warning["user_id"],
                window=warning["window"],
            )
        return {"success": True, "count": len(warnings)}

    except Exception as e:
        logger.error("scan_expiry_warnings_failed", error=str(e))
        raise self.retry(exc=e)
