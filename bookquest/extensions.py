"""Error tracking setup."""

from bookquest.errors import GamificationError


def drop_expected_errors(event, hint):
    """
    Sentry ``before_send`` hook.

    Rule violations (illegal transitions, incomplete progress, unknown ids)
    are answered to the caller and are not reported. Retryable storage
    conflicts still are, tagged so repeated races show up together.
    """
    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], GamificationError):
        error = exc_info[1]
        if not error.is_retryable:
            return None
        event.setdefault("tags", {})["engine_error"] = error.code
    return event


def init_sentry(app):
    """Initialize Sentry when a DSN is configured."""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        if not app.testing:
            app.logger.warning("SENTRY_DSN not set, error tracking disabled")
        return

    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[
            FlaskIntegration(),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
        traces_sample_rate=app.config.get("SENTRY_TRACES_SAMPLE_RATE", 0.1),
        environment=app.config.get("SENTRY_ENVIRONMENT", "production"),
        before_send=drop_expected_errors,
        send_default_pii=False,
    )
    sentry_sdk.set_tag("service", "bookquest")
    app.logger.info("Sentry initialized")
