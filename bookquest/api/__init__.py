"""API blueprints."""

import hmac

import structlog
from flask import Blueprint, current_app, request

from bookquest.clock import get_clock  # noqa: F401
from bookquest.errors import GamificationError
from bookquest.utils import engine_error

api_bp = Blueprint("api", __name__)


def cron_authorized() -> bool:
    secret = current_app.config.get("CRON_SECRET")
    provided = request.headers.get("X-Cron-Secret", "")
    return bool(secret) and hmac.compare_digest(provided, secret)


@api_bp.errorhandler(GamificationError)
def handle_gamification_error(error: GamificationError):
    structlog.get_logger().info(
        "engine_error", code=error.code, retryable=error.is_retryable
    )
    return engine_error(error)


from bookquest.api import achievements, quests, reading, rewards  # noqa: E402, F401
