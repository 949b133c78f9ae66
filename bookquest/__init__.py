"""Flask application factory."""

import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from bookquest.config import config

db = SQLAlchemy()
migrate = Migrate()


def create_app(config_name: str | None = None, clock=None) -> Flask:
    """
    Create and configure the Flask application.

    ``clock`` replaces the wall clock for every request handler, task and
    command run against this app.
    """
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    db.init_app(app)
    migrate.init_app(app, db)

    from bookquest.clock import SystemClock

    app.extensions["bookquest.clock"] = clock or SystemClock()

    CORS(app, origins=app.config["CORS_ORIGINS"], supports_credentials=True)

    from bookquest.extensions import init_sentry
    from bookquest.logging_config import setup_logging

    setup_logging(app)
    init_sentry(app)

    from bookquest.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api/v1")

    from bookquest.cli import register_commands

    register_commands(app)

    @app.route("/health")
    def health():
        return {"status": "ok"}

    @app.route("/ready")
    def ready():
        try:
            db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            return {"status": "unavailable"}, 503
        return {"status": "ok"}

    @app.shell_context_processor
    def make_shell_context():
        from bookquest.models import (AchievementAward, Quest, RewardHistory,
                                      UserProgress)
        from bookquest.services import QuestLifecycle, RewardService

        return {
            "db": db,
            "Quest": Quest,
            "UserProgress": UserProgress,
            "RewardHistory": RewardHistory,
            "AchievementAward": AchievementAward,
            "QuestLifecycle": QuestLifecycle,
            "RewardService": RewardService,
        }

    return app
