# backend/timeledger/__init__.py
from __future__ import annotations

import logging
from typing import Mapping

from flask import Flask, jsonify

from .config import Config
from .errors import TimeLedgerError
from .extensions import db, migrate
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(test_config: Mapping | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services import notification_service
    notification_service.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.punches import punches_bp
    from .routes.adjustments import adjustments_bp
    from .routes.workhours import workhours_bp
    from .routes.compliance import compliance_bp
    from .routes.companies import companies_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(punches_bp)
    app.register_blueprint(adjustments_bp)
    app.register_blueprint(workhours_bp)
    app.register_blueprint(compliance_bp)
    app.register_blueprint(companies_bp)

    @app.errorhandler(TimeLedgerError)
    def handle_timeledger_error(exc: TimeLedgerError):
        if exc.status_code >= 500:
            db.session.rollback()
            logger.error("request failed: %s", exc)
        return jsonify(exc.to_dict()), exc.status_code

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
