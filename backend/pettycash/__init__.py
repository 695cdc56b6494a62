# backend/pettycash/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate, CLOCK_EXTENSION, POLICY_EXTENSION, NOTIFIER_EXTENSION
from .time_utils import SystemClock


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Collaborators; tests and embedding apps replace these
    from .services.permission_service import RolePermissionPolicy
    from .services.notification_service import InAppNotifier
    app.extensions.setdefault(CLOCK_EXTENSION, SystemClock())
    app.extensions.setdefault(POLICY_EXTENSION, RolePermissionPolicy())
    app.extensions.setdefault(NOTIFIER_EXTENSION, InAppNotifier())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.transactions import transactions_bp
    from .routes.approvals import approvals_bp
    from .routes.periods import periods_bp
    from .routes.balance import balance_bp
    from .routes.notifications import notifications_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(periods_bp)
    app.register_blueprint(balance_bp)
    app.register_blueprint(notifications_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
