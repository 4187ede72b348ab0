# backend/opsdesk/__init__.py
from __future__ import annotations

import atexit
import logging

from flask import Flask, request

from .config import Config
from .extensions import db
from . import live


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    package_logger = logging.getLogger("opsdesk")
    package_logger.setLevel(level)
    if not logging.getLogger().handlers and not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        package_logger.addHandler(handler)


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)

    # Import models so metadata is complete before create_all
    from . import models  # noqa: F401

    with app.app_context():
        db.create_all()

    live.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.workflows import workflows_bp
    from .routes.questions import questions_bp
    from .routes.orders import orders_bp
    from .routes.exports import exports_bp
    from .routes.live import live_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(workflows_bp)
    app.register_blueprint(questions_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(exports_bp)
    app.register_blueprint(live_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("ORDER_SWEEPER_ENABLED") and not app.config.get("TESTING"):
        if live.sweeper.start():
            atexit.register(live.shutdown)

    return app
