# backend/plantops/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


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

    # Scheduler client; tests replace this entry with a fake
    from .services.scheduler_client import SchedulerClient
    app.extensions["plantops.scheduler"] = SchedulerClient(app.config["SCHEDULER_URL"])

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.ledger import ledger_bp
    from .routes.thresholds import thresholds_bp
    from .routes.orders import orders_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(thresholds_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(settings_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
