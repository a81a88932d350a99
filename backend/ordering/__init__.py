# backend/ordering/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate



def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.cutoff import cutoff_bp
    from .routes.sale_orders import sale_orders_bp
    from .routes.aggregation import aggregation_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.ledgers import ledgers_bp
    from .routes.cycle import cycle_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(cutoff_bp)
    app.register_blueprint(sale_orders_bp)
    app.register_blueprint(aggregation_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(ledgers_bp)
    app.register_blueprint(cycle_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Supplier notification backend (log | webhook)
    from .services.notification_service import create_sender
    app.extensions["notification_sender"] = create_sender(app.config, app.logger)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-Actor-Id, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
