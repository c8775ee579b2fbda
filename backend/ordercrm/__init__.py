# backend/ordercrm/__init__.py
import os

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .responses import error_response


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    if not app.config.get("UPLOAD_FOLDER"):
        app.config["UPLOAD_FOLDER"] = os.path.join(app.instance_path, "upload")
    os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.vendors import vendors_bp
    from .routes.products import products_bp
    from .routes.orders import orders_bp
    from .routes.demands import demands_bp
    from .routes.product_purchases import product_purchases_bp
    from .routes.whatsapp_recipients import whatsapp_recipients_bp
    from .routes.notifications import notifications_bp
    from .routes.field_configs import field_configs_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(demands_bp)
    app.register_blueprint(product_purchases_bp)
    app.register_blueprint(whatsapp_recipients_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(field_configs_bp)

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        # Keeps 404/405/413 inside the JSON envelope
        if exc.code == 413:
            return error_response("File too large", 413)
        return error_response(exc.description or exc.name, exc.code or 500)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or [])
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
