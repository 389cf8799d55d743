# backend/jewelpos/__init__.py
import os

from flask import Flask, request, send_from_directory

from .config import Config
from .extensions import db, migrate


def _register_blueprints(app: Flask) -> None:
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.clients import clients_bp
    from .routes.suppliers import suppliers_bp
    from .routes.products import products_bp
    from .routes.catalog import catalog_bp
    from .routes.sales import sales_bp
    from .routes.installments import installments_bp
    from .routes.payables import payables_bp
    from .routes.notifications import notifications_bp
    from .routes.dashboard import dashboard_bp

    for bp in (
        system_bp, auth_bp, clients_bp, suppliers_bp, products_bp, catalog_bp,
        sales_bp, installments_bp, payables_bp, notifications_bp, dashboard_bp,
    ):
        app.register_blueprint(bp)


def _register_media_route(app: Flask) -> None:
    # Only a path-style MEDIA_BASE_URL is served by this app; a full URL means a CDN
    media_url = (app.config.get("MEDIA_BASE_URL") or "").rstrip("/")
    if not media_url.startswith("/"):
        return

    @app.get(f"{media_url}/<path:filename>")
    def product_image(filename):
        from .services.storage_service import storage_root
        return send_from_directory(storage_root(), filename)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)

    # Alembic autogenerate needs every table on db.metadata
    from . import models  # noqa: F401

    _register_blueprints(app)
    _register_media_route(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    from .cli import register_commands
    register_commands(app)

    return app
