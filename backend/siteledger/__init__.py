# backend/siteledger/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .errors import SiteLedgerError
from .extensions import db, migrate


def create_app(config_object=None, notifier=None, blob_store=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Workflow services share one notifier and blob store per app
    from .container import build_services
    app.extensions["siteledger"] = build_services(app.config, notifier=notifier, blob_store=blob_store)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.projects import projects_bp
    from .routes.materials import materials_bp
    from .routes.vendors import vendors_bp
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.finance import finance_bp
    from .routes.labour import labour_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(projects_bp)
    app.register_blueprint(materials_bp)
    app.register_blueprint(vendors_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(labour_bp)

    @app.errorhandler(SiteLedgerError)
    def handle_domain_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def handle_internal_error(error):
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "InternalError", "message": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
