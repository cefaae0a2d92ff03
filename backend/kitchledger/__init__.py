# backend/kitchledger/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.recipes import recipes_bp
    from .routes.production import production_bp
    from .routes.waste import waste_bp
    from .routes.approvals import approvals_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(recipes_bp)
    app.register_blueprint(production_bp)
    app.register_blueprint(waste_bp)
    app.register_blueprint(approvals_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
