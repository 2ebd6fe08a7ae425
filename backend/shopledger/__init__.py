# backend/shopledger/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Service modules log through the package logger
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger(__name__).setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.customers import customers_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.refunds import refunds_bp
    from .routes.allocations import allocations_bp
    from .routes.suppliers import suppliers_bp
    from .routes.pocket_money import pocket_money_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(refunds_bp)
    app.register_blueprint(allocations_bp)
    app.register_blueprint(suppliers_bp)
    app.register_blueprint(pocket_money_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
