# backend/stockapp/__init__.py
from __future__ import annotations

import atexit

from flask import Flask

from .config import Config, engine_options_for
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    # Pool size / timeouts follow the configured database unless given explicitly
    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options_for(
            app.config["SQLALCHEMY_DATABASE_URI"],
            connect_timeout=app.config["DB_CONNECT_TIMEOUT"],
            pool_size=app.config["DB_POOL_SIZE"],
        ),
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.category_service import CategoryCache
    from .services.dispatch import WorkerDispatcher
    app.extensions["category_cache"] = CategoryCache()

    # Background store work, one in-flight operation per resource key
    dispatcher = WorkerDispatcher(app)
    app.extensions["dispatcher"] = dispatcher
    atexit.register(dispatcher.shutdown)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.categories import categories_bp
    from .routes.stock import stock_bp
    from .routes.checkout import checkout_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(checkout_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
