# appointment_service/__init__.py
from __future__ import annotations

import logging
from flask import Flask
from config import Config
from appointment_service.extensions import db, migrate, lock_sqlite_on_begin


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s - %(levelname)s - %(message)s")
    app.logger.setLevel(level)


def create_app(config_class=Config) -> Flask:
    config_class.init_app()
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_class)

    _configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)

    from appointment_service.blueprints.appointments import bp as appointments_bp
    app.register_blueprint(appointments_bp)
    logging.info(f"Blueprint registered: {appointments_bp.name} ({appointments_bp.url_prefix})")

    from appointment_service.commands import register_commands
    register_commands(app)

    # Healthcheck
    @app.get("/health")
    def health():
        return {"status": "ok"}, 200

    with app.app_context():
        from appointment_service.models import tables  # noqa: F401
        if lock_sqlite_on_begin(db.engine):
            logging.info("SQLite transactions start with BEGIN IMMEDIATE")

    return app
