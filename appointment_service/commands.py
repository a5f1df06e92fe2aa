# appointment_service/commands.py
import logging

import click
from flask.cli import with_appcontext

from appointment_service.extensions import db
# Imported so every table is registered on the metadata
from appointment_service.models.tables import Appointment, Participant, RecurringOptions  # noqa: F401

logger = logging.getLogger(__name__)


def reset_database_logic(drop: bool = True):
    """Drops (optionally) and recreates every table."""
    try:
        if drop:
            db.drop_all()
            logger.info("Old tables dropped.")
        db.create_all()
        logger.info("Tables created with the current schema.")
    except Exception:
        db.session.rollback()
        logger.error("Database reset failed", exc_info=True)
        raise


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Creates missing tables."""
    reset_database_logic(drop=False)
    click.echo("Database initialised.")


@click.command("reset-db")
@with_appcontext
@click.confirmation_option(prompt="This deletes every appointment. Continue?")
def reset_db_command():
    """Drops and recreates every table."""
    reset_database_logic(drop=True)
    click.echo("Database reset.")


def register_commands(app):
    app.cli.add_command(init_db_command)
    app.cli.add_command(reset_db_command)
