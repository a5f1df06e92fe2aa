# config.py

from __future__ import annotations

import os
from pathlib import Path
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_FILE = BASE_DIR / ".env"

# Loads .env if present (never overrides variables already set in the environment)
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)


def _env_bool(name: str, default: bool = False) -> bool:
    return os.getenv(name, str(default)).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Explicit environment (FLASK_ENV is gone in Flask 3)
    APP_ENV: str = os.getenv("APP_ENV", "development").lower()

    SECRET_KEY: str = os.getenv("APP_SECRET_KEY") or os.getenv("SECRET_KEY") or "dev-secret-key-change-me"

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI: str | None = None
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}

    # Local SQLite directory (dev)
    INSTANCE_DIR = BASE_DIR / "instance"

    # Scheduling
    # The documented behaviour only checks conflicts on creation.
    RECHECK_CONFLICTS_ON_UPDATE: bool = _env_bool("RECHECK_CONFLICTS_ON_UPDATE", False)

    # PRODID written into every generated calendar document
    ICAL_PRODID: str = os.getenv("ICAL_PRODID", "-//Appointment Service//EN")

    @classmethod
    def init_app(cls) -> None:
        """
        Resolves SQLALCHEMY_DATABASE_URI consistently:
        - production: requires DATABASE_URL and rewrites 'postgres://' -> 'postgresql://'
        - dev: uses DATABASE_URL when set, otherwise a local SQLite file
        Server databases (PostgreSQL, MySQL) run SERIALIZABLE so the
        read-then-insert of the create path cannot interleave with another writer.
        """
        db_url = (os.getenv("DATABASE_URL") or "").strip()

        if db_url.startswith("postgres://"):
            db_url = db_url.replace("postgres://", "postgresql://", 1)

        if cls.APP_ENV == "production" and not db_url:
            raise RuntimeError(
                "DATABASE_URL is not set in production. "
                "Configure the DATABASE_URL environment variable."
            )

        # SQLite is covered by BEGIN IMMEDIATE (see extensions.lock_sqlite_on_begin)
        if db_url and not db_url.startswith("sqlite"):
            cls.SQLALCHEMY_ENGINE_OPTIONS = {"isolation_level": "SERIALIZABLE"}
        else:
            cls.SQLALCHEMY_ENGINE_OPTIONS = {}

        if db_url:
            cls.SQLALCHEMY_DATABASE_URI = db_url
            return

        # development
        cls.INSTANCE_DIR.mkdir(exist_ok=True)
        cls.SQLALCHEMY_DATABASE_URI = f"sqlite:///{cls.INSTANCE_DIR / 'appointments.db'}"


class TestingConfig(Config):
    APP_ENV = "testing"
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SQLALCHEMY_ENGINE_OPTIONS: dict = {}
    RECHECK_CONFLICTS_ON_UPDATE = False

    @classmethod
    def init_app(cls) -> None:
        # in-memory database, nothing to resolve
        return None
