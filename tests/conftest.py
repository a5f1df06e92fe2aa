"""Shared fixtures: an app on in-memory SQLite with fresh tables per test."""
from datetime import datetime, timedelta

import pytest

from appointment_service import create_app
from appointment_service.extensions import db as _db
from config import TestingConfig


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def make_payload():
    """Builds a decoded appointment payload (what parse_appointment_payload returns)."""

    def _make(start=datetime(2025, 3, 10, 9, 0), minutes=60, participants=("P1",),
              description="Planning", **overrides):
        data = {
            "date_time": start,
            "expected_duration": timedelta(minutes=minutes),
            "description": description,
            "location": "Room 1",
            "status": None,
            "recurring": False,
            "recurring_frequency": None,
            "participants": list(participants),
        }
        data.update(overrides)
        return data

    return _make
