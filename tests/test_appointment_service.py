"""Storage behaviour of the appointment service on in-memory SQLite."""
import threading
import time
from datetime import datetime, timedelta

import pytest
from icalendar import Calendar

from appointment_service import create_app
from appointment_service.extensions import db as _db
from appointment_service.core.ical import ICalParseError
from appointment_service.models.tables import Appointment, Participant, RecurringOptions
from appointment_service.services import appointment_service as service
from appointment_service.services.appointment_service import AppointmentNotFound, ConflictError
from appointment_service.types.appointment_types import AppointmentStatus, RecurringFrequencyType
from config import TestingConfig


def at(hour, minute=0, day=10):
    return datetime(2025, 3, day, hour, minute)


def event_of(appointment):
    cal = Calendar.from_ical(appointment.ical_data)
    return cal, next(iter(cal.walk("VEVENT")))


class TestCreate:
    def test_create_assigns_id_count_and_document(self, app, make_payload):
        appointment = service.create_appointment(make_payload(participants=["P1", "P2"]))

        assert appointment.id
        assert appointment.status is AppointmentStatus.SCHEDULED
        assert appointment.num_participants == 2
        _, event = event_of(appointment)
        assert event.decoded("dtstart") == at(9)
        assert event.decoded("dtend") == at(10)
        assert str(event["summary"]) == "Planning"

    def test_document_uses_configured_prodid(self, app, make_payload):
        app.config["ICAL_PRODID"] = "-//Front Desk//EN"
        cal, _ = event_of(service.create_appointment(make_payload()))
        assert str(cal["prodid"]) == "-//Front Desk//EN"

    def test_new_appointments_start_scheduled(self, app, make_payload):
        appointment = service.create_appointment(make_payload(status=AppointmentStatus.CANCELLED))
        assert appointment.status is AppointmentStatus.SCHEDULED

    def test_without_participants(self, app, make_payload):
        appointment = service.create_appointment(make_payload(participants=()))
        assert appointment.num_participants == 0
        assert appointment.participants == []

    def test_recurring_appointment_stores_options_and_rule(self, app, make_payload):
        appointment = service.create_appointment(make_payload(
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.WEEKLY, "interval": 2, "count": 6},
        ))

        assert appointment.recurring_frequency.type is RecurringFrequencyType.WEEKLY
        _, event = event_of(appointment)
        assert event["rrule"]["FREQ"] == ["WEEKLY"]
        assert event["rrule"]["INTERVAL"] == [2]
        assert event["rrule"]["COUNT"] == [6]

    def test_conflict_is_rejected_and_nothing_written(self, app, make_payload):
        first = service.create_appointment(make_payload(start=at(9), minutes=60, participants=["P1"]))

        with pytest.raises(ConflictError) as excinfo:
            service.create_appointment(make_payload(start=at(9, 30), minutes=60, participants=["P1"]))

        assert [c.id for c in excinfo.value.conflicts] == [first.id]
        assert Appointment.query.count() == 1

    def test_touching_appointments_do_not_conflict(self, app, make_payload):
        service.create_appointment(make_payload(start=at(9), minutes=60, participants=["P1"]))
        service.create_appointment(make_payload(start=at(10), minutes=60, participants=["P1"]))
        assert Appointment.query.count() == 2

    def test_other_participants_do_not_conflict(self, app, make_payload):
        service.create_appointment(make_payload(participants=["A", "B"]))
        service.create_appointment(make_payload(participants=["C", "D"]))
        assert Appointment.query.count() == 2

    def test_existing_long_appointment_starting_earlier_conflicts(self, app, make_payload):
        long_one = service.create_appointment(make_payload(start=at(8), minutes=240, participants=["P1"]))
        with pytest.raises(ConflictError) as excinfo:
            service.create_appointment(make_payload(start=at(10), minutes=15, participants=["P1"]))
        assert excinfo.value.conflicts == [long_one]

    def test_cancel_then_retry_scenario(self, app, make_payload):
        a = service.create_appointment(make_payload(start=at(9), minutes=60, participants=["P1"]))
        b = make_payload(start=at(9, 30), minutes=60, participants=["P1"])

        with pytest.raises(ConflictError) as excinfo:
            service.create_appointment(b)
        assert {c.id for c in excinfo.value.conflicts} == {a.id}

        service.cancel_appointment(a.id)
        created = service.create_appointment(b)
        assert created.id != a.id


class TestUpdate:
    def test_update_regenerates_document(self, app, make_payload):
        appointment = service.create_appointment(make_payload())
        old_document = appointment.ical_data

        updated = service.update_appointment(
            appointment.id, make_payload(start=at(14), minutes=30, description="Moved", participants=["P1", "P3", "P4"])
        )

        assert updated.ical_data != old_document
        assert updated.num_participants == 3
        _, event = event_of(updated)
        assert event.decoded("dtstart") == at(14)
        assert event.decoded("dtend") == at(14, 30)
        assert str(event["summary"]) == "Moved"

    def test_update_replaces_participants(self, app, make_payload):
        appointment = service.create_appointment(make_payload(participants=["P1", "P2"]))
        service.update_appointment(appointment.id, make_payload(participants=["P3"]))

        assert service.get_appointment(appointment.id).participant_ids == frozenset({"P3"})
        assert Participant.query.count() == 1

    def test_update_turns_recurrence_on_and_off(self, app, make_payload):
        appointment = service.create_appointment(make_payload())

        service.update_appointment(appointment.id, make_payload(
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.DAILY, "interval": 1, "count": 3},
        ))
        service.update_appointment(appointment.id, make_payload(
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.MONTHLY, "interval": 2, "count": None},
        ))
        reloaded = service.get_appointment(appointment.id)
        assert reloaded.recurring_frequency.type is RecurringFrequencyType.MONTHLY
        assert RecurringOptions.query.count() == 1
        _, event = event_of(reloaded)
        assert event["rrule"]["FREQ"] == ["MONTHLY"]
        assert "COUNT" not in event["rrule"]

        service.update_appointment(appointment.id, make_payload(
            recurring=False,
            recurring_frequency={"type": RecurringFrequencyType.DAILY, "interval": 1, "count": 3},
        ))
        reloaded = service.get_appointment(appointment.id)
        assert reloaded.recurring_frequency is None
        assert RecurringOptions.query.count() == 0
        _, event = event_of(reloaded)
        assert "rrule" not in event

    def test_update_does_not_recheck_conflicts_by_default(self, app, make_payload):
        service.create_appointment(make_payload(start=at(9), participants=["P1"]))
        other = service.create_appointment(make_payload(start=at(12), participants=["P1"]))

        moved = service.update_appointment(other.id, make_payload(start=at(9), participants=["P1"]))
        assert moved.date_time == at(9)

    def test_update_recheck_when_enabled(self, app, make_payload):
        app.config["RECHECK_CONFLICTS_ON_UPDATE"] = True
        first = service.create_appointment(make_payload(start=at(9), participants=["P1"]))
        other = service.create_appointment(make_payload(start=at(12), participants=["P1"]))

        with pytest.raises(ConflictError) as excinfo:
            service.update_appointment(other.id, make_payload(start=at(9, 30), participants=["P1"]))
        assert [c.id for c in excinfo.value.conflicts] == [first.id]
        assert service.get_appointment(other.id).date_time == at(12)

        # its own old slot never counts against it
        moved = service.update_appointment(other.id, make_payload(start=at(12, 30), participants=["P1"]))
        assert moved.date_time == at(12, 30)

    def test_update_to_cancelled_cancels_document(self, app, make_payload):
        appointment = service.create_appointment(make_payload(
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.WEEKLY, "interval": 1, "count": 4},
        ))

        updated = service.update_appointment(appointment.id, make_payload(
            status=AppointmentStatus.CANCELLED,
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.WEEKLY, "interval": 1, "count": 4},
        ))

        cal, event = event_of(updated)
        assert str(cal["method"]) == "CANCEL"
        assert str(event["status"]) == "CANCELLED"
        assert event["rrule"]["FREQ"] == ["WEEKLY"]

    def test_cancel_without_document_raises_and_rolls_back(self, app, db, make_payload):
        appointment = service.create_appointment(make_payload())
        appointment.ical_data = None
        db.session.commit()

        with pytest.raises(ICalParseError):
            service.cancel_appointment(appointment.id)
        assert service.get_appointment(appointment.id).status is AppointmentStatus.SCHEDULED

    def test_update_missing_raises(self, app, make_payload):
        with pytest.raises(AppointmentNotFound):
            service.update_appointment("missing", make_payload())


class TestCancelAndDelete:
    def test_cancel_twice_keeps_cancelled_document(self, app, make_payload):
        appointment = service.create_appointment(make_payload())
        service.cancel_appointment(appointment.id)
        cancelled = service.cancel_appointment(appointment.id)

        cal, event = event_of(cancelled)
        assert str(event["status"]) == "CANCELLED"
        assert str(cal["method"]) == "CANCEL"
        assert cancelled.ical_data.count("STATUS:") == 1

    def test_delete_cascades(self, app, make_payload):
        appointment = service.create_appointment(make_payload(
            participants=["P1", "P2"],
            recurring=True,
            recurring_frequency={"type": RecurringFrequencyType.DAILY, "interval": 1, "count": 2},
        ))

        snapshot = service.delete_appointment(appointment.id)

        assert snapshot["id"] == appointment.id
        assert Appointment.query.count() == 0
        assert Participant.query.count() == 0
        assert RecurringOptions.query.count() == 0

    def test_delete_missing_raises(self, app):
        with pytest.raises(AppointmentNotFound):
            service.delete_appointment("missing")


class TestSearch:
    @pytest.fixture
    def seeded(self, app, make_payload):
        a = service.create_appointment(make_payload(start=at(9), minutes=30, participants=["P1"], location="Room 1"))
        b = service.create_appointment(make_payload(start=at(9, day=11), minutes=60, participants=["P1", "P2"], location="Room 2"))
        c = service.create_appointment(make_payload(start=at(9, day=12), minutes=60, participants=["P3"], location="Room 1"))
        service.cancel_appointment(c.id)
        return a, b, c

    def test_no_filters_returns_all_ordered(self, seeded):
        a, b, c = seeded
        assert [x.id for x in service.search_appointments()] == [a.id, b.id, c.id]

    def test_filters(self, seeded):
        a, b, c = seeded
        assert [x.id for x in service.search_appointments(participant_id="P1")] == [a.id, b.id]
        assert [x.id for x in service.search_appointments(location="Room 1")] == [a.id, c.id]
        assert [x.id for x in service.search_appointments(num_participants=2)] == [b.id]
        assert [x.id for x in service.search_appointments(expected_duration=timedelta(minutes=30))] == [a.id]
        assert [x.id for x in service.search_appointments(status=AppointmentStatus.CANCELLED)] == [c.id]
        assert [x.id for x in service.search_appointments(date_from=at(0, day=11), date_to=at(23, day=11))] == [b.id]


class TestConcurrentCreate:
    @pytest.fixture
    def file_app(self, tmp_path):
        class FileConfig(TestingConfig):
            SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'appointments.db'}"

        app = create_app(FileConfig)
        with app.app_context():
            _db.create_all()
        yield app
        with app.app_context():
            _db.engine.dispose()

    def test_second_writer_sees_first_insert(self, file_app, make_payload, monkeypatch):
        read = service.overlapping_candidates

        def slow_read(*args):
            rows = read(*args)
            time.sleep(0.3)
            return rows

        monkeypatch.setattr(service, "overlapping_candidates", slow_read)
        outcomes = []

        def create():
            with file_app.app_context():
                try:
                    service.create_appointment(make_payload(start=at(9), minutes=60, participants=["P1"]))
                    outcomes.append("created")
                except ConflictError:
                    outcomes.append("conflict")
                finally:
                    _db.session.remove()

        threads = [threading.Thread(target=create) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert sorted(outcomes) == ["conflict", "created"]
        with file_app.app_context():
            assert Appointment.query.count() == 1
