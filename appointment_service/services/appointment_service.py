# appointment_service/services/appointment_service.py
"""
Storage side of the appointment rules.

Every write goes through one session transaction: on creation the overlapping
appointments are read, checked and the new row inserted before a single
commit. Server databases run SERIALIZABLE (see ``Config.init_app``) and file
SQLite databases begin every transaction IMMEDIATE (see
``extensions.lock_sqlite_on_begin``), so two concurrent creations cannot both
pass the conflict check.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.orm import selectinload

from appointment_service.core.ical import DEFAULT_PRODID, update_ical_data
from appointment_service.core.scheduling import ConflictCandidate, find_conflicts
from appointment_service.extensions import db
from appointment_service.models.tables import Appointment, Participant, RecurringOptions
from appointment_service.types.appointment_types import AppointmentStatus

logger = logging.getLogger(__name__)


class AppointmentNotFound(LookupError):
    def __init__(self, appointment_id):
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class ConflictError(Exception):
    """The appointment clashes with appointments already scheduled for its participants."""

    def __init__(self, conflicts):
        super().__init__(f"{len(conflicts)} conflicting appointment(s)")
        self.conflicts = conflicts


def _with_children(query):
    return query.options(
        selectinload(Appointment.participants),
        selectinload(Appointment.recurring_frequency),
    )


def overlapping_candidates(start: datetime, end: datetime, participant_ids):
    """
    Active appointments that could clash with [start, end) for any of
    ``participant_ids``. This is only a pre-filter; the exact rule is applied
    by ``find_conflicts``.
    """
    participant_ids = list(participant_ids)
    if not participant_ids:
        return []
    query = (
        Appointment.query
        .filter(
            Appointment.status != AppointmentStatus.CANCELLED,
            Appointment.date_time < end,
            Appointment.participants.any(Participant.participant_id.in_(participant_ids)),
        )
    )
    return _with_children(query).all()


def check_conflicts(candidate: ConflictCandidate, exclude_id=None):
    existing = overlapping_candidates(candidate.start, candidate.end, candidate.participant_ids)
    return find_conflicts(candidate, existing, exclude_id=exclude_id)


def search_appointments(participant_id=None, location=None, num_participants=None,
                        expected_duration=None, date_from=None, date_to=None, status=None):
    query = Appointment.query
    if date_from is not None:
        query = query.filter(Appointment.date_time >= date_from)
    if date_to is not None:
        query = query.filter(Appointment.date_time <= date_to)
    if participant_id is not None:
        query = query.filter(Appointment.participants.any(Participant.participant_id == participant_id))
    if location is not None:
        query = query.filter(Appointment.location == location)
    if num_participants is not None:
        query = query.filter(Appointment.num_participants == num_participants)
    if expected_duration is not None:
        query = query.filter(Appointment.expected_duration == expected_duration)
    if status is not None:
        query = query.filter(Appointment.status == status)
    return _with_children(query).order_by(Appointment.date_time.asc()).all()


def get_appointment(appointment_id) -> Appointment:
    appointment = _with_children(Appointment.query.filter(Appointment.id == appointment_id)).one_or_none()
    if appointment is None:
        raise AppointmentNotFound(appointment_id)
    return appointment


def _apply_recurring_options(appointment, data):
    options = data.get("recurring_frequency")
    if not data.get("recurring") or not options:
        appointment.recurring_frequency = None
        return
    # One options row per appointment (unique appointment_id), reused across updates
    current = appointment.recurring_frequency
    if current is None:
        current = appointment.recurring_frequency = RecurringOptions()
    current.type = options.get("type")
    current.interval = options.get("interval") or 1
    current.count = options.get("count")


def _sync_ical(appointment):
    return update_ical_data(appointment, current_app.config.get("ICAL_PRODID", DEFAULT_PRODID))


def _participants(data):
    return [Participant(participant_id=pid) for pid in dict.fromkeys(data.get("participants") or [])]


def create_appointment(data) -> Appointment:
    """
    Stores a new appointment built from decoded payload values. New
    appointments always start out Scheduled.
    Raises ConflictError (nothing is written) when it clashes with an
    existing appointment of one of its participants.
    """
    participants = _participants(data)
    candidate = ConflictCandidate.from_fields(
        data["date_time"], data.get("expected_duration"), (p.participant_id for p in participants)
    )

    try:
        if candidate.participant_ids:
            conflicts = check_conflicts(candidate)
            if conflicts:
                logger.info(
                    "Appointment at %s rejected: conflicts with %s",
                    candidate.start.isoformat(), [c.id for c in conflicts],
                )
                raise ConflictError(conflicts)

        appointment = Appointment(
            date_time=data["date_time"],
            expected_duration=data.get("expected_duration") or timedelta(0),
            description=data.get("description") or "",
            location=data.get("location"),
            status=AppointmentStatus.SCHEDULED,
            recurring=bool(data.get("recurring")),
            participants=participants,
        )
        _apply_recurring_options(appointment, data)
        appointment.num_participants = len(participants)
        _sync_ical(appointment)

        db.session.add(appointment)
        db.session.commit()
    except ConflictError:
        raise
    except Exception:
        db.session.rollback()
        logger.error("Failed to create appointment at %s", data.get("date_time"), exc_info=True)
        raise

    logger.info("Appointment created: %s - %s", appointment.id, appointment.date_time.isoformat())
    return appointment


def update_appointment(appointment_id, data) -> Appointment:
    """
    Replaces the mutable fields of an appointment and regenerates its calendar
    document (or cancels it when the new status is Cancelled).
    """
    appointment = get_appointment(appointment_id)

    try:
        appointment.description = data.get("description") or ""
        appointment.date_time = data["date_time"]
        appointment.status = data.get("status") or AppointmentStatus.default()
        appointment.location = data.get("location")
        appointment.expected_duration = data.get("expected_duration") or timedelta(0)
        appointment.recurring = bool(data.get("recurring"))
        appointment.participants = _participants(data)
        _apply_recurring_options(appointment, data)
        appointment.num_participants = len(appointment.participants)

        if current_app.config.get("RECHECK_CONFLICTS_ON_UPDATE") and not appointment.is_cancelled:
            with db.session.no_autoflush:
                conflicts = check_conflicts(ConflictCandidate.from_appointment(appointment), exclude_id=appointment.id)
            if conflicts:
                logger.info("Update of appointment %s rejected: conflicts with %s",
                            appointment.id, [c.id for c in conflicts])
                db.session.rollback()
                raise ConflictError(conflicts)

        _sync_ical(appointment)
        db.session.commit()
    except ConflictError:
        raise
    except Exception:
        db.session.rollback()
        logger.error("Failed to update appointment %s", appointment_id, exc_info=True)
        raise

    logger.info("Appointment updated: %s (%s)", appointment.id, appointment.status.value)
    return appointment


def cancel_appointment(appointment_id) -> Appointment:
    appointment = get_appointment(appointment_id)
    try:
        appointment.status = AppointmentStatus.CANCELLED
        _sync_ical(appointment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("Failed to cancel appointment %s", appointment_id, exc_info=True)
        raise

    logger.info("Appointment cancelled: %s", appointment.id)
    return appointment


def delete_appointment(appointment_id) -> dict:
    """Deletes the appointment with its participants and recurrence options; returns its last state."""
    appointment = get_appointment(appointment_id)
    snapshot = appointment.to_dict()
    try:
        db.session.delete(appointment)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error("Failed to delete appointment %s", appointment_id, exc_info=True)
        raise

    logger.info("Appointment deleted: %s", appointment_id)
    return snapshot
