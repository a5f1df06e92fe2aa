"""
Calendar (RFC 5545) document for an appointment.

The stored ``ical_data`` is always derived from the appointment's own fields:
regenerated from scratch while the appointment is active, and rewritten into a
cancellation (every VEVENT ``STATUS:CANCELLED``, ``METHOD:CANCEL``) once it is
cancelled, so the original occurrence data survives the cancellation.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from icalendar import Calendar, Event

from ..types.appointment_types import AppointmentStatus
from .recurrence import RecurrenceRule, rule_for_appointment

logger = logging.getLogger(__name__)

DEFAULT_PRODID = "-//Appointment Service//EN"
CANCELLED = "CANCELLED"
CANCEL = "CANCEL"


class ICalParseError(ValueError):
    """The stored document is missing or is not a well-formed VCALENDAR."""


def generate_ical(start: datetime, end: datetime, description: str,
                  rule: Optional[RecurrenceRule] = None, prodid: str = DEFAULT_PRODID) -> str:
    """Builds a single-event calendar document and returns it as text."""
    cal = Calendar()
    cal.add("prodid", prodid)
    cal.add("version", "2.0")

    event = Event()
    event.add("uid", str(uuid.uuid4()))
    event.add("dtstamp", datetime.now(timezone.utc))
    event.add("dtstart", start)
    event.add("dtend", end)
    event.add("summary", description or "")
    if rule is not None:
        event.add("rrule", rule.as_vrecur())

    cal.add_component(event)
    return cal.to_ical().decode("utf-8")


def parse_ical(document: Optional[str]) -> Calendar:
    if not document or not document.strip():
        raise ICalParseError("calendar document is empty")
    try:
        cal = Calendar.from_ical(document)
    except ValueError as exc:
        raise ICalParseError(f"calendar document could not be parsed: {exc}") from exc
    if cal.name != "VCALENDAR":
        raise ICalParseError(f"expected a VCALENDAR, found {cal.name}")
    return cal


def cancel_ical(document: str) -> str:
    """
    Returns ``document`` with every event marked CANCELLED and the calendar
    method set to CANCEL. Everything else (UID, DTSTART, RRULE, ...) is kept,
    and cancelling an already cancelled document changes nothing.
    """
    cal = parse_ical(document)

    for event in cal.walk("VEVENT"):
        event.pop("status", None)
        event.add("status", CANCELLED)

    cal.pop("method", None)
    cal.add("method", CANCEL)
    return cal.to_ical().decode("utf-8")


def update_ical_data(appointment, prodid: str = DEFAULT_PRODID) -> str:
    """
    Brings ``appointment.ical_data`` in line with the appointment's current
    fields and returns the new document. The document is always overwritten.
    """
    if appointment.status == AppointmentStatus.CANCELLED:
        logger.debug("Cancelling calendar document of appointment %s", appointment.id)
        appointment.ical_data = cancel_ical(appointment.ical_data)
        return appointment.ical_data

    start = appointment.date_time
    end = start + (appointment.expected_duration or timedelta(0))
    rule = rule_for_appointment(appointment.recurring, appointment.recurring_frequency)

    appointment.ical_data = generate_ical(start, end, appointment.description, rule, prodid)
    return appointment.ical_data
