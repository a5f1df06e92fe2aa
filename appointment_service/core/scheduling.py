"""Conflict rules for appointments."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from ..types.appointment_types import AppointmentStatus


@dataclass(frozen=True)
class ConflictCandidate:
    """Time window and participants of an appointment that is about to be stored."""
    start: datetime
    end: datetime
    participant_ids: frozenset = frozenset()

    @classmethod
    def from_fields(cls, start: datetime, duration: Optional[timedelta], participant_ids: Iterable) -> "ConflictCandidate":
        return cls(start, start + (duration or timedelta(0)), frozenset(participant_ids or ()))

    @classmethod
    def from_appointment(cls, appointment) -> "ConflictCandidate":
        return cls.from_fields(appointment.date_time, appointment.expected_duration, appointment.participant_ids)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end). Touching ends do not overlap."""
    return a_start < b_end and a_end > b_start


def is_conflict(candidate: ConflictCandidate, existing) -> bool:
    if existing.status == AppointmentStatus.CANCELLED:
        return False
    existing_end = existing.date_time + (existing.expected_duration or timedelta(0))
    if not intervals_overlap(existing.date_time, existing_end, candidate.start, candidate.end):
        return False
    return not candidate.participant_ids.isdisjoint(existing.participant_ids)


def find_conflicts(candidate: ConflictCandidate, existing_appointments: Iterable,
                   exclude_id: Optional[str] = None) -> List:
    """
    Returns the existing appointments that clash with ``candidate``: not
    cancelled, overlapping in time, and sharing at least one participant.

    A candidate without participants never conflicts. ``exclude_id`` skips the
    candidate's own stored row when an existing appointment is re-checked.
    """
    if not candidate.participant_ids:
        return []
    return [
        ap for ap in existing_appointments
        if (exclude_id is None or ap.id != exclude_id) and is_conflict(candidate, ap)
    ]
