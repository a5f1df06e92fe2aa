# appointment_service/models/tables.py
import uuid
from datetime import timedelta

from appointment_service.extensions import db
from appointment_service.types.appointment_types import AppointmentStatus, RecurringFrequencyType
from appointment_service.utils.payloads import format_duration


def _new_id() -> str:
    return str(uuid.uuid4())


class Appointment(db.Model):
    __tablename__ = 'appointments'

    # Assigned by storage, any id sent by the client is ignored
    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    date_time = db.Column(db.DateTime, nullable=False, index=True)
    expected_duration = db.Column(db.Interval, nullable=False, default=timedelta(0))
    description = db.Column(db.Text, nullable=False, default='')
    location = db.Column(db.String(255), nullable=True)
    status = db.Column(db.Enum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)
    recurring = db.Column(db.Boolean, nullable=False, default=False)

    # Kept equal to len(participants) by the service layer on every write
    num_participants = db.Column(db.Integer, nullable=False, default=0)

    # Calendar document (RFC 5545), always regenerated from the fields above
    ical_data = db.Column(db.Text, nullable=True)

    # Participants and recurrence options live and die with the appointment
    participants = db.relationship(
        'Participant', backref='appointment', lazy=True, cascade="all, delete-orphan"
    )
    recurring_frequency = db.relationship(
        'RecurringOptions', backref='appointment', uselist=False, lazy=True, cascade="all, delete-orphan"
    )

    @property
    def start(self):
        return self.date_time

    @property
    def end(self):
        return self.date_time + (self.expected_duration or timedelta(0))

    @property
    def participant_ids(self) -> frozenset:
        return frozenset(p.participant_id for p in (self.participants or []))

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'date_time': self.date_time.isoformat() if self.date_time else None,
            'expected_duration': format_duration(self.expected_duration or timedelta(0)),
            'description': self.description,
            'location': self.location,
            'status': (self.status or AppointmentStatus.default()).value,
            'recurring': bool(self.recurring),
            'recurring_frequency': self.recurring_frequency.to_dict() if self.recurring_frequency else None,
            'participants': sorted(self.participant_ids),
            'num_participants': self.num_participants,
            'ical_data': self.ical_data,
        }

    def __repr__(self):
        return f"<Appointment {self.id} {self.date_time} {self.status}>"


class Participant(db.Model):
    """Link between an appointment and a participant identity."""
    __tablename__ = 'participants'

    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.String(36), nullable=False, index=True)
    appointment_id = db.Column(
        db.String(36), db.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, index=True
    )


class RecurringOptions(db.Model):
    __tablename__ = 'recurring_options'

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.String(36), db.ForeignKey('appointments.id', ondelete='CASCADE'), nullable=False, unique=True
    )
    # An unset unit is legal and means "no recurrence"
    type = db.Column(db.Enum(RecurringFrequencyType), nullable=True)
    interval = db.Column(db.Integer, nullable=False, default=1)
    # None = unbounded
    count = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            'type': self.type.value if self.type else None,
            'interval': self.interval,
            'count': self.count,
        }
