from enum import Enum


class AppointmentStatus(Enum):
    """
    Scheduling status of an appointment.
    Anything other than CANCELLED counts as an active appointment.
    """
    SCHEDULED = "Scheduled"
    CANCELLED = "Cancelled"

    @classmethod
    def default(cls):
        return cls.SCHEDULED


class RecurringFrequencyType(Enum):
    """Frequency unit of a recurring appointment."""
    SECONDLY = "Secondly"
    MINUTELY = "Minutely"
    HOURLY = "Hourly"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    MONTHLY = "Monthly"
    YEARLY = "Yearly"
