"""Maps an appointment's recurrence options onto an iCalendar recurrence rule."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..types.appointment_types import RecurringFrequencyType

# RFC 5545 FREQ tokens. Any unit missing from this table means "no recurrence".
FREQUENCY_MAP = {
    RecurringFrequencyType.SECONDLY: "SECONDLY",
    RecurringFrequencyType.MINUTELY: "MINUTELY",
    RecurringFrequencyType.HOURLY: "HOURLY",
    RecurringFrequencyType.DAILY: "DAILY",
    RecurringFrequencyType.WEEKLY: "WEEKLY",
    RecurringFrequencyType.MONTHLY: "MONTHLY",
    RecurringFrequencyType.YEARLY: "YEARLY",
}


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    interval: int = 1
    # None = unbounded
    count: Optional[int] = None

    def as_vrecur(self) -> dict:
        """Returns the mapping accepted by icalendar's ``Event.add('rrule', ...)``."""
        rule = {"freq": self.frequency, "interval": self.interval}
        if self.count is not None:
            rule["count"] = self.count
        return rule


def _option(options: Any, name: str):
    if isinstance(options, dict):
        return options.get(name)
    return getattr(options, name, None)


def _coerce_frequency(value) -> Optional[RecurringFrequencyType]:
    if value is None or isinstance(value, RecurringFrequencyType):
        return value
    try:
        return RecurringFrequencyType(value)
    except ValueError:
        pass
    try:
        return RecurringFrequencyType[str(value).upper()]
    except KeyError:
        return None


def map_recurrence(options: Any) -> Optional[RecurrenceRule]:
    """
    Translates recurrence options (``type``, ``interval``, ``count``) into a
    RecurrenceRule.

    Returns None when there are no options or when the frequency unit is unset
    or unknown. ``interval`` and ``count`` are carried through exactly as given;
    validating them is the caller's job.
    """
    if options is None:
        return None

    frequency = FREQUENCY_MAP.get(_coerce_frequency(_option(options, "type")))
    if frequency is None:
        return None

    interval = _option(options, "interval")
    return RecurrenceRule(
        frequency=frequency,
        interval=1 if interval is None else interval,
        count=_option(options, "count"),
    )


def rule_for_appointment(recurring: bool, options: Any) -> Optional[RecurrenceRule]:
    if not recurring:
        return None
    return map_recurrence(options)
