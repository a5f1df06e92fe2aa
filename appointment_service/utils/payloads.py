# appointment_service/utils/payloads.py
"""
JSON <-> domain values for the appointments API.

Field-level validation the core does not do (non-negative duration, positive
recurrence interval and count) happens here, before anything reaches the
service layer.
"""
import math
import re
from datetime import datetime, timedelta, timezone

from appointment_service.types.appointment_types import AppointmentStatus, RecurringFrequencyType

# [d.]HH:MM:SS[.fffffff], fraction ignored
_DURATION_RE = re.compile(
    r"^(?:(?P<days>\d+)\.)?(?P<hours>[01]?\d|2[0-3]):(?P<minutes>[0-5]\d):(?P<seconds>[0-5]\d)(?:\.\d{1,7})?$"
)


class PayloadError(ValueError):
    """The request payload or query string is invalid."""


def parse_datetime(value, field_name="date_time"):
    if isinstance(value, datetime):
        return value.replace(microsecond=0)
    if not value or not isinstance(value, str):
        raise PayloadError(f"{field_name} is required (ISO-8601)")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise PayloadError(f"Invalid {field_name}: {value!r}. Use ISO-8601, e.g. 2025-01-10T09:00:00")
    # Stored naive; offsets are folded into UTC
    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            raise PayloadError(f"{field_name} is out of range: {value!r}")
    # Calendar documents carry whole seconds only
    return parsed.replace(microsecond=0)


def _to_timedelta(value, field_name):
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise PayloadError(f"Invalid {field_name}: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise PayloadError(f"{field_name} must be a finite number of seconds")
        return timedelta(seconds=int(value))
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return timedelta(seconds=int(value.strip()))
    if isinstance(value, str):
        match = _DURATION_RE.match(value.strip())
        if not match:
            raise PayloadError(f"Invalid {field_name}: {value!r}. Use HH:MM:SS")
        return timedelta(
            days=int(match.group("days") or 0),
            hours=int(match.group("hours")),
            minutes=int(match.group("minutes")),
            seconds=int(match.group("seconds")),
        )
    raise PayloadError(f"Invalid {field_name}: {value!r}")


def parse_duration(value, field_name="expected_duration"):
    """
    Accepts 'HH:MM:SS', 'D.HH:MM:SS' or a number of seconds. Fractions of a
    second are dropped.
    """
    if value is None:
        return timedelta(0)
    try:
        duration = _to_timedelta(value, field_name)
    except OverflowError:
        raise PayloadError(f"{field_name} is out of range: {value!r}")

    if duration < timedelta(0):
        raise PayloadError(f"{field_name} cannot be negative")
    return duration - timedelta(microseconds=duration.microseconds)


def format_duration(duration: timedelta) -> str:
    total = int(duration.total_seconds())
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, seconds = divmod(rest, 60)
    text = f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{days}.{text}" if days else text


def parse_status(value, field_name="status"):
    if value is None or value == "":
        return AppointmentStatus.default()
    if isinstance(value, AppointmentStatus):
        return value
    for status in AppointmentStatus:
        if str(value).lower() in (status.value.lower(), status.name.lower()):
            return status
    raise PayloadError(f"Invalid {field_name}: {value!r}. Use 'Scheduled' or 'Cancelled'")


def parse_frequency_type(value):
    """Unknown units are stored as unset, which means 'no recurrence'."""
    if value is None:
        return None
    for frequency in RecurringFrequencyType:
        if str(value).lower() in (frequency.value.lower(), frequency.name.lower()):
            return frequency
    return None


def _parse_int(value, field_name):
    if isinstance(value, bool):
        raise PayloadError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PayloadError(f"{field_name} must be an integer")


def parse_recurring_frequency(value):
    if value is None:
        return None
    if not isinstance(value, dict):
        raise PayloadError("recurring_frequency must be an object")

    interval = _parse_int(value.get("interval", 1), "recurring_frequency.interval")
    if interval < 1:
        raise PayloadError("recurring_frequency.interval must be at least 1")

    count = value.get("count")
    if count is not None:
        count = _parse_int(count, "recurring_frequency.count")
        if count < 1:
            raise PayloadError("recurring_frequency.count must be at least 1 (omit it for no limit)")

    return {
        "type": parse_frequency_type(value.get("type")),
        "interval": interval,
        "count": count,
    }


def parse_participants(value):
    if value is None:
        return []
    if not isinstance(value, list):
        raise PayloadError("participants must be a list")
    ids = []
    for item in value:
        participant_id = item.get("participant_id") if isinstance(item, dict) else item
        if participant_id is None or str(participant_id).strip() == "":
            raise PayloadError("participants contains an empty id")
        participant_id = str(participant_id).strip()
        if participant_id not in ids:
            ids.append(participant_id)
    return ids


def _parse_bool(value, field_name):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0"):
        return value.lower() in ("true", "1")
    raise PayloadError(f"{field_name} must be a boolean")


def parse_appointment_payload(payload):
    """
    Decodes an appointment JSON body into plain domain values.
    id, num_participants and ical_data are computed by the service and ignored here.
    """
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be a JSON object")

    recurring = _parse_bool(payload.get("recurring"), "recurring")
    description = payload.get("description") or ""
    location = payload.get("location")
    if not isinstance(description, str):
        raise PayloadError("description must be a string")
    if location is not None and not isinstance(location, str):
        raise PayloadError("location must be a string")

    date_time = parse_datetime(payload.get("date_time"))
    expected_duration = parse_duration(payload.get("expected_duration"))
    try:
        date_time + expected_duration
    except OverflowError:
        raise PayloadError("date_time + expected_duration is past the last representable date")

    return {
        "date_time": date_time,
        "expected_duration": expected_duration,
        "description": description,
        "location": location,
        "status": parse_status(payload.get("status")),
        "recurring": recurring,
        "recurring_frequency": parse_recurring_frequency(payload.get("recurring_frequency")) if recurring else None,
        "participants": parse_participants(payload.get("participants")),
    }


def parse_search_args(args):
    """Decodes the search query string (all filters optional)."""
    filters = {}
    if args.get("participant_id"):
        filters["participant_id"] = args["participant_id"].strip()
    if args.get("location") is not None:
        filters["location"] = args["location"]
    if args.get("num_participants") not in (None, ""):
        filters["num_participants"] = _parse_int(args["num_participants"], "num_participants")
    if args.get("expected_duration") not in (None, ""):
        filters["expected_duration"] = parse_duration(args["expected_duration"])
    if args.get("from"):
        filters["date_from"] = parse_datetime(args["from"], "from")
    if args.get("to"):
        filters["date_to"] = parse_datetime(args["to"], "to")
    if args.get("status"):
        filters["status"] = parse_status(args["status"])
    return filters
