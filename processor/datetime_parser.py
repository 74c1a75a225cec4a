"""Conversion of DTSTART/DTEND values to timezone-aware instants."""
import logging
import re
from datetime import datetime, timezone, tzinfo
from typing import Optional

from processor.models import ParsedField, ResolvedTimezone
from processor.timezones import UnknownTimezoneError, get_zone, resolve_timezone

logger = logging.getLogger(__name__)

_DATE_ONLY_PATTERN = re.compile(r'^\d{8}$')
_DATE_TIME_PATTERN = re.compile(r'^\d{8}T\d{6}$')


class DateParseError(ValueError):
    """Raised when a date or date-time value cannot be converted."""


def parse_event_datetime(
    field: ParsedField,
    calendar_tz: tzinfo,
    resolved: Optional[ResolvedTimezone] = None
) -> datetime:
    """
    Convert a DTSTART/DTEND field into an absolute instant.

    Resolution order:
    1. 8-digit date: local midnight in the calendar zone (all-day event)
    2. trailing 'Z': UTC wall clock
    3. TZID parameter: wall clock in the resolved zone
    4. floating value: wall clock in the calendar zone

    Args:
        field: Parsed DTSTART/DTEND field
        calendar_tz: Destination calendar's zone
        resolved: Pre-resolved TZID, resolved from the field if omitted

    Returns:
        Timezone-aware datetime

    Raises:
        DateParseError: If the value is malformed or its zone is unknown
    """
    value = field.value.strip()

    if _DATE_ONLY_PATTERN.match(value):
        try:
            day = datetime.strptime(value, '%Y%m%d')
        except ValueError as e:
            raise DateParseError(f"Invalid date value '{value}'") from e
        return day.replace(tzinfo=calendar_tz)

    is_utc = field.is_utc
    if is_utc:
        value = value[:-1]

    if not _DATE_TIME_PATTERN.match(value):
        raise DateParseError(f"Malformed date-time value '{field.value}'")

    try:
        wall_clock = datetime.strptime(value, '%Y%m%dT%H%M%S')
    except ValueError as e:
        raise DateParseError(f"Invalid date-time value '{field.value}'") from e

    if is_utc:
        return wall_clock.replace(tzinfo=timezone.utc)

    if field.tzid:
        if resolved is None:
            resolved = resolve_timezone(field.tzid)
        try:
            zone = get_zone(resolved.canonical_id)
        except UnknownTimezoneError as e:
            raise DateParseError(str(e)) from e
        return wall_clock.replace(tzinfo=zone)

    return wall_clock.replace(tzinfo=calendar_tz)


def start_of_day(now: datetime, calendar_tz: tzinfo) -> datetime:
    """
    Return midnight of the current civil day in the calendar zone.

    Args:
        now: Current instant (aware)
        calendar_tz: Destination calendar's zone

    Returns:
        Aware datetime at 00:00 local time
    """
    local_now = now.astimezone(calendar_tz)
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0)
