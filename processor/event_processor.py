"""Event processor for classifying feed events and computing sync keys."""
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from processor.datetime_parser import DateParseError, parse_event_datetime, start_of_day
from processor.ics_fields import extract_field, get_text, split_event_records
from processor.models import EventCandidate, ResolvedTimezone
from processor.timezones import resolve_timezone

logger = logging.getLogger(__name__)

SINGLE_MARKER = 'SINGLE'


class EventProcessor:
    """Processor turning raw feed text into single future event candidates."""

    def __init__(self, calendar_tz: tzinfo, now: Optional[datetime] = None):
        """
        Initialize the processor.

        Args:
            calendar_tz: Destination calendar's zone
            now: Fixed current instant, defaults to the wall clock
        """
        self.calendar_tz = calendar_tz
        self._now = now

    def now(self) -> datetime:
        return self._now or datetime.now(timezone.utc)

    def process_feed(self, ics_text: str) -> List[EventCandidate]:
        """
        Parse a feed and keep single events starting today or later.

        Args:
            ics_text: Raw iCalendar text

        Returns:
            List of EventCandidate objects with keys assigned, one per key
        """
        records = split_event_records(ics_text)
        cutoff = start_of_day(self.now(), self.calendar_tz)
        candidates = []
        seen_keys = set()

        for record in records:
            try:
                candidate = self.parse_record(record)
            except Exception as e:
                logger.warning(f"Failed to process event record: {e}")
                continue

            if candidate is None:
                continue

            if not candidate.is_single:
                logger.debug(
                    f"Skipping recurring or exception event '{candidate.uid}'"
                )
                continue

            if candidate.start < cutoff:
                logger.debug(f"Skipping past event '{candidate.uid}'")
                continue

            candidate.key = self.generate_event_key(
                uid=candidate.uid,
                raw_start=candidate.raw_start
            )
            if candidate.key in seen_keys:
                logger.debug(f"Skipping duplicate event key '{candidate.key}'")
                continue

            seen_keys.add(candidate.key)
            candidates.append(candidate)

        logger.info(
            f"Kept {len(candidates)} single future events out of "
            f"{len(records)} records"
        )
        return candidates

    def parse_record(self, record: str) -> Optional[EventCandidate]:
        """
        Parse one VEVENT record.

        Args:
            record: Raw VEVENT record text

        Returns:
            EventCandidate or None if a required field is missing or a
            date cannot be parsed
        """
        uid_field = extract_field(record, 'UID')
        start_field = extract_field(record, 'DTSTART')

        if uid_field is None or not uid_field.value.strip():
            logger.debug("Event record missing required field: UID")
            return None

        uid = uid_field.value.strip()
        if start_field is None:
            logger.debug(f"Event '{uid}' missing required field: DTSTART")
            return None

        end_field = extract_field(record, 'DTEND')
        start_tz = self._resolve_field_zone(start_field)

        try:
            start = parse_event_datetime(start_field, self.calendar_tz, start_tz)
            if end_field is not None:
                end = parse_event_datetime(
                    end_field,
                    self.calendar_tz,
                    self._resolve_field_zone(end_field)
                )
            elif start_field.is_date_only:
                end = start + timedelta(days=1)
            else:
                end = start
        except DateParseError as e:
            logger.warning(f"Invalid date for event '{uid}': {e}")
            return None

        raw_lines = [start_field.raw_line]
        if end_field is not None:
            raw_lines.append(end_field.raw_line)

        return EventCandidate(
            uid=uid,
            start=start,
            end=end,
            title=get_text(record, 'SUMMARY') or '',
            raw_start=start_field.value.strip(),
            location=get_text(record, 'LOCATION'),
            description=get_text(record, 'DESCRIPTION'),
            has_recurrence_rule=(
                extract_field(record, 'RRULE') is not None or
                extract_field(record, 'RDATE') is not None
            ),
            is_recurrence_exception=extract_field(record, 'RECURRENCE-ID') is not None,
            all_day=start_field.is_date_only,
            start_timezone=start_tz,
            raw_lines=raw_lines
        )

    def _resolve_field_zone(self, field) -> Optional[ResolvedTimezone]:
        if field.is_utc or field.is_date_only or not field.tzid:
            return None
        return resolve_timezone(field.tzid)

    def generate_event_key(self, uid: str, raw_start: str) -> str:
        """
        Generate the sync key for a single event.

        The raw DTSTART text is used instead of the resolved instant, so a
        moved event gets a new key.

        Args:
            uid: Source UID
            raw_start: DTSTART value exactly as it appeared in the feed

        Returns:
            Key of the form 'uid|SINGLE|raw_start'
        """
        return f"{uid}|{SINGLE_MARKER}|{raw_start}"
