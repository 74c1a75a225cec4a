"""Field extraction from raw iCalendar event records."""
import logging
import re
from typing import Dict, List, Optional, Tuple

from processor.models import ParsedField

logger = logging.getLogger(__name__)

BEGIN_MARKER = 'BEGIN:VEVENT'
END_MARKER = 'END:VEVENT'

_NAME_PATTERN = re.compile(r'^([A-Za-z0-9-]+)([;:])')
_ESCAPE_PATTERN = re.compile(r'\\([\\,;nN])')


def unfold_lines(text: str) -> List[str]:
    """
    Split text into logical content lines, joining folded continuations.

    A physical line starting with a space or tab continues the previous
    line. The single leading whitespace character is dropped and the rest
    is appended with no separator.

    Args:
        text: Raw iCalendar text (CRLF, CR or LF line endings)

    Returns:
        List of unfolded content lines
    """
    normalized = text.replace('\r\n', '\n').replace('\r', '\n')
    lines: List[str] = []

    for physical in normalized.split('\n'):
        if physical[:1] in (' ', '\t') and lines:
            lines[-1] += physical[1:]
        else:
            lines.append(physical)

    return lines


def split_event_records(text: str) -> List[str]:
    """
    Split a calendar into its VEVENT records.

    Args:
        text: Raw iCalendar text

    Returns:
        List of records, each including its BEGIN/END markers
    """
    records = []
    current: Optional[List[str]] = None

    for line in unfold_lines(text):
        marker = line.strip().upper()
        if marker == BEGIN_MARKER:
            current = [line]
        elif current is not None:
            current.append(line)
            if marker == END_MARKER:
                records.append('\n'.join(current))
                current = None

    if current is not None:
        logger.warning("Discarding VEVENT record without END:VEVENT marker")

    return records


def _parse_params(block: str) -> Tuple[Dict[str, str], int]:
    """
    Parse a ';'-introduced parameter block up to the value separator.

    Args:
        block: Text starting right after the field name with ';'

    Returns:
        Tuple of (parameters, index of the ':' value separator), or
        index -1 if no separator exists
    """
    params: Dict[str, str] = {}
    in_quotes = False
    token_start = 1

    for index, char in enumerate(block):
        if char == '"':
            in_quotes = not in_quotes
        elif in_quotes or index == 0:
            continue
        elif char in (';', ':'):
            token = block[token_start:index]
            if '=' in token:
                name, value = token.split('=', 1)
                params[name.strip().upper()] = value
            elif token:
                params[token.strip().upper()] = ''
            if char == ':':
                return params, index
            token_start = index + 1

    return params, -1


def _parse_line(line: str) -> Optional[ParsedField]:
    match = _NAME_PATTERN.match(line)
    if not match:
        return None

    name = match.group(1).upper()
    rest = line[match.end(1):]

    if rest.startswith(':'):
        return ParsedField(name=name, value=rest[1:], raw_line=line)

    params, separator = _parse_params(rest)
    if separator < 0:
        return None

    return ParsedField(
        name=name,
        value=rest[separator + 1:],
        params=params,
        raw_line=line
    )


def extract_field(record: str, name: str) -> Optional[ParsedField]:
    """
    Find the first occurrence of a field in an event record.

    Args:
        record: Raw VEVENT record text
        name: Field name, matched case-insensitively (e.g. 'DTSTART')

    Returns:
        ParsedField for the first matching line, or None if absent
    """
    wanted = name.upper()

    for line in unfold_lines(record):
        if not line.upper().startswith(wanted):
            continue
        parsed = _parse_line(line)
        if parsed and parsed.name == wanted:
            return parsed

    return None


def unescape_text(value: str) -> str:
    """
    Decode iCalendar TEXT escapes in a single pass.

    Args:
        value: Escaped value

    Returns:
        Decoded value
    """
    def _replace(match: 're.Match[str]') -> str:
        char = match.group(1)
        if char in ('n', 'N'):
            return '\n'
        return char

    return _ESCAPE_PATTERN.sub(_replace, value)


def get_text(record: str, name: str) -> Optional[str]:
    """
    Extract a TEXT field (SUMMARY, DESCRIPTION, LOCATION) and decode it.

    Args:
        record: Raw VEVENT record text
        name: Field name

    Returns:
        Decoded text or None if the field is absent
    """
    parsed = extract_field(record, name)
    if parsed is None:
        return None
    return unescape_text(parsed.value)
