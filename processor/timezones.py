"""Resolution of vendor time zone identifiers to IANA zones."""
import logging
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from processor.models import ResolvedTimezone

logger = logging.getLogger(__name__)


class UnknownTimezoneError(ValueError):
    """Raised when a canonical zone identifier is not in the tz database."""


# Windows zone names used by Outlook/Exchange feeds, plus legacy aliases.
# Several names fold to one zone (standard and daylight variants).
WINDOWS_TIMEZONES: Mapping[str, str] = MappingProxyType({
    # North America
    'Pacific Standard Time': 'America/Los_Angeles',
    'Pacific Daylight Time': 'America/Los_Angeles',
    'Mountain Standard Time': 'America/Denver',
    'Mountain Daylight Time': 'America/Denver',
    'US Mountain Standard Time': 'America/Phoenix',
    'Arizona Standard Time': 'America/Phoenix',
    'Central Standard Time': 'America/Chicago',
    'Central Daylight Time': 'America/Chicago',
    'Central America Standard Time': 'America/Guatemala',
    'Canada Central Standard Time': 'America/Regina',
    'Saskatchewan Standard Time': 'America/Regina',
    'Eastern Standard Time': 'America/New_York',
    'Eastern Daylight Time': 'America/New_York',
    'US Eastern Standard Time': 'America/Indiana/Indianapolis',
    'Atlantic Standard Time': 'America/Halifax',
    'Newfoundland Standard Time': 'America/St_Johns',
    'Alaskan Standard Time': 'America/Anchorage',
    'Alaskan Daylight Time': 'America/Anchorage',
    'Hawaiian Standard Time': 'Pacific/Honolulu',
    'Mexico Standard Time': 'America/Mexico_City',
    'Central Standard Time (Mexico)': 'America/Mexico_City',
    # South America
    'Pacific SA Standard Time': 'America/Santiago',
    'SA Pacific Standard Time': 'America/Bogota',
    'SA Western Standard Time': 'America/La_Paz',
    'SA Eastern Standard Time': 'America/Cayenne',
    'Argentina Standard Time': 'America/Argentina/Buenos_Aires',
    'E. South America Standard Time': 'America/Sao_Paulo',
    'Greenland Standard Time': 'America/Nuuk',
    # Europe
    'GMT Standard Time': 'Europe/London',
    'GMT Daylight Time': 'Europe/London',
    'Greenwich Standard Time': 'Atlantic/Reykjavik',
    'W. Europe Standard Time': 'Europe/Berlin',
    'W. Europe Daylight Time': 'Europe/Berlin',
    'Central Europe Standard Time': 'Europe/Budapest',
    'Central European Standard Time': 'Europe/Warsaw',
    'Romance Standard Time': 'Europe/Paris',
    'Romance Daylight Time': 'Europe/Paris',
    'E. Europe Standard Time': 'Europe/Chisinau',
    'FLE Standard Time': 'Europe/Kiev',
    'GTB Standard Time': 'Europe/Bucharest',
    'Russian Standard Time': 'Europe/Moscow',
    'Turkey Standard Time': 'Europe/Istanbul',
    # Africa and Middle East
    'W. Central Africa Standard Time': 'Africa/Lagos',
    'South Africa Standard Time': 'Africa/Johannesburg',
    'Egypt Standard Time': 'Africa/Cairo',
    'Morocco Standard Time': 'Africa/Casablanca',
    'Namibia Standard Time': 'Africa/Windhoek',
    'Israel Standard Time': 'Asia/Jerusalem',
    'Jordan Standard Time': 'Asia/Amman',
    'Arabic Standard Time': 'Asia/Baghdad',
    'Arab Standard Time': 'Asia/Riyadh',
    'Arabian Standard Time': 'Asia/Dubai',
    'Iran Standard Time': 'Asia/Tehran',
    # Asia
    'Afghanistan Standard Time': 'Asia/Kabul',
    'Pakistan Standard Time': 'Asia/Karachi',
    'West Asia Standard Time': 'Asia/Tashkent',
    'India Standard Time': 'Asia/Kolkata',
    'Sri Lanka Standard Time': 'Asia/Colombo',
    'Nepal Standard Time': 'Asia/Kathmandu',
    'Central Asia Standard Time': 'Asia/Almaty',
    'Myanmar Standard Time': 'Asia/Yangon',
    'SE Asia Standard Time': 'Asia/Bangkok',
    'N. Central Asia Standard Time': 'Asia/Novosibirsk',
    'China Standard Time': 'Asia/Shanghai',
    'Singapore Standard Time': 'Asia/Singapore',
    'Taipei Standard Time': 'Asia/Taipei',
    'W. Australia Standard Time': 'Australia/Perth',
    'Korea Standard Time': 'Asia/Seoul',
    'Tokyo Standard Time': 'Asia/Tokyo',
    # Oceania
    'Cen. Australia Standard Time': 'Australia/Adelaide',
    'AUS Central Standard Time': 'Australia/Darwin',
    'E. Australia Standard Time': 'Australia/Brisbane',
    'AUS Eastern Standard Time': 'Australia/Sydney',
    'AUS Eastern Daylight Time': 'Australia/Sydney',
    'Tasmania Standard Time': 'Australia/Hobart',
    'West Pacific Standard Time': 'Pacific/Port_Moresby',
    'New Zealand Standard Time': 'Pacific/Auckland',
    'New Zealand Daylight Time': 'Pacific/Auckland',
    'Fiji Standard Time': 'Pacific/Fiji',
    'Tonga Standard Time': 'Pacific/Tongatapu',
    # UTC and legacy aliases
    'UTC': 'UTC',
    'Coordinated Universal Time': 'UTC',
    'GMT': 'UTC',
    'Etc/GMT': 'UTC',
    'Z': 'UTC',
    'US/Pacific': 'America/Los_Angeles',
    'US/Mountain': 'America/Denver',
    'US/Central': 'America/Chicago',
    'US/Eastern': 'America/New_York',
    'US/Alaska': 'America/Anchorage',
    'US/Hawaii': 'Pacific/Honolulu',
    'US/Arizona': 'America/Phoenix',
})


def resolve_timezone(raw_zone_id: str) -> ResolvedTimezone:
    """
    Map a source zone identifier to a canonical IANA identifier.

    Identifiers missing from the table are passed through unchanged and
    assumed to already be canonical.

    Args:
        raw_zone_id: Zone identifier as found in a TZID parameter,
            optionally quoted

    Returns:
        ResolvedTimezone pairing the source and canonical identifiers
    """
    source_id = raw_zone_id.strip().strip('"').strip()
    canonical_id = WINDOWS_TIMEZONES.get(source_id)

    if canonical_id is None:
        logger.info(f"No zone mapping for '{source_id}', using it as-is")
        canonical_id = source_id

    return ResolvedTimezone(source_id=source_id, canonical_id=canonical_id)


@lru_cache(maxsize=None)
def get_zone(canonical_id: str) -> ZoneInfo:
    """
    Load a zone from the tz database.

    Args:
        canonical_id: IANA zone identifier

    Returns:
        ZoneInfo instance

    Raises:
        UnknownTimezoneError: If the zone does not exist
    """
    try:
        return ZoneInfo(canonical_id)
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise UnknownTimezoneError(f"Unknown time zone '{canonical_id}'") from e
