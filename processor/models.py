"""Data models for feed parsing and reconciliation."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FeedConfig:
    """Source feed definition."""
    name: str
    url: str
    color: str = ''
    prefix: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FeedConfig':
        """
        Build a FeedConfig from a configuration object.

        Args:
            data: Dict with 'name' and 'url', optional 'color' and 'prefix'

        Returns:
            FeedConfig instance

        Raises:
            ValueError: If name or url is missing
        """
        name = str(data.get('name', '')).strip()
        url = str(data.get('url', '')).strip()
        if not name or not url:
            raise ValueError(f"Feed config requires 'name' and 'url': {data}")

        return cls(
            name=name,
            url=url,
            color=str(data.get('color') or ''),
            prefix=str(data.get('prefix') or '')
        )


@dataclass
class ParsedField:
    """Raw value of one content line plus its parameters."""
    name: str
    value: str
    params: Dict[str, str] = field(default_factory=dict)
    raw_line: str = ''

    @property
    def tzid(self) -> Optional[str]:
        tzid = self.params.get('TZID')
        if tzid is None:
            return None
        return tzid.strip().strip('"') or None

    @property
    def is_utc(self) -> bool:
        return self.value.strip().upper().endswith('Z')

    @property
    def is_date_only(self) -> bool:
        value = self.value.strip()
        return len(value) == 8 and value.isdigit()


@dataclass(frozen=True)
class ResolvedTimezone:
    """Source zone identifier and the canonical zone it maps to."""
    source_id: str
    canonical_id: str

    @property
    def was_mapped(self) -> bool:
        return self.source_id != self.canonical_id


@dataclass
class EventCandidate:
    """Parsed form of one source event."""
    uid: str
    start: datetime
    end: datetime
    title: str
    raw_start: str
    location: Optional[str] = None
    description: Optional[str] = None
    has_recurrence_rule: bool = False
    is_recurrence_exception: bool = False
    all_day: bool = False
    start_timezone: Optional[ResolvedTimezone] = None
    raw_lines: List[str] = field(default_factory=list)
    key: Optional[str] = None

    @property
    def is_single(self) -> bool:
        return not self.has_recurrence_rule and not self.is_recurrence_exception


@dataclass
class DestinationEvent:
    """Event as read back from the destination calendar."""
    event_id: str
    title: str
    description: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    private_properties: Dict[str, str] = field(default_factory=dict)


@dataclass
class SyncResult:
    """Result of syncing one feed."""
    feed_name: str
    created: int = 0
    retained: int = 0
    deleted: int = 0
    fetch_failed: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.fetch_failed and not self.errors


@dataclass
class PurgeResult:
    """Result of the bulk purge operation."""
    scanned: int = 0
    deleted: int = 0
    feeds_cleared: int = 0
    errors: List[str] = field(default_factory=list)
