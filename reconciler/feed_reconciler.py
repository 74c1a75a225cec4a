"""Reconciliation of feed events against the destination calendar."""
import logging
import re
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

import requests

from processor.datetime_parser import start_of_day
from processor.event_processor import EventProcessor
from processor.models import (
    DestinationEvent,
    EventCandidate,
    FeedConfig,
    PurgeResult,
    SyncResult,
)

logger = logging.getLogger(__name__)

PROVENANCE_MARKER = 'ICS-SYNC FEED:'
KEY_MARKER = 'KEY:'
PLACEHOLDER_TITLE = '(No title)'

FEED_PROPERTY = 'icsSyncFeed'
KEY_PROPERTY = 'icsSyncKey'

_KEY_DATE_PATTERN = re.compile(r'^(\d{8})')


def build_description(feed: FeedConfig, candidate: EventCandidate) -> str:
    """
    Build the destination description with embedded provenance.

    Args:
        feed: Source feed
        candidate: Event being created

    Returns:
        Description text: source description, then one metadata line each
        for feed, key, UID, zone and the raw date lines
    """
    if candidate.start_timezone is None:
        zone = 'UTC' if candidate.raw_start.upper().endswith('Z') else 'calendar zone'
    else:
        zone = (
            f"{candidate.start_timezone.source_id} -> "
            f"{candidate.start_timezone.canonical_id}"
        )

    lines = []
    if candidate.description:
        lines.extend([candidate.description, '', '---'])

    lines.extend([
        f"{PROVENANCE_MARKER}{feed.name}",
        f"{KEY_MARKER}{candidate.key}",
        f"UID:{candidate.uid}",
        f"TZ:{zone}",
    ])
    lines.extend(f"RAW:{line}" for line in candidate.raw_lines)
    return '\n'.join(lines)


def embedded_identity(event: DestinationEvent) -> Optional[Tuple[str, str]]:
    """
    Read the feed name and event key a synced event was tagged with.

    Private extended properties are preferred; the description metadata
    lines are the fallback.

    Args:
        event: Destination event

    Returns:
        Tuple of (feed_name, key), or None for events not created by sync
    """
    props = event.private_properties or {}
    if props.get(FEED_PROPERTY) and props.get(KEY_PROPERTY):
        return props[FEED_PROPERTY], props[KEY_PROPERTY]

    # Only a KEY line after the last marker line counts.
    feed_name = None
    key = None
    for line in (event.description or '').splitlines():
        if line.startswith(PROVENANCE_MARKER):
            feed_name = line[len(PROVENANCE_MARKER):]
            key = None
        elif feed_name is not None and key is None and line.startswith(KEY_MARKER):
            key = line[len(KEY_MARKER):]

    if feed_name is None or key is None:
        return None
    return feed_name, key


def key_start_date(key: str) -> Optional[date]:
    """
    Read the start date embedded in an event key.

    Args:
        key: Key of the form 'uid|SINGLE|raw_start'

    Returns:
        Date from the raw start's YYYYMMDD prefix, or None if absent
    """
    raw_start = key.rsplit('|', 1)[-1]
    match = _KEY_DATE_PATTERN.match(raw_start)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), '%Y%m%d').date()
    except ValueError:
        return None


class FeedReconciler:
    """Syncs feeds into the destination calendar.

    Destination events are only ever created or deleted, never updated:
    an event whose start time moved gets a new key, so the old event is
    deleted and a new one created.
    """

    def __init__(
        self,
        fetcher,
        calendar_store,
        state_store,
        processor: EventProcessor,
        scan_window_days: int = 730,
        purge_window_days: int = 1825
    ):
        """
        Initialize the reconciler.

        Args:
            fetcher: Object with fetch(url) -> (status_code, body)
            calendar_store: Object with create_event, list_events, delete_event
            state_store: Object with load, store, clear
            processor: EventProcessor for the destination calendar zone
            scan_window_days: Minimum days ahead scanned when deleting removed events
            purge_window_days: Days before and after today scanned by purge
        """
        self.fetcher = fetcher
        self.calendar_store = calendar_store
        self.state_store = state_store
        self.processor = processor
        self.scan_window_days = scan_window_days
        self.purge_window_days = purge_window_days

    def sync_feeds(self, feeds: List[FeedConfig]) -> List[SyncResult]:
        """
        Sync every feed in turn. A failing feed does not stop the others.

        Args:
            feeds: Feed configurations

        Returns:
            One SyncResult per feed
        """
        return [self.sync_feed(feed) for feed in feeds]

    def sync_feed(self, feed: FeedConfig) -> SyncResult:
        """
        Run one reconciliation pass for a feed.

        Args:
            feed: Feed configuration

        Returns:
            SyncResult with counts of created, retained and deleted events
        """
        result = SyncResult(feed_name=feed.name)
        logger.info(f"Syncing feed '{feed.name}'")

        body = self._fetch(feed, result)
        if body is None:
            return result

        try:
            candidates = self.processor.process_feed(body)
            previous = self.state_store.load(feed.name)
            current_keys = {candidate.key for candidate in candidates}
            new_state = set(current_keys)

            for candidate in candidates:
                if candidate.key in previous:
                    result.retained += 1
                    continue
                if not self._create(feed, candidate, result):
                    new_state.discard(candidate.key)

            removed = previous - current_keys
            if removed:
                new_state |= self._delete_removed(feed, removed, result)

            self.state_store.store(feed.name, new_state)

        except Exception as e:
            error_msg = f"Error syncing feed '{feed.name}': {e}"
            logger.error(error_msg, exc_info=True)
            result.errors.append(error_msg)
            return result

        logger.info(
            f"Feed '{feed.name}' synced: {result.created} created, "
            f"{result.retained} retained, {result.deleted} deleted, "
            f"{len(result.errors)} errors"
        )
        return result

    def _fetch(self, feed: FeedConfig, result: SyncResult) -> Optional[str]:
        try:
            status_code, body = self.fetcher.fetch(feed.url)
        except requests.RequestException as e:
            error_msg = f"Failed to fetch feed '{feed.name}': {e}"
        else:
            if 200 <= status_code < 300:
                return body
            error_msg = f"Failed to fetch feed '{feed.name}': HTTP {status_code}"

        logger.error(error_msg)
        result.fetch_failed = True
        result.errors.append(error_msg)
        return None

    def _create(
        self,
        feed: FeedConfig,
        candidate: EventCandidate,
        result: SyncResult
    ) -> bool:
        title = f"{feed.prefix}{candidate.title or PLACEHOLDER_TITLE}"

        try:
            self.calendar_store.create_event(
                title=title,
                start=candidate.start,
                end=candidate.end,
                color=feed.color,
                description=build_description(feed, candidate),
                all_day=candidate.all_day,
                location=candidate.location,
                private_properties={
                    FEED_PROPERTY: feed.name,
                    KEY_PROPERTY: candidate.key,
                }
            )
        except Exception as e:
            error_msg = f"Failed to create event '{candidate.key}': {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)
            return False

        result.created += 1
        return True

    def _delete_removed(
        self,
        feed: FeedConfig,
        removed: Set[str],
        result: SyncResult
    ) -> Set[str]:
        """
        Delete destination events whose keys left the feed.

        Args:
            feed: Feed configuration
            removed: Keys present last pass but not this pass
            result: Result to update

        Returns:
            Keys whose deletion failed and must be retried next pass
        """
        window_start, window_end = self._removal_window(removed)

        try:
            events = self.calendar_store.list_events(window_start, window_end)
        except Exception as e:
            error_msg = f"Failed to list destination events for '{feed.name}': {e}"
            logger.error(error_msg)
            result.errors.append(error_msg)
            return set(removed)

        by_key: Dict[str, List[str]] = {}
        for event in events:
            identity = embedded_identity(event)
            if identity and identity[0] == feed.name and identity[1] in removed:
                by_key.setdefault(identity[1], []).append(event.event_id)

        failed = set()
        for key in sorted(removed):
            event_ids = by_key.get(key)
            if not event_ids:
                logger.warning(f"No destination event found for removed key '{key}'")
                continue

            for event_id in event_ids:
                try:
                    self.calendar_store.delete_event(event_id)
                    result.deleted += 1
                except Exception as e:
                    error_msg = f"Failed to delete event '{key}': {e}"
                    logger.error(error_msg)
                    result.errors.append(error_msg)
                    failed.add(key)

        return failed

    def _removal_window(self, removed: Set[str]) -> Tuple[datetime, datetime]:
        """
        Compute the destination window covering every removed key.

        The window spans today to scan_window_days ahead, widened to the
        start dates embedded in the keys (padded by a day for zone offsets),
        so events that became past or lie beyond the scan window are found.

        Args:
            removed: Keys present last pass but not this pass

        Returns:
            Tuple of (window_start, window_end)
        """
        tz = self.processor.calendar_tz
        window_start = start_of_day(self.processor.now(), tz)
        window_end = window_start + timedelta(days=self.scan_window_days)

        for key in removed:
            day = key_start_date(key)
            if day is None:
                continue
            local = datetime(day.year, day.month, day.day, tzinfo=tz)
            window_start = min(window_start, local - timedelta(days=1))
            window_end = max(window_end, local + timedelta(days=2))

        return window_start, window_end

    def purge_feeds(self, feeds: List[FeedConfig]) -> PurgeResult:
        """
        Delete every synced event from the destination and reset state.

        An event matches if it carries any provenance marker, legacy
        UID/DTSTART/DTEND metadata, or a title starting with a configured
        prefix.

        Args:
            feeds: All configured feeds

        Returns:
            PurgeResult with scanned and deleted counts
        """
        result = PurgeResult()
        today = start_of_day(self.processor.now(), self.processor.calendar_tz)
        window = timedelta(days=self.purge_window_days)
        prefixes = tuple(feed.prefix for feed in feeds if feed.prefix)

        logger.info(f"Purging synced events for {len(feeds)} feeds")

        try:
            events = self.calendar_store.list_events(today - window, today + window)
        except Exception as e:
            error_msg = f"Failed to list destination events for purge: {e}"
            logger.error(error_msg, exc_info=True)
            result.errors.append(error_msg)
            return result

        result.scanned = len(events)
        for event in events:
            if not self._is_purgeable(event, prefixes):
                continue
            try:
                self.calendar_store.delete_event(event.event_id)
                result.deleted += 1
            except Exception as e:
                error_msg = f"Failed to delete event {event.event_id}: {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)

        for feed in feeds:
            try:
                self.state_store.clear(feed.name)
                result.feeds_cleared += 1
            except Exception as e:
                error_msg = f"Failed to clear state for feed '{feed.name}': {e}"
                logger.error(error_msg)
                result.errors.append(error_msg)

        logger.info(
            f"Purge complete: {result.deleted} of {result.scanned} events deleted, "
            f"{result.feeds_cleared} feeds cleared"
        )
        return result

    def _is_purgeable(self, event: DestinationEvent, prefixes: Tuple[str, ...]) -> bool:
        if embedded_identity(event) is not None:
            return True

        description = event.description or ''
        if PROVENANCE_MARKER in description:
            return True
        if 'UID:' in description and 'DTSTART' in description and 'DTEND' in description:
            return True

        return bool(prefixes) and (event.title or '').startswith(prefixes)
