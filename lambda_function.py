"""AWS Lambda handler for ICS feed calendar sync."""
import json
import logging
import os
import time
from typing import Any, Dict, List

from fetcher.ics_feed_fetcher import IcsFeedFetcher
from processor.event_processor import EventProcessor
from processor.models import FeedConfig
from processor.timezones import get_zone
from reconciler.feed_reconciler import FeedReconciler
from storage.dynamodb_manager import DynamoDBManager
from storage.google_calendar import GoogleCalendarStore


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def load_feeds(raw_feeds: str) -> List[FeedConfig]:
    """
    Parse the FEEDS environment variable.

    Args:
        raw_feeds: JSON array of feed objects

    Returns:
        List of FeedConfig objects

    Raises:
        ValueError: If the JSON is invalid, not a list, or names repeat
    """
    data = json.loads(raw_feeds or '[]')
    if not isinstance(data, list):
        raise ValueError('FEEDS must be a JSON array')

    feeds = [FeedConfig.from_dict(item) for item in data]

    names = [feed.name for feed in feeds]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValueError(f"Duplicate feed names: {', '.join(duplicates)}")

    return feeds


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for ICS feed sync.

    An event payload of {"action": "purge"} runs the bulk purge instead
    of a regular sync.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode and summary statistics
    """
    # Read configuration from environment variables
    table_name = os.environ.get('TABLE_NAME', 'ics-feed-sync-state')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    calendar_id = os.environ.get('CALENDAR_ID', 'primary')
    calendar_timezone = os.environ.get('CALENDAR_TIMEZONE', 'UTC')
    scan_window_days = int(os.environ.get('SCAN_WINDOW_DAYS', '730'))
    purge_window_days = int(os.environ.get('PURGE_WINDOW_DAYS', '1825'))
    action = (event or {}).get('action', 'sync')

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        f"Lambda execution started (action: {action})",
        extra={
            'table_name': table_name,
            'calendar_id': calendar_id,
            'timeout_seconds': timeout_seconds
        }
    )

    try:
        feeds = load_feeds(os.environ.get('FEEDS', '[]'))
        service_account_info = json.loads(
            os.environ.get('GOOGLE_SERVICE_ACCOUNT_JSON', '{}')
        )

        # Instantiate components
        fetcher = IcsFeedFetcher(timeout=timeout_seconds)
        calendar_store = GoogleCalendarStore.from_service_account_info(
            calendar_id,
            service_account_info
        )
        state_store = DynamoDBManager(table_name=table_name)
        processor = EventProcessor(calendar_tz=get_zone(calendar_timezone))
        reconciler = FeedReconciler(
            fetcher=fetcher,
            calendar_store=calendar_store,
            state_store=state_store,
            processor=processor,
            scan_window_days=scan_window_days,
            purge_window_days=purge_window_days
        )
    except Exception as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda setup failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _response(500, {
            'message': 'Sync setup failed',
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        })

    if action == 'purge':
        logger.info(f"Purging synced events for {len(feeds)} feeds")
        purge_result = reconciler.purge_feeds(feeds)
        duration = time.time() - start_time

        logger.info(
            "Lambda purge completed",
            extra={
                'duration_seconds': round(duration, 2),
                'events_deleted': purge_result.deleted,
                'errors': purge_result.errors
            }
        )
        return _response(200 if not purge_result.errors else 207, {
            'message': 'Purge completed' if not purge_result.errors
            else 'Purge completed with errors',
            'statistics': {
                'events_scanned': purge_result.scanned,
                'events_deleted': purge_result.deleted,
                'feeds_cleared': purge_result.feeds_cleared,
                'duration_seconds': round(duration, 2)
            },
            'errors': purge_result.errors
        })

    logger.info(f"Synchronizing {len(feeds)} feeds")
    results = reconciler.sync_feeds(feeds)
    duration = time.time() - start_time

    failed_feeds = [result.feed_name for result in results if not result.success]
    errors = [error for result in results for error in result.errors]

    logger.info(
        "Lambda execution completed" if not failed_feeds
        else "Lambda execution completed with errors",
        extra={
            'duration_seconds': round(duration, 2),
            'events_created': sum(result.created for result in results),
            'events_deleted': sum(result.deleted for result in results),
            'failed_feeds': failed_feeds
        }
    )

    return _response(200 if not failed_feeds else 207, {
        'message': 'Sync completed successfully' if not failed_feeds
        else 'Sync completed with errors',
        'statistics': {
            'feeds_synced': len(results) - len(failed_feeds),
            'feeds_failed': len(failed_feeds),
            'events_created': sum(result.created for result in results),
            'events_retained': sum(result.retained for result in results),
            'events_deleted': sum(result.deleted for result in results),
            'duration_seconds': round(duration, 2)
        },
        'feeds': [
            {
                'name': result.feed_name,
                'created': result.created,
                'retained': result.retained,
                'deleted': result.deleted,
                'fetch_failed': result.fetch_failed
            }
            for result in results
        ],
        'errors': errors
    })
