"""DynamoDB manager for per-feed sync state."""
import json
import logging
import time
from typing import Iterable, Set

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class CorruptStateError(ValueError):
    """Raised when a persisted key set cannot be decoded."""


class DynamoDBManager:
    """Manager for the per-feed sets of synced event keys.

    Each feed is one item keyed by 'feed_name' whose 'event_keys'
    attribute holds a JSON array of event keys.
    """

    def __init__(self, table_name: str):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the DynamoDB table
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBManager for table: {table_name}")

    def load(self, feed_name: str) -> Set[str]:
        """
        Load the keys synced for a feed.

        Args:
            feed_name: Feed name

        Returns:
            Set of event keys, empty if nothing was persisted

        Raises:
            CorruptStateError: If the persisted keys are not a JSON array
        """
        try:
            response = self.table.get_item(Key={'feed_name': feed_name})
        except ClientError as e:
            logger.error(f"Error reading sync state for feed '{feed_name}': {e}")
            raise

        item = response.get('Item')
        if not item:
            logger.info(f"No sync state for feed '{feed_name}'")
            return set()

        try:
            keys = json.loads(item.get('event_keys', '[]'))
            if not isinstance(keys, list):
                raise ValueError(f"expected a JSON array, got {type(keys).__name__}")
        except (TypeError, ValueError) as e:
            logger.error(f"Corrupt sync state for feed '{feed_name}': {e}")
            raise CorruptStateError(
                f"Corrupt sync state for feed '{feed_name}': {e}"
            ) from e

        logger.info(f"Loaded {len(keys)} keys for feed '{feed_name}'")
        return set(keys)

    def store(self, feed_name: str, event_keys: Iterable[str]) -> None:
        """
        Replace the keys synced for a feed.

        Args:
            feed_name: Feed name
            event_keys: Complete set of keys seen in this pass
        """
        keys = sorted(set(event_keys))
        item = {
            'feed_name': feed_name,
            'event_keys': json.dumps(keys),
            'key_count': len(keys),
            'updated_at': int(time.time())
        }

        try:
            self.table.put_item(Item=item)
        except ClientError as e:
            logger.error(f"Error writing sync state for feed '{feed_name}': {e}")
            raise

        logger.info(f"Stored {len(keys)} keys for feed '{feed_name}'")

    def clear(self, feed_name: str) -> None:
        """
        Delete the sync state of a feed.

        Args:
            feed_name: Feed name
        """
        try:
            self.table.delete_item(Key={'feed_name': feed_name})
        except ClientError as e:
            logger.error(f"Error clearing sync state for feed '{feed_name}': {e}")
            raise

        logger.info(f"Cleared sync state for feed '{feed_name}'")
