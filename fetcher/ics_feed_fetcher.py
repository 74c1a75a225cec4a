"""HTTP fetcher for iCalendar feeds."""
import logging
import time
from typing import Tuple

import requests

logger = logging.getLogger(__name__)


class IcsFeedFetcher:
    """Fetcher for remote iCalendar feeds."""

    USER_AGENT = 'ics-feed-sync/1.0'

    def __init__(self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per feed before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay

    def fetch(self, url: str) -> Tuple[int, str]:
        """
        Fetch a feed with retry logic.

        Transport errors and 5xx responses are retried with exponential
        backoff. Other responses are returned as-is.

        Args:
            url: Feed URL

        Returns:
            Tuple of (status_code, body_text) from the last attempt

        Raises:
            requests.RequestException: If every attempt failed at transport level
        """
        status_code, body = 0, ''

        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1

            try:
                logger.info(
                    f"Fetching feed (attempt {attempt + 1}/{self.max_retries})"
                )
                response = requests.get(
                    url,
                    headers={'User-Agent': self.USER_AGENT},
                    timeout=self.timeout
                )
                status_code, body = response.status_code, response.text

                if status_code < 500:
                    return status_code, body

                if last_attempt:
                    logger.error(
                        f"All {self.max_retries} attempts failed. "
                        f"Last status: {status_code}"
                    )
                    return status_code, body

                error = f"server returned {status_code}"

            except requests.RequestException as e:
                if last_attempt:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise
                error = str(e)

            delay = self.base_delay * (2 ** attempt)
            logger.warning(
                f"Request failed (attempt {attempt + 1}/{self.max_retries}): {error}. "
                f"Retrying in {delay} seconds..."
            )
            time.sleep(delay)

        return status_code, body
