"""Google Calendar store for synced events."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from processor.models import DestinationEvent

logger = logging.getLogger(__name__)


class GoogleCalendarStore:
    """Create, list and delete events in one Google calendar."""

    SCOPES = ['https://www.googleapis.com/auth/calendar']
    PAGE_SIZE = 250

    def __init__(self, calendar_id: str, service: Any):
        """
        Initialize the store.

        Args:
            calendar_id: Destination calendar ID ('primary' or an address)
            service: Google Calendar API v3 service resource
        """
        self.calendar_id = calendar_id
        self._service = service

    @classmethod
    def from_service_account_info(
        cls,
        calendar_id: str,
        info: Dict[str, Any]
    ) -> 'GoogleCalendarStore':
        """
        Build a store authenticated with a service account key.

        Args:
            calendar_id: Destination calendar ID
            info: Parsed service account key JSON

        Returns:
            GoogleCalendarStore instance
        """
        credentials = service_account.Credentials.from_service_account_info(
            info,
            scopes=cls.SCOPES
        )
        service = build('calendar', 'v3', credentials=credentials, cache_discovery=False)
        logger.info(f"Initialized GoogleCalendarStore for calendar: {calendar_id}")
        return cls(calendar_id, service)

    def create_event(
        self,
        title: str,
        start: datetime,
        end: datetime,
        color: str,
        description: str,
        all_day: bool = False,
        location: Optional[str] = None,
        private_properties: Optional[Dict[str, str]] = None
    ) -> str:
        """
        Create an event.

        Args:
            title: Event title
            start: Start instant (aware)
            end: End instant (aware)
            color: Google colorId, empty for the calendar default
            description: Description text including provenance metadata
            all_day: Write date-only start/end instead of date-times
            location: Optional location text
            private_properties: Optional private extended properties

        Returns:
            Destination event ID
        """
        if all_day:
            body: Dict[str, Any] = {
                'start': {'date': start.date().isoformat()},
                'end': {'date': end.date().isoformat()},
            }
        else:
            body = {
                'start': {'dateTime': start.isoformat()},
                'end': {'dateTime': end.isoformat()},
            }

        body['summary'] = title
        body['description'] = description
        if color:
            body['colorId'] = color
        if location:
            body['location'] = location
        if private_properties:
            body['extendedProperties'] = {'private': dict(private_properties)}

        created = (
            self._service.events()
            .insert(calendarId=self.calendar_id, body=body)
            .execute()
        )
        logger.debug(f"Created event {created['id']}: {title}")
        return created['id']

    def list_events(
        self,
        window_start: datetime,
        window_end: datetime
    ) -> List[DestinationEvent]:
        """
        List events starting within a window.

        Args:
            window_start: Window start (aware)
            window_end: Window end (aware)

        Returns:
            List of DestinationEvent objects
        """
        events = []
        params: Dict[str, Any] = {
            'calendarId': self.calendar_id,
            'timeMin': window_start.isoformat(),
            'timeMax': window_end.isoformat(),
            'maxResults': self.PAGE_SIZE,
            'singleEvents': True,
            'showDeleted': False,
        }

        while True:
            result = self._service.events().list(**params).execute()

            for item in result.get('items', []):
                if item.get('status') == 'cancelled':
                    continue
                events.append(self._item_to_event(item))

            page_token = result.get('nextPageToken')
            if not page_token:
                break
            params['pageToken'] = page_token

        logger.info(f"Listed {len(events)} destination events")
        return events

    def delete_event(self, event_id: str) -> None:
        """
        Delete an event. An event that is already gone counts as deleted.

        Args:
            event_id: Destination event ID
        """
        try:
            (
                self._service.events()
                .delete(calendarId=self.calendar_id, eventId=event_id)
                .execute()
            )
        except HttpError as e:
            if e.resp.status in (404, 410):
                logger.info(f"Event {event_id} already deleted")
                return
            raise

        logger.debug(f"Deleted event {event_id}")

    def _item_to_event(self, item: Dict[str, Any]) -> DestinationEvent:
        return DestinationEvent(
            event_id=item['id'],
            title=item.get('summary', ''),
            description=item.get('description', ''),
            start=self._parse_time(item.get('start', {})),
            end=self._parse_time(item.get('end', {})),
            private_properties=item.get('extendedProperties', {}).get('private', {})
        )

    def _parse_time(self, data: Dict[str, str]) -> Optional[datetime]:
        value = data.get('dateTime')
        if value:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        value = data.get('date')
        if value:
            return datetime.fromisoformat(value)
        return None
