"""Unit tests for GoogleCalendarStore."""
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from storage.google_calendar import GoogleCalendarStore

START = datetime(2030, 6, 15, 16, 0, tzinfo=timezone.utc)
END = datetime(2030, 6, 15, 17, 0, tzinfo=timezone.utc)


def http_error(status):
    """Build an HttpError with the given status."""
    return HttpError(resp=httplib2.Response({'status': status}), content=b'error')


@pytest.fixture
def service():
    """Create a mock Google Calendar service."""
    return MagicMock()


@pytest.fixture
def store(service):
    """Create a GoogleCalendarStore around the mock service."""
    return GoogleCalendarStore('calendar@example.com', service)


class TestGoogleCalendarStore:
    """Test cases for GoogleCalendarStore class."""

    def test_create_event(self, store, service):
        """Test creating a timed event."""
        service.events.return_value.insert.return_value.execute.return_value = {'id': 'evt-1'}

        event_id = store.create_event(
            title='Work Demo',
            start=START,
            end=END,
            color='5',
            description='ICS-SYNC FEED:work',
            location='Room 1',
            private_properties={'icsSyncFeed': 'work', 'icsSyncKey': 'abc|SINGLE|x'}
        )

        assert event_id == 'evt-1'
        kwargs = service.events.return_value.insert.call_args.kwargs
        assert kwargs['calendarId'] == 'calendar@example.com'
        body = kwargs['body']
        assert body['summary'] == 'Work Demo'
        assert body['start'] == {'dateTime': '2030-06-15T16:00:00+00:00'}
        assert body['end'] == {'dateTime': '2030-06-15T17:00:00+00:00'}
        assert body['colorId'] == '5'
        assert body['location'] == 'Room 1'
        assert body['description'] == 'ICS-SYNC FEED:work'
        assert body['extendedProperties'] == {
            'private': {'icsSyncFeed': 'work', 'icsSyncKey': 'abc|SINGLE|x'}
        }

    def test_create_all_day_event(self, store, service):
        """Test all-day events are written with date fields."""
        service.events.return_value.insert.return_value.execute.return_value = {'id': 'evt-2'}

        store.create_event(
            title='Holiday',
            start=datetime(2030, 6, 15, tzinfo=timezone.utc),
            end=datetime(2030, 6, 16, tzinfo=timezone.utc),
            color='',
            description='',
            all_day=True
        )

        body = service.events.return_value.insert.call_args.kwargs['body']
        assert body['start'] == {'date': '2030-06-15'}
        assert body['end'] == {'date': '2030-06-16'}
        assert 'colorId' not in body
        assert 'location' not in body
        assert 'extendedProperties' not in body

    def test_create_event_propagates_errors(self, store, service):
        """Test API errors on create are raised to the caller."""
        service.events.return_value.insert.return_value.execute.side_effect = http_error(403)

        with pytest.raises(HttpError):
            store.create_event('T', START, END, '', '')

    def test_list_events_paginates(self, store, service):
        """Test list_events follows nextPageToken."""
        service.events.return_value.list.return_value.execute.side_effect = [
            {
                'items': [{
                    'id': 'evt-1',
                    'summary': 'Work Demo',
                    'description': 'KEY:abc',
                    'start': {'dateTime': '2030-06-15T16:00:00Z'},
                    'end': {'dateTime': '2030-06-15T17:00:00Z'},
                    'extendedProperties': {'private': {'icsSyncFeed': 'work'}},
                }],
                'nextPageToken': 'page-2',
            },
            {
                'items': [
                    {'id': 'evt-2', 'start': {'date': '2030-06-16'}, 'end': {'date': '2030-06-17'}},
                    {'id': 'evt-3', 'status': 'cancelled'},
                ],
            },
        ]

        events = store.list_events(START, END)

        assert [event.event_id for event in events] == ['evt-1', 'evt-2']
        assert events[0].title == 'Work Demo'
        assert events[0].description == 'KEY:abc'
        assert events[0].start == START
        assert events[0].private_properties == {'icsSyncFeed': 'work'}
        assert events[1].title == ''
        assert events[1].description == ''
        assert events[1].start == datetime(2030, 6, 16)

        calls = service.events.return_value.list.call_args_list
        assert calls[0].kwargs['timeMin'] == START.isoformat()
        assert calls[0].kwargs['singleEvents'] is True
        assert calls[-1].kwargs['pageToken'] == 'page-2'

    def test_delete_event(self, store, service):
        """Test deleting an event."""
        store.delete_event('evt-1')

        service.events.return_value.delete.assert_called_once_with(
            calendarId='calendar@example.com',
            eventId='evt-1'
        )

    @pytest.mark.parametrize('status', [404, 410])
    def test_delete_event_already_gone(self, store, service, status):
        """Test deleting an event that no longer exists succeeds."""
        service.events.return_value.delete.return_value.execute.side_effect = http_error(status)

        store.delete_event('evt-1')

    def test_delete_event_other_error(self, store, service):
        """Test other API errors on delete are raised."""
        service.events.return_value.delete.return_value.execute.side_effect = http_error(500)

        with pytest.raises(HttpError):
            store.delete_event('evt-1')

    @patch('storage.google_calendar.build')
    @patch('storage.google_calendar.service_account.Credentials.from_service_account_info')
    def test_from_service_account_info(self, mock_credentials, mock_build):
        """Test building a store from a service account key."""
        info = {'type': 'service_account', 'client_email': 'sync@example.iam.gserviceaccount.com'}

        store = GoogleCalendarStore.from_service_account_info('primary', info)

        mock_credentials.assert_called_once_with(info, scopes=GoogleCalendarStore.SCOPES)
        mock_build.assert_called_once_with(
            'calendar',
            'v3',
            credentials=mock_credentials.return_value,
            cache_discovery=False
        )
        assert store.calendar_id == 'primary'
