# technique_calendar/models/__init__.py
from technique_calendar.models.calendar_connection import CalendarConnection
from technique_calendar.models.scheduled_event import ScheduledEvent
from technique_calendar.models.oauth_state import OAuthState
from technique_calendar.models.resource import Resource
