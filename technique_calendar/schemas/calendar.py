from datetime import date, datetime, time
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from technique_calendar.core.constants import CalendarProvider, ConnectionStatus
from technique_calendar.utils.clock import ensure_utc


# Token cipher output, both fields base64
class EncryptedSecret(BaseModel):
    ciphertext: str
    iv: str


# Provider adapter value types
class TokenSet(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    scope: Optional[str] = None


class ProviderCalendar(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    primary: bool = False


class ExternalEvent(BaseModel):
    id: str
    url: Optional[str] = None


class EventDraft(BaseModel):
    """Provider independent description of an event, shaped by each adapter."""

    title: str
    description: str
    start: datetime  # timezone aware, in the event's timezone
    end: datetime
    timezone: str
    reminder_minutes: List[int] = []


# Connection flow
class AuthorizationUrl(BaseModel):
    authorization_url: str


class ConnectionResult(BaseModel):
    user_id: str
    provider: CalendarProvider
    calendar_id: str
    calendar_name: Optional[str] = None
    calendar_email: Optional[str] = None
    token_expires_at: datetime


class CalendarConnectionStatus(BaseModel):
    provider: CalendarProvider
    status: ConnectionStatus
    calendar_id: Optional[str] = None
    calendar_name: Optional[str] = None
    calendar_email: Optional[str] = None
    connected_at: Optional[datetime] = None
    token_expires_at: Optional[datetime] = None


# Events
class EventSchedule(BaseModel):
    event_date: date
    event_time: time
    duration_minutes: Optional[int] = Field(default=None, gt=0)
    timezone: Optional[str] = None

    @field_validator("timezone")
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class CalendarEventCreate(EventSchedule):
    provider: CalendarProvider = CalendarProvider.GOOGLE
    resource_id: str
    notes: Optional[str] = None

    def schedule(self) -> EventSchedule:
        return EventSchedule(
            event_date=self.event_date,
            event_time=self.event_time,
            duration_minutes=self.duration_minutes,
            timezone=self.timezone,
        )


class CalendarEventCreated(BaseModel):
    provider: CalendarProvider
    external_event_id: str
    event_url: Optional[str] = None


class ScheduledEvent(BaseModel):
    id: int
    provider: CalendarProvider
    resource_id: str
    external_event_id: str
    calendar_id: Optional[str] = None
    event_title: str
    event_start: datetime
    event_end: datetime
    event_timezone: Optional[str] = None
    event_notes: Optional[str] = None
    event_url: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("event_start", "event_end", "created_at")
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    class Config:
        from_attributes = True
