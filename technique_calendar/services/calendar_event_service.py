import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from technique_calendar.core.config import settings
from technique_calendar.core.constants import (
    EVENT_DEFAULT_DESCRIPTION,
    EVENT_FOOTER,
    EVENT_TITLE_SUFFIX,
    CalendarProvider,
)
from technique_calendar.core.exceptions import (
    NoConnectionException,
    PersistenceFailedException,
    ProviderErrorException,
    ProviderTimeoutException,
    ReauthRequiredException,
    ResourceNotFoundException,
    ValidationException,
)
from technique_calendar.core.logging import log_context
from technique_calendar.integrations.calendar import get_provider_client
from technique_calendar.integrations.calendar.base import CalendarProviderClient
from technique_calendar.models.resource import Resource
from technique_calendar.models.scheduled_event import ScheduledEvent
from technique_calendar.repositories.calendar_connection_repository import (
    CalendarConnectionRepository,
)
from technique_calendar.repositories.resource_repository import ResourceRepository
from technique_calendar.repositories.scheduled_event_repository import (
    ScheduledEventRepository,
)
from technique_calendar.schemas.calendar import (
    CalendarEventCreated,
    EventDraft,
    EventSchedule,
    ExternalEvent,
)
from technique_calendar.services.token_refresh_service import TokenRefreshService
from technique_calendar.utils.clock import Clock, utcnow
from technique_calendar.utils.retry import call_provider

logger = logging.getLogger(__name__)

# Provider statuses meaning the event no longer exists
GONE_STATUSES = {404, 410}


def build_event_description(resource: Resource, notes: Optional[str]) -> str:
    """Plain text body: resource summary, link, the user's notes and a footer."""
    lines = [
        resource.description or EVENT_DEFAULT_DESCRIPTION,
        "",
        f"Resource: {resource.title}",
    ]
    if resource.url:
        lines.append(f"Link: {resource.url}")
    if notes:
        lines.extend(["", f"Notes: {notes}"])
    lines.extend(["", "---", EVENT_FOOTER])
    return "\n".join(lines)


class CalendarEventService:
    """Creates, deletes and lists review events for surgical technique resources."""

    def __init__(
        self,
        db: Session,
        token_service: Optional[TokenRefreshService] = None,
        providers: Optional[Dict[CalendarProvider, CalendarProviderClient]] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.connection_repository = CalendarConnectionRepository(db)
        self.event_repository = ScheduledEventRepository(db)
        self.resource_repository = ResourceRepository(db)
        self.providers = providers or {}
        self.clock = clock
        self.token_service = token_service or TokenRefreshService(
            db, providers=self.providers, clock=clock
        )

    def _client(self, provider: CalendarProvider) -> CalendarProviderClient:
        return self.providers.get(provider) or get_provider_client(provider)

    def resolve_schedule(self, schedule: EventSchedule) -> Tuple[datetime, datetime, str]:
        """
        Turn a date, time and timezone into aware start and end datetimes.

        Raises:
            ValidationException: For an unknown timezone, a duration out of
                bounds or a start that is not in the future
        """
        tz_name = schedule.timezone or settings.EVENT_DEFAULT_TIMEZONE
        try:
            tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationException(
                f"Unknown timezone: {tz_name}", details={"timezone": tz_name}
            )

        duration = schedule.duration_minutes or settings.EVENT_DEFAULT_DURATION_MINUTES
        if duration > settings.EVENT_MAX_DURATION_MINUTES:
            raise ValidationException(
                f"Events cannot be longer than {settings.EVENT_MAX_DURATION_MINUTES} minutes"
            )

        start = datetime.combine(
            schedule.event_date, schedule.event_time.replace(tzinfo=None), tzinfo=tz
        )
        if start <= self.clock():
            raise ValidationException("Please select a future date and time")

        return start, start + timedelta(minutes=duration), tz_name

    def create_event(
        self,
        user_id: str,
        provider: CalendarProvider,
        resource_id: str,
        schedule: EventSchedule,
        notes: Optional[str] = None,
    ) -> CalendarEventCreated:
        provider = CalendarProvider(provider)

        # Everything is validated before the provider is contacted
        resource = self.resource_repository.get_visible(resource_id)
        if not resource:
            raise ResourceNotFoundException("Resource not found")
        if notes and len(notes) > settings.EVENT_NOTES_MAX_LENGTH:
            raise ValidationException(
                f"Notes cannot exceed {settings.EVENT_NOTES_MAX_LENGTH} characters"
            )
        start, end, tz_name = self.resolve_schedule(schedule)

        with log_context(user_id=user_id, provider=provider.value):
            connection = self.connection_repository.get_connection(user_id, provider.value)
            if not connection:
                raise NoConnectionException(
                    f"Connect your {provider.value} calendar before scheduling"
                )
            access_token = self.token_service.get_valid_access_token(user_id, provider)

            draft = EventDraft(
                title=f"{resource.title} - {EVENT_TITLE_SUFFIX}",
                description=build_event_description(resource, notes),
                start=start,
                end=end,
                timezone=tz_name,
                reminder_minutes=settings.EVENT_REMINDER_MINUTES,
            )
            client = self._client(provider)
            external = call_provider(
                client.create_event,
                access_token,
                connection.calendar_id,
                client.build_event_payload(draft),
            )

            self._track_event(user_id, provider, resource, connection.calendar_id, draft, notes, external)

        return CalendarEventCreated(
            provider=provider,
            external_event_id=external.id,
            event_url=external.url,
        )

    def _track_event(
        self,
        user_id: str,
        provider: CalendarProvider,
        resource: Resource,
        calendar_id: str,
        draft: EventDraft,
        notes: Optional[str],
        external: ExternalEvent,
    ) -> None:
        """Record the created event locally. The event already exists, so failures are only logged."""
        try:
            self.event_repository.record_event(
                {
                    "user_id": user_id,
                    "resource_id": resource.id,
                    "provider": provider.value,
                    "external_event_id": external.id,
                    "calendar_id": calendar_id,
                    "event_title": draft.title,
                    "event_start": draft.start.astimezone(timezone.utc),
                    "event_end": draft.end.astimezone(timezone.utc),
                    "event_timezone": draft.timezone,
                    "event_notes": notes,
                    "event_url": external.url,
                }
            )
        except PersistenceFailedException:
            logger.error(f"Created event {external.id} could not be tracked locally")

    def delete_event(
        self, user_id: str, provider: CalendarProvider, external_event_id: str
    ) -> None:
        """
        Delete an event from the provider calendar and forget it locally.

        Only events this user created through the app can be deleted. An
        event the provider no longer has counts as deleted. When the grant
        can no longer be refreshed the provider call is skipped and only the
        local record is removed.

        Raises:
            ResourceNotFoundException: If the user has no such tracked event
        """
        provider = CalendarProvider(provider)
        with log_context(user_id=user_id, provider=provider.value):
            tracked = self.event_repository.get_for_user(
                user_id, provider.value, external_event_id
            )
            if not tracked:
                raise ResourceNotFoundException("Calendar event not found")

            connection = self.connection_repository.get_connection(user_id, provider.value)
            if not connection:
                logger.info(f"Calendar not connected, removing local record of {external_event_id}")
                self.event_repository.delete_event(user_id, provider.value, external_event_id)
                return

            try:
                access_token = self.token_service.get_valid_access_token(user_id, provider)
            except ReauthRequiredException:
                logger.warning(
                    f"Calendar access lost, removing local record of {external_event_id} only"
                )
                self.event_repository.delete_event(user_id, provider.value, external_event_id)
                return

            calendar_id = tracked.calendar_id or connection.calendar_id

            try:
                call_provider(
                    self._client(provider).delete_event,
                    access_token,
                    calendar_id,
                    external_event_id,
                )
            except ProviderErrorException as e:
                if e.provider_status in GONE_STATUSES:
                    logger.info(f"Event {external_event_id} was already deleted at the provider")
                else:
                    logger.warning(
                        f"Provider delete of {external_event_id} failed with status {e.provider_status}"
                    )
            except ProviderTimeoutException:
                logger.warning(f"Provider delete of {external_event_id} timed out")
            except ReauthRequiredException:
                self.event_repository.delete_event(user_id, provider.value, external_event_id)
                raise

            self.event_repository.delete_event(user_id, provider.value, external_event_id)

    def list_upcoming_events(
        self, user_id: str, resource_id: Optional[str] = None
    ) -> List[ScheduledEvent]:
        """Tracked events that have not started yet, for providers still connected."""
        providers = [
            connection.provider
            for connection in self.connection_repository.list_for_user(user_id)
        ]
        return self.event_repository.list_upcoming(
            user_id, self.clock(), providers, resource_id=resource_id
        )
