# technique_calendar/api/routes/calendar_events.py
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from technique_calendar.api import deps
from technique_calendar.core.constants import CalendarProvider
from technique_calendar.schemas.calendar import (
    CalendarEventCreate,
    CalendarEventCreated,
    ScheduledEvent,
)
from technique_calendar.services.calendar_event_service import CalendarEventService

router = APIRouter()


@router.post("", response_model=CalendarEventCreated, status_code=status.HTTP_201_CREATED)
def create_event(
    event_in: CalendarEventCreate,
    user_id: str = Depends(deps.get_current_user_id),
    event_service: CalendarEventService = Depends(deps.get_event_service),
):
    """Add a review event for a resource to the user's connected calendar."""
    return event_service.create_event(
        user_id,
        event_in.provider,
        event_in.resource_id,
        event_in.schedule(),
        event_in.notes,
    )


@router.get("", response_model=List[ScheduledEvent])
def list_upcoming_events(
    resource_id: Optional[str] = None,
    user_id: str = Depends(deps.get_current_user_id),
    event_service: CalendarEventService = Depends(deps.get_event_service),
):
    """Upcoming review events, optionally only those for one resource."""
    return event_service.list_upcoming_events(user_id, resource_id=resource_id)


@router.delete("/{provider}/{external_event_id}")
def delete_event(
    provider: CalendarProvider,
    external_event_id: str,
    user_id: str = Depends(deps.get_current_user_id),
    event_service: CalendarEventService = Depends(deps.get_event_service),
):
    event_service.delete_event(user_id, provider, external_event_id)
    return {"success": True}
