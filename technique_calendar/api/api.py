# technique_calendar/api/api.py
from fastapi import APIRouter

from technique_calendar.api.routes import calendar_auth, calendar_events

api_router = APIRouter()
api_router.include_router(
    calendar_events.router, prefix="/calendar/events", tags=["calendar_events"]
)
api_router.include_router(calendar_auth.router, prefix="/calendar", tags=["calendar"])
