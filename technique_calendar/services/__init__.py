"""
Service registry module.

This module registers all services with the dependency injection system.
"""
from technique_calendar.services.calendar_connection_service import CalendarConnectionService
from technique_calendar.services.calendar_event_service import CalendarEventService


def register_services():
    """Register all services with the dependency injection system."""
    # Import register_service inside the function to avoid circular imports
    from technique_calendar.utils.dependencies import register_service

    register_service(CalendarConnectionService, lambda db: CalendarConnectionService(db))
    register_service(CalendarEventService, lambda db: CalendarEventService(db))
