from technique_calendar.schemas.calendar import (
    AuthorizationUrl,
    CalendarConnectionStatus,
    CalendarEventCreate,
    CalendarEventCreated,
    ConnectionResult,
    EncryptedSecret,
    EventDraft,
    EventSchedule,
    ExternalEvent,
    ProviderCalendar,
    ScheduledEvent,
    TokenSet,
)
