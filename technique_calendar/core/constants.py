# technique_calendar/core/constants.py
import enum


class CalendarProvider(str, enum.Enum):
    GOOGLE = "google"
    MICROSOFT = "microsoft"


# Per (user, provider) connection lifecycle
class ConnectionStatus(str, enum.Enum):
    UNCONNECTED = "unconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


# Query values sent back to the frontend settings page after an OAuth callback
class CallbackOutcome:
    CONNECTED = "connected"
    ERROR = "error"


EVENT_TITLE_SUFFIX = "Surgical Technique Review"
EVENT_DEFAULT_DESCRIPTION = "Review surgical technique resource"
EVENT_FOOTER = "Created via Surgical Techniques App"
