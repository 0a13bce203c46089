from abc import ABC, abstractmethod
from typing import Any, Dict, List

from technique_calendar.core.constants import CalendarProvider
from technique_calendar.schemas.calendar import (
    EventDraft,
    ExternalEvent,
    ProviderCalendar,
    TokenSet,
)


class CalendarProviderClient(ABC):
    """
    Interface every calendar provider adapter implements.

    Each network method performs a single REST call and translates provider
    failures into the calendar exceptions:
    ``TokenExchangeFailedException`` when an authorization code is rejected,
    ``ReauthRequiredException`` for a rejected refresh token or a 401,
    ``ProviderErrorException`` for any other non-2xx status and
    ``ProviderTimeoutException`` for timeouts and connection failures.
    """

    provider: CalendarProvider
    scopes: List[str]

    def __init__(
        self, client_id: str, client_secret: str, redirect_uri: str, timeout: int = 10
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout

    @abstractmethod
    def authorization_url(self, state: str) -> str:
        """Consent page URL requesting offline access for ``scopes``."""

    @abstractmethod
    def exchange_code(self, code: str) -> TokenSet:
        pass

    @abstractmethod
    def refresh_token(self, refresh_token: str) -> TokenSet:
        pass

    @abstractmethod
    def list_calendars(self, access_token: str) -> List[ProviderCalendar]:
        pass

    @abstractmethod
    def create_event(
        self, access_token: str, calendar_id: str, payload: Dict[str, Any]
    ) -> ExternalEvent:
        pass

    @abstractmethod
    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        pass

    @abstractmethod
    def revoke_token(self, token: str) -> None:
        pass

    @abstractmethod
    def build_event_payload(self, draft: EventDraft) -> Dict[str, Any]:
        """Shape a provider independent draft into this provider's event body."""

    @staticmethod
    def local_datetime(value) -> str:
        """Wall-clock time in the event's own timezone, without offset."""
        return value.strftime("%Y-%m-%dT%H:%M:%S")
