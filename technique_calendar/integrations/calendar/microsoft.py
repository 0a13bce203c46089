# technique_calendar/integrations/calendar/microsoft.py
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import requests

from technique_calendar.core.constants import CalendarProvider
from technique_calendar.core.exceptions import (
    ProviderErrorException,
    ProviderTimeoutException,
    ReauthRequiredException,
    TokenExchangeFailedException,
)
from technique_calendar.integrations.calendar.base import CalendarProviderClient
from technique_calendar.schemas.calendar import (
    EventDraft,
    ExternalEvent,
    ProviderCalendar,
    TokenSet,
)

logger = logging.getLogger(__name__)

MICROSOFT_LOGIN_URL = "https://login.microsoftonline.com"
GRAPH_API_URL = "https://graph.microsoft.com/v1.0"
MICROSOFT_CALENDAR_SCOPES = ["offline_access", "Calendars.ReadWrite"]

REAUTH_MESSAGE = "Your Outlook Calendar connection has expired, please reconnect"


class MicrosoftCalendarClient(CalendarProviderClient):
    """Microsoft identity platform v2.0 and Graph calendar adapter."""

    provider = CalendarProvider.MICROSOFT
    scopes = MICROSOFT_CALENDAR_SCOPES

    def __init__(self, *args, tenant: str = "common", **kwargs):
        super().__init__(*args, **kwargs)
        self.tenant = tenant

    @property
    def authorize_endpoint(self) -> str:
        return f"{MICROSOFT_LOGIN_URL}/{self.tenant}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{MICROSOFT_LOGIN_URL}/{self.tenant}/oauth2/v2.0/token"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"Microsoft {method} request timed out: {type(e).__name__}")
            raise ProviderTimeoutException("Microsoft did not respond in time") from e

    def _graph(
        self, method: str, path: str, access_token: str, json: Optional[Dict[str, Any]] = None
    ) -> requests.Response:
        response = self._request(
            method,
            f"{GRAPH_API_URL}{path}",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            json=json,
        )
        if response.status_code == 401:
            raise ReauthRequiredException(REAUTH_MESSAGE)
        if not 200 <= response.status_code < 300:
            logger.warning(f"Microsoft Graph {method} {path} failed with status {response.status_code}")
            raise ProviderErrorException(provider_status=response.status_code)
        return response

    def _token_request(self, data: Dict[str, str]) -> requests.Response:
        return self._request(
            "POST",
            self.token_endpoint,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": " ".join(self.scopes),
                **data,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )

    @staticmethod
    def _token_set(payload: Dict[str, Any]) -> TokenSet:
        return TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_in=int(payload.get("expires_in") or 3600),
            scope=payload.get("scope"),
        )

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "response_mode": "query",
            "scope": " ".join(self.scopes),
            "state": state,
            "prompt": "consent",
        }
        return f"{self.authorize_endpoint}?{urlencode(params, quote_via=quote)}"

    def exchange_code(self, code: str) -> TokenSet:
        response = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )
        if response.status_code != 200:
            logger.warning(f"Microsoft token exchange failed with status {response.status_code}")
            raise TokenExchangeFailedException(
                "Could not complete the Microsoft authorization"
            )
        return self._token_set(response.json())

    def refresh_token(self, refresh_token: str) -> TokenSet:
        response = self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        if response.status_code in (400, 401):
            logger.warning("Microsoft refused to refresh the access token")
            raise ReauthRequiredException(REAUTH_MESSAGE)
        if response.status_code != 200:
            raise ProviderErrorException(provider_status=response.status_code)
        return self._token_set(response.json())

    def list_calendars(self, access_token: str) -> List[ProviderCalendar]:
        response = self._graph("GET", "/me/calendars", access_token)
        calendars = []
        for item in response.json().get("value", []):
            if item.get("canEdit") is False:
                continue
            owner = item.get("owner") or {}
            calendars.append(
                ProviderCalendar(
                    id=item["id"],
                    name=item.get("name"),
                    email=owner.get("address"),
                    primary=bool(item.get("isDefaultCalendar")),
                )
            )
        return calendars

    def create_event(
        self, access_token: str, calendar_id: str, payload: Dict[str, Any]
    ) -> ExternalEvent:
        response = self._graph(
            "POST", f"/me/calendars/{quote(calendar_id, safe='')}/events", access_token, json=payload
        )
        created = response.json()
        logger.info(f"Created Microsoft event {created.get('id')}")
        return ExternalEvent(id=created["id"], url=created.get("webLink"))

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        self._graph(
            "DELETE",
            f"/me/calendars/{quote(calendar_id, safe='')}/events/{quote(event_id, safe='')}",
            access_token,
        )
        logger.info(f"Deleted Microsoft event {event_id}")

    def revoke_token(self, token: str) -> None:
        # The v2.0 endpoint has no revocation for delegated tokens; consent is
        # withdrawn from the user's Microsoft account page.
        logger.info("Microsoft tokens cannot be revoked remotely, dropping local copy only")

    def build_event_payload(self, draft: EventDraft) -> Dict[str, Any]:
        payload = {
            "subject": draft.title,
            "body": {"contentType": "text", "content": draft.description},
            "start": {
                "dateTime": self.local_datetime(draft.start),
                "timeZone": draft.timezone,
            },
            "end": {
                "dateTime": self.local_datetime(draft.end),
                "timeZone": draft.timezone,
            },
            "isReminderOn": bool(draft.reminder_minutes),
        }
        if draft.reminder_minutes:
            # Graph holds a single reminder per event
            payload["reminderMinutesBeforeStart"] = min(draft.reminder_minutes)
        return payload
