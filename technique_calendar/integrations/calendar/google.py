# technique_calendar/integrations/calendar/google.py
import functools
import logging
import socket
from datetime import datetime, timezone
from typing import Any, Dict, List

import httplib2
import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

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

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.calendarlist.readonly",
]


class GoogleCalendarClient(CalendarProviderClient):
    """Google OAuth 2.0 and Calendar v3 adapter."""

    provider = CalendarProvider.GOOGLE
    scopes = GOOGLE_CALENDAR_SCOPES

    def get_client_config(self) -> Dict[str, Any]:
        return {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }

    def create_oauth_flow(self) -> Flow:
        return Flow.from_client_config(
            self.get_client_config(),
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, state: str) -> str:
        flow = self.create_oauth_flow()
        url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        return url

    def exchange_code(self, code: str) -> TokenSet:
        flow = self.create_oauth_flow()
        try:
            token = flow.fetch_token(code=code, timeout=self.timeout)
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"Google token exchange timed out: {type(e).__name__}")
            raise ProviderTimeoutException("Google did not respond in time") from e
        except (OAuth2Error, ValueError, Warning) as e:
            # oauthlib raises Warning when the granted scopes differ from the request
            logger.warning(f"Google rejected the authorization code: {type(e).__name__}")
            raise TokenExchangeFailedException(
                "Could not complete the Google authorization"
            ) from e

        scope = token.get("scope")
        if isinstance(scope, list):
            scope = " ".join(scope)
        return TokenSet(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token"),
            expires_in=int(token.get("expires_in") or 3600),
            scope=scope,
        )

    def refresh_token(self, refresh_token: str) -> TokenSet:
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes,
        )
        try:
            credentials.refresh(functools.partial(Request(), timeout=self.timeout))
        except RefreshError as e:
            logger.warning("Google refused to refresh the access token")
            raise ReauthRequiredException(
                "Your Google Calendar connection has expired, please reconnect"
            ) from e
        except TransportError as e:
            raise ProviderTimeoutException("Google did not respond in time") from e

        expires_in = 3600
        if credentials.expiry is not None:
            # google-auth keeps expiry as naive UTC
            now = datetime.now(timezone.utc).replace(tzinfo=None)
            expires_in = max(int((credentials.expiry - now).total_seconds()), 0)

        rotated = credentials.refresh_token
        return TokenSet(
            access_token=credentials.token,
            refresh_token=rotated if rotated and rotated != refresh_token else None,
            expires_in=expires_in,
        )

    def _build_service(self, access_token: str):
        http = AuthorizedHttp(
            Credentials(token=access_token), http=httplib2.Http(timeout=self.timeout)
        )
        return build("calendar", "v3", http=http, cache_discovery=False)

    def _execute(self, request, action: str) -> Dict[str, Any]:
        try:
            return request.execute()
        except HttpError as e:
            status = e.resp.status
            logger.warning(f"Google Calendar {action} failed with status {status}")
            if status == 401:
                raise ReauthRequiredException(
                    "Your Google Calendar connection has expired, please reconnect"
                ) from e
            raise ProviderErrorException(provider_status=status) from e
        except RefreshError as e:
            # AuthorizedHttp tries to refresh after a 401 and has no refresh token
            raise ReauthRequiredException(
                "Your Google Calendar connection has expired, please reconnect"
            ) from e
        except (socket.timeout, TimeoutError, ConnectionError, httplib2.HttpLib2Error) as e:
            logger.warning(f"Google Calendar {action} timed out: {type(e).__name__}")
            raise ProviderTimeoutException("Google Calendar did not respond in time") from e

    def list_calendars(self, access_token: str) -> List[ProviderCalendar]:
        service = self._build_service(access_token)
        result = self._execute(
            service.calendarList().list(minAccessRole="writer", maxResults=250),
            "calendar list",
        )
        return [
            ProviderCalendar(
                id=item["id"],
                name=item.get("summaryOverride") or item.get("summary"),
                email=item["id"] if item.get("primary") else None,
                primary=bool(item.get("primary")),
            )
            for item in result.get("items", [])
        ]

    def create_event(
        self, access_token: str, calendar_id: str, payload: Dict[str, Any]
    ) -> ExternalEvent:
        service = self._build_service(access_token)
        created = self._execute(
            service.events().insert(calendarId=calendar_id, body=payload),
            "event insert",
        )
        logger.info(f"Created Google event {created.get('id')}")
        return ExternalEvent(id=created["id"], url=created.get("htmlLink"))

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        service = self._build_service(access_token)
        self._execute(
            service.events().delete(calendarId=calendar_id, eventId=event_id),
            "event delete",
        )
        logger.info(f"Deleted Google event {event_id}")

    def revoke_token(self, token: str) -> None:
        try:
            response = requests.post(
                GOOGLE_REVOKE_URI,
                data={"token": token},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise ProviderTimeoutException("Google did not respond in time") from e
        if response.status_code != 200:
            raise ProviderErrorException(provider_status=response.status_code)

    def build_event_payload(self, draft: EventDraft) -> Dict[str, Any]:
        return {
            "summary": draft.title,
            "description": draft.description,
            "start": {
                "dateTime": self.local_datetime(draft.start),
                "timeZone": draft.timezone,
            },
            "end": {
                "dateTime": self.local_datetime(draft.end),
                "timeZone": draft.timezone,
            },
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "popup", "minutes": minutes}
                    for minutes in draft.reminder_minutes
                ],
            },
        }
