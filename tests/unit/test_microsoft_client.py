from datetime import datetime
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse
from zoneinfo import ZoneInfo

import pytest
import requests

from technique_calendar.core.exceptions import (
    ProviderErrorException,
    ProviderTimeoutException,
    ReauthRequiredException,
    TokenExchangeFailedException,
)
from technique_calendar.integrations.calendar.microsoft import (
    GRAPH_API_URL,
    MicrosoftCalendarClient,
)
from technique_calendar.schemas.calendar import EventDraft


def _response(status_code: int, payload=None) -> MagicMock:
    response = MagicMock(status_code=status_code)
    response.json.return_value = payload or {}
    return response


@pytest.fixture
def microsoft_client():
    return MicrosoftCalendarClient(
        "test-microsoft-client",
        "test-microsoft-secret",
        "http://localhost:8000/api/v1/calendar/microsoft/callback",
        timeout=5,
        tenant="common",
    )


@pytest.fixture
def graph():
    with patch("technique_calendar.integrations.calendar.microsoft.requests.request") as request:
        yield request


class TestAuthorization:
    def test_authorization_url(self, microsoft_client):
        url = microsoft_client.authorization_url("user:nonce")

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert parsed.netloc == "login.microsoftonline.com"
        assert parsed.path == "/common/oauth2/v2.0/authorize"
        assert query["state"] == ["user:nonce"]
        assert query["response_mode"] == ["query"]
        assert query["scope"] == ["offline_access Calendars.ReadWrite"]
        assert query["redirect_uri"] == ["http://localhost:8000/api/v1/calendar/microsoft/callback"]

    def test_exchange_code(self, microsoft_client, graph):
        graph.return_value = _response(
            200, {"access_token": "AT1", "refresh_token": "RT1", "expires_in": 3600}
        )

        tokens = microsoft_client.exchange_code("auth-code")

        method, url = graph.call_args.args
        data = graph.call_args.kwargs["data"]
        assert method == "POST"
        assert url.endswith("/common/oauth2/v2.0/token")
        assert data["grant_type"] == "authorization_code"
        assert data["code"] == "auth-code"
        assert graph.call_args.kwargs["timeout"] == 5
        assert tokens.refresh_token == "RT1"

    def test_rejected_code(self, microsoft_client, graph):
        graph.return_value = _response(400, {"error": "invalid_grant"})

        with pytest.raises(TokenExchangeFailedException):
            microsoft_client.exchange_code("used-code")

    @pytest.mark.parametrize("status", [400, 401])
    def test_rejected_refresh_requires_reauth(self, microsoft_client, graph, status):
        graph.return_value = _response(status, {"error": "invalid_grant"})

        with pytest.raises(ReauthRequiredException):
            microsoft_client.refresh_token("RT1")

    def test_refresh_server_error(self, microsoft_client, graph):
        graph.return_value = _response(503)

        with pytest.raises(ProviderErrorException) as exc_info:
            microsoft_client.refresh_token("RT1")

        assert exc_info.value.provider_status == 503

    def test_timeout(self, microsoft_client, graph):
        graph.side_effect = requests.exceptions.ConnectTimeout()

        with pytest.raises(ProviderTimeoutException):
            microsoft_client.refresh_token("RT1")


class TestGraphCalendars:
    def test_list_calendars_skips_read_only(self, microsoft_client, graph):
        graph.return_value = _response(
            200,
            {
                "value": [
                    {"id": "holidays", "name": "Holidays", "canEdit": False},
                    {
                        "id": "AAMkAD",
                        "name": "Calendar",
                        "isDefaultCalendar": True,
                        "canEdit": True,
                        "owner": {"address": "surgeon@example.com"},
                    },
                ]
            },
        )

        calendars = microsoft_client.list_calendars("AT1")

        assert graph.call_args.args == ("GET", f"{GRAPH_API_URL}/me/calendars")
        assert graph.call_args.kwargs["headers"]["Authorization"] == "Bearer AT1"
        assert len(calendars) == 1
        assert calendars[0].primary is True
        assert calendars[0].email == "surgeon@example.com"

    def test_create_event_returns_web_link(self, microsoft_client, graph):
        graph.return_value = _response(201, {"id": "evt-1", "webLink": "https://outlook.live.com/evt-1"})

        event = microsoft_client.create_event("AT1", "AAMkAD", {"subject": "Review"})

        assert graph.call_args.args == ("POST", f"{GRAPH_API_URL}/me/calendars/AAMkAD/events")
        assert graph.call_args.kwargs["json"] == {"subject": "Review"}
        assert event.url == "https://outlook.live.com/evt-1"

    def test_delete_event(self, microsoft_client, graph):
        graph.return_value = _response(204)

        microsoft_client.delete_event("AT1", "AAMkAD", "evt-1")

        assert graph.call_args.args == ("DELETE", f"{GRAPH_API_URL}/me/calendars/AAMkAD/events/evt-1")

    def test_unauthorized_requires_reauth(self, microsoft_client, graph):
        graph.return_value = _response(401)

        with pytest.raises(ReauthRequiredException):
            microsoft_client.delete_event("AT1", "AAMkAD", "evt-1")

    def test_missing_event_keeps_status(self, microsoft_client, graph):
        graph.return_value = _response(404)

        with pytest.raises(ProviderErrorException) as exc_info:
            microsoft_client.delete_event("AT1", "AAMkAD", "evt-1")

        assert exc_info.value.provider_status == 404

    def test_revoke_makes_no_request(self, microsoft_client, graph):
        microsoft_client.revoke_token("RT1")

        graph.assert_not_called()


class TestEventPayload:
    def test_single_reminder_uses_earliest_lead_time(self, microsoft_client):
        tz = ZoneInfo("America/Los_Angeles")
        draft = EventDraft(
            title="ACL Reconstruction - Surgical Technique Review",
            description="Review",
            start=datetime(2030, 3, 5, 9, 0, tzinfo=tz),
            end=datetime(2030, 3, 5, 9, 30, tzinfo=tz),
            timezone="America/Los_Angeles",
            reminder_minutes=[1440, 60],
        )

        payload = microsoft_client.build_event_payload(draft)

        assert payload["subject"] == "ACL Reconstruction - Surgical Technique Review"
        assert payload["body"] == {"contentType": "text", "content": "Review"}
        assert payload["start"] == {"dateTime": "2030-03-05T09:00:00", "timeZone": "America/Los_Angeles"}
        assert payload["isReminderOn"] is True
        assert payload["reminderMinutesBeforeStart"] == 60
