from datetime import timedelta

import pytest

from technique_calendar.core.constants import CalendarProvider
from technique_calendar.core.exceptions import (
    NoConnectionException,
    ProviderTimeoutException,
    ReauthRequiredException,
)
from technique_calendar.models.calendar_connection import CalendarConnection
from technique_calendar.repositories.calendar_connection_repository import (
    CalendarConnectionRepository,
)
from technique_calendar.schemas.calendar import TokenSet
from technique_calendar.utils.clock import ensure_utc


class TestGetValidAccessToken:
    """Tests for lazy access token refresh."""

    def test_no_connection(self, token_service, user_id):
        with pytest.raises(NoConnectionException):
            token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

    def test_fresh_token_is_served_without_network(
        self, token_service, connect_google, fake_google, user_id
    ):
        connect_google(expires_in=timedelta(hours=1))

        token = token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        assert token == "AT1"
        assert fake_google.calls["refresh_token"] == 0

    def test_token_inside_margin_is_refreshed(
        self, db, token_service, connect_google, fake_google, user_id, clock, cipher
    ):
        connect_google(expires_in=timedelta(minutes=4))

        token = token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        assert token == "AT2"
        assert fake_google.calls["refresh_token"] == 1
        assert fake_google.refreshed_with == ["RT1"]

        connection = CalendarConnectionRepository(db).get_connection(user_id, "google")
        assert cipher.decrypt(connection.access_token_encrypted, connection.access_token_iv) == "AT2"
        assert ensure_utc(connection.token_expires_at) == clock() + timedelta(seconds=3600)
        assert ensure_utc(connection.last_refresh_at) == clock()
        # Refresh token is kept when the provider does not rotate it
        assert cipher.decrypt(connection.refresh_token_encrypted, connection.refresh_token_iv) == "RT1"

    def test_rotated_refresh_token_is_stored(
        self, db, token_service, connect_google, fake_google, user_id, cipher
    ):
        connect_google(expires_in=timedelta(seconds=-10))
        fake_google.refresh_tokens = TokenSet(
            access_token="AT2", refresh_token="RT2", expires_in=1800
        )

        token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        connection = CalendarConnectionRepository(db).get_connection(user_id, "google")
        assert cipher.decrypt(connection.refresh_token_encrypted, connection.refresh_token_iv) == "RT2"

    def test_refresh_happens_once_then_token_is_reused(
        self, token_service, connect_google, fake_google, user_id
    ):
        connect_google(expires_in=timedelta(minutes=1))

        first = token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)
        second = token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        assert first == second == "AT2"
        assert fake_google.calls["refresh_token"] == 1

    def test_rejected_refresh_requires_reauth(
        self, token_service, connect_google, fake_google, user_id
    ):
        connect_google(expires_in=timedelta(minutes=1))
        fake_google.failures["refresh_token"] = ReauthRequiredException("revoked")

        with pytest.raises(ReauthRequiredException):
            token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        assert fake_google.calls["refresh_token"] == 1

    def test_refresh_timeouts_are_retried(
        self, token_service, connect_google, fake_google, user_id
    ):
        connect_google(expires_in=timedelta(minutes=1))
        fake_google.failures["refresh_token"] = [
            ProviderTimeoutException("slow"),
            ProviderTimeoutException("slow"),
        ]

        assert token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE) == "AT2"
        assert fake_google.calls["refresh_token"] == 3

    def test_missing_refresh_token_requires_reauth(
        self, token_service, connect_google, fake_google, user_id
    ):
        connect_google(refresh_token=None, expires_in=timedelta(minutes=1))

        with pytest.raises(ReauthRequiredException):
            token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

        assert fake_google.calls["refresh_token"] == 0

    def test_corrupted_token_requires_reauth(
        self, db, token_service, connect_google, user_id, cipher
    ):
        connect_google()
        other_iv = cipher.encrypt("unrelated").iv
        db.query(CalendarConnection).update({CalendarConnection.access_token_iv: other_iv})
        db.commit()

        with pytest.raises(ReauthRequiredException):
            token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE)

    def test_legacy_plaintext_token_is_sealed_on_read(
        self, db, token_service, connect_google, user_id, cipher
    ):
        connect_google()
        db.query(CalendarConnection).update(
            {
                CalendarConnection.access_token_encrypted: "legacy-access",
                CalendarConnection.access_token_iv: None,
            }
        )
        db.commit()

        assert token_service.get_valid_access_token(user_id, CalendarProvider.GOOGLE) == "legacy-access"

        connection = CalendarConnectionRepository(db).get_connection(user_id, "google")
        assert connection.access_token_iv is not None
        assert connection.access_token_encrypted != "legacy-access"
        assert cipher.decrypt(connection.access_token_encrypted, connection.access_token_iv) == "legacy-access"
