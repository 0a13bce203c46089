import logging

import pytest
from starlette.requests import Request

from technique_calendar.core.logging import (
    ContextFilter,
    SecretRedactionFilter,
    log_context,
    redact_secrets,
)
from technique_calendar.core.middleware import safe_url


def _record(msg, *args) -> logging.LogRecord:
    return logging.LogRecord("technique_calendar.test", logging.INFO, __file__, 1, msg, args, None)


def _request(path: str, query: bytes = b"") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "path": path,
            "query_string": query,
            "headers": [],
        }
    )


class TestRedactSecrets:
    @pytest.mark.parametrize(
        "message, secret",
        [
            ("Authorization: Bearer ya29.a0AfH6SMBx-abc", "a0AfH6SMBx"),
            ("callback with code=4/0AX4XfWhsecret&scope=calendar", "4/0AX4XfWhsecret"),
            ("token payload {'refresh_token': '1//0gRT-secret'}", "1//0gRT-secret"),
            ('{"access_token": "ya29.secret-token", "expires_in": 3599}', "secret-token"),
            ("stray ya29.leakedvalue in message", "leakedvalue"),
        ],
    )
    def test_secrets_are_masked(self, message, secret):
        redacted = redact_secrets(message)

        assert secret not in redacted
        assert "[REDACTED]" in redacted

    def test_plain_messages_are_unchanged(self):
        message = "Created Google event evt-1 for calendar surgeon@example.com"

        assert redact_secrets(message) == message


class TestLogFilters:
    def test_redaction_filter_rewrites_formatted_message(self):
        record = _record("Exchanging code=%s", "4/0AX4-secret")

        assert SecretRedactionFilter().filter(record) is True
        assert record.getMessage() == "Exchanging code=[REDACTED]"

    def test_context_filter_copies_log_context(self):
        record = _record("Connected calendar")

        with log_context(user_id="user-1", provider="google"):
            ContextFilter().filter(record)

        assert record.user_id == "user-1"
        assert record.provider == "google"


class TestSafeUrl:
    def test_oauth_parameters_are_masked(self):
        request = _request(
            "/api/v1/calendar/google/callback",
            b"code=4/0AX4secret&state=user-1:nonce-xyz&scope=calendar",
        )

        url = safe_url(request)

        assert url.startswith("/api/v1/calendar/google/callback?")
        assert "4/0AX4secret" not in url
        assert "nonce-xyz" not in url
        assert "scope=calendar" in url

    def test_path_without_query(self):
        assert safe_url(_request("/health")) == "/health"
