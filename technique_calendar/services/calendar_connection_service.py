import logging
import secrets
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from technique_calendar.core.config import settings
from technique_calendar.core.constants import CalendarProvider, ConnectionStatus
from technique_calendar.core.crypto import DecryptionError, TokenCipher, get_token_cipher
from technique_calendar.core.exceptions import (
    ConnectionDeniedException,
    InvalidStateException,
    NoCalendarFoundException,
    PersistenceFailedException,
    ProviderErrorException,
    ProviderTimeoutException,
    TokenExchangeFailedException,
)
from technique_calendar.core.logging import log_context
from technique_calendar.integrations.calendar import get_provider_client
from technique_calendar.integrations.calendar.base import CalendarProviderClient
from technique_calendar.repositories.calendar_connection_repository import (
    CalendarConnectionRepository,
)
from technique_calendar.repositories.oauth_state_repository import OAuthStateRepository
from technique_calendar.schemas.calendar import (
    CalendarConnectionStatus,
    ConnectionResult,
    ProviderCalendar,
)
from technique_calendar.utils.clock import Clock, ensure_utc, utcnow
from technique_calendar.utils.retry import call_provider

logger = logging.getLogger(__name__)

STATE_SEPARATOR = ":"


def build_state(user_id: str, nonce: str) -> str:
    return f"{user_id}{STATE_SEPARATOR}{nonce}"


def parse_state(state: Optional[str]) -> Tuple[str, str]:
    """Split a callback state into (user_id, nonce)."""
    if not state or STATE_SEPARATOR not in state:
        raise InvalidStateException("Invalid authorization request")
    user_id, nonce = state.rsplit(STATE_SEPARATOR, 1)
    if not user_id or not nonce:
        raise InvalidStateException("Invalid authorization request")
    return user_id, nonce


def select_primary_calendar(calendars: List[ProviderCalendar]) -> ProviderCalendar:
    for calendar in calendars:
        if calendar.primary:
            return calendar
    raise NoCalendarFoundException("No primary calendar was found on this account")


class CalendarConnectionService:
    """OAuth connection lifecycle for calendar providers."""

    def __init__(
        self,
        db: Session,
        cipher: Optional[TokenCipher] = None,
        providers: Optional[Dict[CalendarProvider, CalendarProviderClient]] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.repository = CalendarConnectionRepository(db)
        self.state_repository = OAuthStateRepository(db)
        self.cipher = cipher or get_token_cipher()
        self.providers = providers or {}
        self.clock = clock

    def _client(self, provider: CalendarProvider) -> CalendarProviderClient:
        return self.providers.get(provider) or get_provider_client(provider)

    def begin_connect(self, user_id: str, provider: CalendarProvider) -> str:
        """
        Start a connection attempt and return the provider consent URL.

        A fresh nonce is stored for the user and provider; the state sent to
        the provider is ``"<user_id>:<nonce>"``.
        """
        provider = CalendarProvider(provider)
        now = self.clock()
        nonce = secrets.token_urlsafe(32)

        self.state_repository.purge_expired(now)
        self.state_repository.issue(
            nonce,
            user_id,
            provider.value,
            now + timedelta(seconds=settings.OAUTH_STATE_TTL_SECONDS),
        )

        with log_context(user_id=user_id, provider=provider.value):
            logger.info("Calendar connection started")
        return self._client(provider).authorization_url(build_state(user_id, nonce))

    def complete_connect(
        self,
        state: Optional[str],
        code: Optional[str] = None,
        error: Optional[str] = None,
        provider: Optional[CalendarProvider] = None,
    ) -> ConnectionResult:
        """
        Finish a connection attempt from the provider callback.

        Args:
            state: State echoed back by the provider
            code: Authorization code
            error: Error reported by the provider instead of a code
            provider: Provider the callback was addressed to

        Returns:
            The stored connection's calendar details
        """
        if error:
            logger.info(f"Calendar consent was not granted: {error}")
            self._discard_state(state)
            raise ConnectionDeniedException("Calendar access was not granted")

        user_id, nonce = parse_state(state)
        pending = self.state_repository.consume(nonce)
        now = self.clock()

        if (
            pending is None
            or pending.user_id != user_id
            or ensure_utc(pending.expires_at) <= now
            or (provider is not None and pending.provider != CalendarProvider(provider).value)
        ):
            logger.warning("Rejected calendar callback with unknown or expired state")
            raise InvalidStateException("Invalid authorization request")

        provider = CalendarProvider(pending.provider)
        if not code:
            raise TokenExchangeFailedException("Missing authorization code")

        client = self._client(provider)
        with log_context(user_id=user_id, provider=provider.value):
            # Authorization codes are single use, the exchange is never retried
            tokens = client.exchange_code(code)
            calendars = call_provider(client.list_calendars, tokens.access_token)
            calendar = select_primary_calendar(calendars)

            now = self.clock()
            expires_at = now + timedelta(seconds=tokens.expires_in)
            access_token = self.cipher.encrypt(tokens.access_token)
            refresh_token = (
                self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None
            )
            if refresh_token is None:
                logger.warning("Provider returned no refresh token")

            self.repository.upsert_connection(
                user_id,
                provider.value,
                {
                    "access_token_encrypted": access_token.ciphertext,
                    "access_token_iv": access_token.iv,
                    "refresh_token_encrypted": refresh_token.ciphertext if refresh_token else None,
                    "refresh_token_iv": refresh_token.iv if refresh_token else None,
                    "token_expires_at": expires_at,
                    "scopes": tokens.scope,
                    "calendar_id": calendar.id,
                    "calendar_email": calendar.email,
                    "calendar_name": calendar.name,
                    "connected_at": now,
                    "last_refresh_at": None,
                },
            )
            logger.info("Calendar connected")

        return ConnectionResult(
            user_id=user_id,
            provider=provider,
            calendar_id=calendar.id,
            calendar_name=calendar.name,
            calendar_email=calendar.email,
            token_expires_at=expires_at,
        )

    def _discard_state(self, state: Optional[str]) -> None:
        """Consume the nonce of an abandoned attempt so the status drops back to unconnected."""
        try:
            _, nonce = parse_state(state)
            self.state_repository.consume(nonce)
        except (InvalidStateException, PersistenceFailedException) as e:
            logger.info(f"Abandoned connection state not cleared: {type(e).__name__}")

    def disconnect(self, user_id: str, provider: CalendarProvider) -> None:
        """Revoke the grant where possible and forget the stored credentials."""
        provider = CalendarProvider(provider)
        with log_context(user_id=user_id, provider=provider.value):
            connection = self.repository.get_connection(user_id, provider.value)
            if not connection:
                logger.info("Disconnect requested with no stored connection")
                return

            try:
                # Revoking the refresh token revokes the whole grant
                token = self.cipher.open_stored(
                    connection.refresh_token_encrypted, connection.refresh_token_iv
                ) or self.cipher.open_stored(
                    connection.access_token_encrypted, connection.access_token_iv
                )
                if token:
                    self._client(provider).revoke_token(token)
            except (DecryptionError, ProviderErrorException, ProviderTimeoutException) as e:
                logger.warning(f"Token revocation failed, removing connection anyway: {type(e).__name__}")

            self.repository.delete_connection(user_id, provider.value)
            logger.info("Calendar disconnected")

    def get_status(self, user_id: str, provider: CalendarProvider) -> CalendarConnectionStatus:
        provider = CalendarProvider(provider)
        connection = self.repository.get_connection(user_id, provider.value)
        if connection:
            return self._connected_status(connection)

        status = ConnectionStatus.UNCONNECTED
        if self.state_repository.has_pending(user_id, provider.value, self.clock()):
            status = ConnectionStatus.CONNECTING
        return CalendarConnectionStatus(provider=provider, status=status)

    def list_connections(self, user_id: str) -> List[CalendarConnectionStatus]:
        return [
            self._connected_status(connection)
            for connection in self.repository.list_for_user(user_id)
        ]

    @staticmethod
    def _connected_status(connection) -> CalendarConnectionStatus:
        return CalendarConnectionStatus(
            provider=CalendarProvider(connection.provider),
            status=ConnectionStatus.CONNECTED,
            calendar_id=connection.calendar_id,
            calendar_name=connection.calendar_name,
            calendar_email=connection.calendar_email,
            connected_at=ensure_utc(connection.connected_at),
            token_expires_at=ensure_utc(connection.token_expires_at),
        )
