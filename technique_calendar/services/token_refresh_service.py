import logging
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from technique_calendar.core.config import settings
from technique_calendar.core.constants import CalendarProvider
from technique_calendar.core.crypto import DecryptionError, TokenCipher, get_token_cipher
from technique_calendar.core.exceptions import (
    NoConnectionException,
    PersistenceFailedException,
    ReauthRequiredException,
)
from technique_calendar.core.logging import log_context
from technique_calendar.integrations.calendar import get_provider_client
from technique_calendar.integrations.calendar.base import CalendarProviderClient
from technique_calendar.models.calendar_connection import CalendarConnection
from technique_calendar.repositories.calendar_connection_repository import (
    CalendarConnectionRepository,
)
from technique_calendar.utils.clock import Clock, ensure_utc, utcnow
from technique_calendar.utils.retry import call_provider

logger = logging.getLogger(__name__)


class TokenRefreshService:
    """
    Hands out usable access tokens, refreshing them lazily.

    A token is served from the store while it has more than the refresh
    margin left; otherwise it is refreshed once against the provider and the
    new encrypted token is written back.
    """

    def __init__(
        self,
        db: Session,
        cipher: Optional[TokenCipher] = None,
        providers: Optional[Dict[CalendarProvider, CalendarProviderClient]] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.repository = CalendarConnectionRepository(db)
        self.cipher = cipher or get_token_cipher()
        self.providers = providers or {}
        self.clock = clock

    def _client(self, provider: CalendarProvider) -> CalendarProviderClient:
        return self.providers.get(provider) or get_provider_client(provider)

    def get_valid_access_token(self, user_id: str, provider: CalendarProvider) -> str:
        provider = CalendarProvider(provider)
        connection = self.repository.get_connection(user_id, provider.value)
        if not connection:
            raise NoConnectionException(
                f"No {provider.value} calendar is connected"
            )

        now = self.clock()
        margin = timedelta(seconds=settings.TOKEN_REFRESH_MARGIN_SECONDS)
        expires_at = ensure_utc(connection.token_expires_at)

        with log_context(user_id=user_id, provider=provider.value):
            if now < expires_at - margin:
                return self._stored_access_token(connection, expires_at)
            return self._refresh(connection, provider, now)

    def _stored_access_token(self, connection: CalendarConnection, expires_at) -> str:
        try:
            access_token = self.cipher.open_stored(
                connection.access_token_encrypted, connection.access_token_iv
            )
        except DecryptionError as e:
            logger.error(f"Stored access token could not be decrypted: {e}")
            raise ReauthRequiredException(
                "Your calendar connection needs to be renewed, please reconnect"
            ) from e

        if connection.access_token_iv is None:
            self._seal_legacy_token(connection, access_token, expires_at)
        return access_token

    def _seal_legacy_token(self, connection: CalendarConnection, access_token: str, expires_at) -> None:
        """Re-store a plaintext token encrypted. Failure leaves the row readable as before."""
        try:
            self.repository.update_access_token(
                connection.user_id,
                connection.provider,
                self.cipher.encrypt(access_token),
                expires_at,
            )
            logger.info("Encrypted a legacy plaintext access token")
        except PersistenceFailedException:
            logger.warning("Could not encrypt legacy access token, will retry on next read")

    def _refresh(
        self, connection: CalendarConnection, provider: CalendarProvider, now
    ) -> str:
        try:
            refresh_token = self.cipher.open_stored(
                connection.refresh_token_encrypted, connection.refresh_token_iv
            )
        except DecryptionError as e:
            logger.error(f"Stored refresh token could not be decrypted: {e}")
            raise ReauthRequiredException(
                "Your calendar connection needs to be renewed, please reconnect"
            ) from e

        if not refresh_token:
            logger.warning("Access token expired and no refresh token is stored")
            raise ReauthRequiredException(
                "Your calendar connection has expired, please reconnect"
            )

        tokens = call_provider(self._client(provider).refresh_token, refresh_token)

        new_refresh_token = tokens.refresh_token
        if new_refresh_token is None and connection.refresh_token_iv is None:
            # Legacy plaintext refresh token, store it sealed
            new_refresh_token = refresh_token

        expires_at = now + timedelta(seconds=tokens.expires_in)
        self.repository.update_access_token(
            connection.user_id,
            connection.provider,
            self.cipher.encrypt(tokens.access_token),
            expires_at,
            refreshed_at=now,
            refresh_token=(
                self.cipher.encrypt(new_refresh_token) if new_refresh_token else None
            ),
        )
        logger.info(f"Refreshed {provider.value} access token, valid until {expires_at.isoformat()}")
        return tokens.access_token
