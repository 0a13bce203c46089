# technique_calendar/repositories/oauth_state_repository.py
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from technique_calendar.models.oauth_state import OAuthState
from technique_calendar.repositories.base_repository import BaseRepository


class OAuthStateRepository(BaseRepository[OAuthState]):
    """Pending anti-forgery nonces for connection attempts in flight."""

    def __init__(self, db: Session):
        super().__init__(OAuthState, db)

    def issue(self, nonce: str, user_id: str, provider: str, expires_at: datetime) -> OAuthState:
        return self.create(
            {
                "nonce": nonce,
                "user_id": user_id,
                "provider": provider,
                "expires_at": expires_at,
            }
        )

    def consume(self, nonce: str) -> Optional[OAuthState]:
        """
        Claim a nonce exactly once.

        The row is read and then deleted with a conditional delete; only the
        caller whose delete removed it gets the row back.
        """
        state = self.get_by(nonce=nonce)
        if state is None:
            return None
        self.db.expunge(state)

        deleted = self._write(
            lambda: self.db.query(OAuthState)
            .filter(OAuthState.nonce == nonce)
            .delete(synchronize_session=False)
        )
        return state if deleted == 1 else None

    def has_pending(self, user_id: str, provider: str, now: datetime) -> bool:
        return (
            self.db.query(OAuthState)
            .filter(
                OAuthState.user_id == user_id,
                OAuthState.provider == provider,
                OAuthState.expires_at > now,
            )
            .first()
            is not None
        )

    def purge_expired(self, now: datetime) -> int:
        return self._write(
            lambda: self.db.query(OAuthState)
            .filter(OAuthState.expires_at <= now)
            .delete(synchronize_session=False)
        )
