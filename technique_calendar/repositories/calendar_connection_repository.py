# technique_calendar/repositories/calendar_connection_repository.py
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from technique_calendar.models.calendar_connection import CalendarConnection
from technique_calendar.repositories.base_repository import BaseRepository
from technique_calendar.schemas.calendar import EncryptedSecret
from technique_calendar.utils.clock import utcnow

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CalendarConnectionRepository(BaseRepository[CalendarConnection]):
    """Credential store for calendar connections, one row per (user, provider)."""

    def __init__(self, db: Session):
        super().__init__(CalendarConnection, db)

    def get_connection(self, user_id: str, provider: str) -> Optional[CalendarConnection]:
        return self.get_by(user_id=user_id, provider=provider)

    def list_for_user(self, user_id: str) -> List[CalendarConnection]:
        return (
            self.db.query(CalendarConnection)
            .filter(CalendarConnection.user_id == user_id)
            .order_by(CalendarConnection.connected_at.desc())
            .all()
        )

    def upsert_connection(
        self, user_id: str, provider: str, fields: Dict[str, Any]
    ) -> CalendarConnection:
        """Insert the connection or overwrite every field of the existing one."""
        values = {**fields, "user_id": user_id, "provider": provider}
        values.setdefault("connected_at", utcnow())
        values.setdefault("updated_at", utcnow())

        insert = _UPSERT_DIALECTS.get(self.db.get_bind().dialect.name)
        if insert is None:
            self._write(lambda: self._merge_connection(user_id, provider, values))
        else:
            stmt = insert(CalendarConnection).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "provider"],
                set_={key: stmt.excluded[key] for key in values},
            )
            self._write(lambda: self.db.execute(stmt))

        return self.get_connection(user_id, provider)

    def _merge_connection(self, user_id: str, provider: str, values: Dict[str, Any]) -> None:
        existing = self.get_connection(user_id, provider)
        if existing is None:
            self.db.add(CalendarConnection(**values))
            return
        for key, value in values.items():
            setattr(existing, key, value)

    def update_access_token(
        self,
        user_id: str,
        provider: str,
        access_token: EncryptedSecret,
        expires_at: datetime,
        refreshed_at: Optional[datetime] = None,
        refresh_token: Optional[EncryptedSecret] = None,
    ) -> int:
        """Overwrite the stored access token; concurrent writers race and the last one wins."""
        values = {
            CalendarConnection.access_token_encrypted: access_token.ciphertext,
            CalendarConnection.access_token_iv: access_token.iv,
            CalendarConnection.token_expires_at: expires_at,
            CalendarConnection.updated_at: utcnow(),
        }
        if refreshed_at is not None:
            values[CalendarConnection.last_refresh_at] = refreshed_at
        if refresh_token is not None:
            values[CalendarConnection.refresh_token_encrypted] = refresh_token.ciphertext
            values[CalendarConnection.refresh_token_iv] = refresh_token.iv

        return self._write(
            lambda: self.db.query(CalendarConnection)
            .filter(
                CalendarConnection.user_id == user_id,
                CalendarConnection.provider == provider,
            )
            .update(values, synchronize_session=False)
        )

    def delete_connection(self, user_id: str, provider: str) -> bool:
        """Remove the connection. Deleting a missing row is not an error."""
        deleted = self._write(
            lambda: self.db.query(CalendarConnection)
            .filter(
                CalendarConnection.user_id == user_id,
                CalendarConnection.provider == provider,
            )
            .delete(synchronize_session=False)
        )
        self.db.expire_all()
        return deleted > 0
