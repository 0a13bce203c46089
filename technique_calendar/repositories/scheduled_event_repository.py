# technique_calendar/repositories/scheduled_event_repository.py
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from technique_calendar.models.scheduled_event import ScheduledEvent
from technique_calendar.repositories.base_repository import BaseRepository


class ScheduledEventRepository(BaseRepository[ScheduledEvent]):
    def __init__(self, db: Session):
        super().__init__(ScheduledEvent, db)

    def record_event(self, fields: Dict[str, Any]) -> ScheduledEvent:
        return self.create(fields)

    def get_for_user(
        self, user_id: str, provider: str, external_event_id: str
    ) -> Optional[ScheduledEvent]:
        return self.get_by(
            user_id=user_id, provider=provider, external_event_id=external_event_id
        )

    def delete_event(self, user_id: str, provider: str, external_event_id: str) -> bool:
        """Remove the tracked event if present."""
        deleted = self._write(
            lambda: self.db.query(ScheduledEvent)
            .filter(
                ScheduledEvent.user_id == user_id,
                ScheduledEvent.provider == provider,
                ScheduledEvent.external_event_id == external_event_id,
            )
            .delete(synchronize_session=False)
        )
        self.db.expire_all()
        return deleted > 0

    def list_upcoming(
        self,
        user_id: str,
        now: datetime,
        providers: Iterable[str],
        resource_id: Optional[str] = None,
    ) -> List[ScheduledEvent]:
        """Events starting at or after ``now`` for the given providers, soonest first."""
        providers = list(providers)
        if not providers:
            return []
        query = self.db.query(ScheduledEvent).filter(
            ScheduledEvent.user_id == user_id,
            ScheduledEvent.provider.in_(providers),
            ScheduledEvent.event_start >= now,
        )
        if resource_id is not None:
            query = query.filter(ScheduledEvent.resource_id == resource_id)
        return query.order_by(ScheduledEvent.event_start.asc()).all()
