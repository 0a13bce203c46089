# technique_calendar/repositories/resource_repository.py
from typing import Optional

from sqlalchemy.orm import Session

from technique_calendar.models.resource import Resource
from technique_calendar.repositories.base_repository import BaseRepository


class ResourceRepository(BaseRepository[Resource]):
    def __init__(self, db: Session):
        super().__init__(Resource, db)

    def get_visible(self, resource_id: str) -> Optional[Resource]:
        """A resource any signed-in user may schedule."""
        return self.get_by(id=resource_id, is_published=True)
