# technique_calendar/repositories/base_repository.py
import logging
from typing import TypeVar, Generic, Type, Optional, Any, Dict, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from technique_calendar.core.exceptions import PersistenceFailedException
from technique_calendar.db.base import Base
from technique_calendar.utils.retry import db_write_retrying

ModelType = TypeVar("ModelType", bound=Base)  # type: ignore
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with common query and write operations.
    Extend this class for specific models.
    """
    def __init__(self, model: Type[ModelType], db: Session):
        self.model = model
        self.db = db

    def get_by(self, **kwargs) -> Optional[ModelType]:
        """Get a single record by arbitrary filters."""
        query = self.db.query(self.model)
        for key, value in kwargs.items():
            query = query.filter(getattr(self.model, key) == value)
        return query.first()

    def create(self, obj_in: Dict[str, Any]) -> ModelType:
        """Create a new record."""
        def _insert():
            db_obj = self.model(**obj_in)
            self.db.add(db_obj)
            return db_obj

        db_obj = self._write(_insert)
        self.db.refresh(db_obj)
        return db_obj

    def _write(self, operation: Callable[[], T]) -> T:
        """
        Run ``operation`` and commit. A failed attempt is rolled back and the
        whole operation retried once before PersistenceFailedException.
        """
        try:
            for attempt in db_write_retrying():
                with attempt:
                    try:
                        result = operation()
                        self.db.commit()
                    except SQLAlchemyError:
                        self.db.rollback()
                        raise
        except SQLAlchemyError as e:
            logger.error(
                f"Database write on {self.model.__tablename__} failed: {type(e).__name__}"
            )
            raise PersistenceFailedException(
                "Could not save calendar data, please try again"
            ) from e
        return result
