"""
Database session management utilities.
"""

from typing import Generator

from sqlalchemy.orm import Session

from technique_calendar.db.base import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session scoped to one request.

    Yields:
        SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
