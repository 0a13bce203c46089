from technique_calendar.db.base import Base

from sqlalchemy import Boolean, Column, String, Text


class Resource(Base):
    """Surgical technique resource, owned by the resource library and only read here."""
    __tablename__ = "resources"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    url = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    is_published = Column(Boolean, default=True, nullable=False)
