from technique_calendar.db.base import Base
from technique_calendar.utils.clock import utcnow

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint


class ScheduledEvent(Base):
    """
    Local record of an event created in a provider calendar.

    Not tied to the connection row: a record left behind by a disconnect is
    ignored when listing and removed on delete.
    """
    __tablename__ = "calendar_events"
    __table_args__ = (
        UniqueConstraint("provider", "external_event_id", name="uq_calendar_event_provider_external_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    resource_id = Column(String, nullable=False, index=True)
    provider = Column(String, nullable=False)
    external_event_id = Column(String, nullable=False)
    calendar_id = Column(String, nullable=True)

    event_title = Column(String, nullable=False)
    event_start = Column(DateTime(timezone=True), nullable=False, index=True)
    event_end = Column(DateTime(timezone=True), nullable=False)
    event_timezone = Column(String, nullable=True)
    event_notes = Column(Text, nullable=True)
    event_url = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
