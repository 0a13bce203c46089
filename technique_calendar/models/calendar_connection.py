from technique_calendar.db.base import Base
from technique_calendar.utils.clock import utcnow

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint


class CalendarConnection(Base):
    """
    OAuth credentials and selected calendar for one user and provider.

    Tokens are stored encrypted; a token column with a NULL iv holds a value
    written before encryption was introduced.
    """
    __tablename__ = "user_calendar_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_calendar_connection_user_provider"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    provider = Column(String, nullable=False)

    access_token_encrypted = Column(Text, nullable=False)
    access_token_iv = Column(String, nullable=True)
    refresh_token_encrypted = Column(Text, nullable=True)
    refresh_token_iv = Column(String, nullable=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=False)
    scopes = Column(String, nullable=True)

    calendar_id = Column(String, nullable=False)
    calendar_email = Column(String, nullable=True)
    calendar_name = Column(String, nullable=True)

    connected_at = Column(DateTime(timezone=True), default=utcnow)
    last_refresh_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
