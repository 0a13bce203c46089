from technique_calendar.db.base import Base
from technique_calendar.utils.clock import utcnow

from sqlalchemy import Column, DateTime, String


class OAuthState(Base):
    """Anti-forgery nonce issued when a connection attempt starts."""
    __tablename__ = "calendar_oauth_states"

    nonce = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    provider = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
