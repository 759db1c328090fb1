from datetime import datetime, timezone

from cartledger.db import Base
from sqlalchemy import JSON, Column, DateTime, Integer, String, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionEntry(Base):
    __tablename__ = "session_entries"
    __table_args__ = (
        UniqueConstraint("session_id", "key", name="uq_session_entries_session_key"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), nullable=False, index=True)
    key = Column(String(128), nullable=False)
    value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<SessionEntry session_id={self.session_id} key={self.key}>"
