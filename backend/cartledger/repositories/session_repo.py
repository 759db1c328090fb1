import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from cartledger.models.session_entry import SessionEntry


class SessionRepository:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, session_id: str, key: str) -> Optional[SessionEntry]:
        return (
            self.db.query(SessionEntry)
            .filter(SessionEntry.session_id == session_id, SessionEntry.key == key)
            .first()
        )

    def get(self, session_id: str, key: str) -> Optional[Any]:
        rec = self._find(session_id, key)
        if rec is None:
            return None
        # hand out a copy so callers can't mutate the tracked JSON in place
        return copy.deepcopy(rec.value)

    def set(self, session_id: str, key: str, value: Any) -> SessionEntry:
        rec = self._find(session_id, key)
        if rec is None:
            rec = SessionEntry(session_id=session_id, key=key, value=copy.deepcopy(value))
            self.db.add(rec)
        else:
            rec.value = copy.deepcopy(value)
            flag_modified(rec, "value")
        self.db.flush()
        return rec

    def remove(self, session_id: str, key: str) -> None:
        rec = self._find(session_id, key)
        if rec:
            self.db.delete(rec)
            self.db.flush()
        return

    def count(self, session_id: Optional[str] = None) -> int:
        query = self.db.query(SessionEntry)
        if session_id:
            query = query.filter(SessionEntry.session_id == session_id)
        return query.with_entities(func.count()).scalar() or 0

    def purge_expired(self, ttl_seconds: int) -> int:
        """
        Delete entries not written within the last `ttl_seconds`.
        Returns the number of rows removed. The caller owns the commit.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds)
        deleted = (
            self.db.query(SessionEntry)
            .filter(SessionEntry.updated_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted or 0
