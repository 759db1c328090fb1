import os
import tempfile
from typing import Optional

from filelock import FileLock, Timeout
from sqlalchemy.orm import Session

from cartledger.config import settings
from cartledger.repositories.session_repo import SessionRepository
from cartledger.utils.log import get_logger

log = get_logger("session")


def _lock_path() -> str:
    locks_dir = os.path.join(tempfile.gettempdir(), "cartledger_locks")
    os.makedirs(locks_dir, exist_ok=True)
    return os.path.join(locks_dir, "purge_sessions.lock")


class SessionMaintenanceService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = SessionRepository(db)

    def purge_expired(self, ttl_seconds: Optional[int] = None, lock_timeout: float = 0) -> int:
        """
        Remove session entries idle for longer than ttl_seconds.

        Several worker processes may run the scheduler; the file lock makes
        sure only one of them purges at a time. Returns the number of entries
        removed (0 when another process holds the lock).
        """
        if ttl_seconds is None:
            ttl_seconds = settings.SESSION_TTL_SECONDS
        lock = FileLock(_lock_path())
        try:
            with lock.acquire(timeout=lock_timeout):
                removed = self.repo.purge_expired(ttl_seconds)
                self.db.commit()
        except Timeout:
            log.debug("Purge already running in another process, skipping")
            return 0
        if removed:
            log.info("Purged %d expired session entr%s", removed, "y" if removed == 1 else "ies")
        return removed
