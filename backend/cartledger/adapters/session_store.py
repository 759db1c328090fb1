import copy
from typing import Any, Dict, Optional, Protocol

from sqlalchemy.orm import Session

from cartledger.repositories.session_repo import SessionRepository


class SessionStore(Protocol):
    """Key/value storage scoped to a single client session."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemorySessionStore:
    """
    Dict-backed session store. Values are deep-copied on the way in and out,
    so it behaves like a serializing backend.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Optional[Any]:
        if key not in self.data:
            return None
        return copy.deepcopy(self.data[key])

    def set(self, key: str, value: Any) -> None:
        self.data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class DatabaseSessionStore:
    """
    Session store backed by the session_entries table, bound to one session id.
    Each write is committed immediately so it survives the request.
    """

    def __init__(self, db: Session, session_id: str):
        self.db = db
        self.session_id = session_id
        self.repo = SessionRepository(db)

    def get(self, key: str) -> Optional[Any]:
        return self.repo.get(self.session_id, key)

    def set(self, key: str, value: Any) -> None:
        self.repo.set(self.session_id, key, value)
        self.db.commit()

    def remove(self, key: str) -> None:
        self.repo.remove(self.session_id, key)
        self.db.commit()
