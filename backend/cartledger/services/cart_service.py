import uuid
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from cartledger.adapters.session_store import DatabaseSessionStore
from cartledger.services.cart_ledger import CartConfig, CartLedger, cart_config_from_settings


class CartService:
    """Builds request-scoped ledgers on top of the database session store."""

    def __init__(self, db: Session, config: Optional[CartConfig] = None):
        self.db = db
        self.config = config or cart_config_from_settings()

    def resolve_session_id(self, session_id: Optional[str] = None) -> str:
        # cookie values are untrusted; anything not shaped like our ids gets a fresh one
        if session_id and len(session_id) == 32 and session_id.isalnum():
            return session_id
        return uuid.uuid4().hex

    def open_ledger(self, session_id: str) -> CartLedger:
        return CartLedger(DatabaseSessionStore(self.db, session_id), self.config)

    def summary(self, ledger: CartLedger, rowid: Optional[str] = None) -> Dict[str, Any]:
        return {
            "rowid": rowid,
            "cart_total": ledger.total(),
            "total_items": ledger.total_items(),
        }
