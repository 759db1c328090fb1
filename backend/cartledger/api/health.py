from cartledger.db import SessionLocal, engine
from cartledger.repositories.session_repo import SessionRepository
from fastapi import APIRouter
from sqlalchemy import text

router = APIRouter()


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    sessions = None
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False
    if db_ok:
        db = SessionLocal()
        try:
            sessions = SessionRepository(db).count()
        except Exception:
            # table missing until init_db() has run
            db_ok = False
        finally:
            db.close()

    return {
        "status": "ok" if db_ok else "degraded",
        "db": db_ok,
        "session_entries": sessions,
    }
