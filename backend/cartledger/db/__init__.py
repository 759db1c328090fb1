import importlib
import os
import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from cartledger.config import settings
from cartledger.utils.log import get_logger

log = get_logger("db")

DATABASE_URL = settings.DATABASE_URL
engine = create_engine(DATABASE_URL, future=True, echo=False)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# model modules that must be imported so Base.metadata knows their tables
MODEL_MODULES = [
    "cartledger.models.session_entry",
]


def _running_under_pytest() -> bool:
    if any("pytest" in os.path.basename(a).lower() for a in sys.argv):
        return True
    return any(k.upper().startswith("PYTEST") for k in os.environ.keys())


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    Behavior:
      - If reset is passed, or RESET_DB env var is set to 1/true/yes, drop & recreate tables.
      - If we detect pytest running, drop & recreate tables so tests run against a clean DB.
      - Otherwise, leave existing tables in place.
    """
    env_reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or env_reset or _running_under_pytest():
        log.info("Resetting database tables")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized (%s)", DATABASE_URL)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
