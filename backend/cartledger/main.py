import os
from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cartledger.api.health import router as health_router
from cartledger.api.routes_cart import router as cart_router
from cartledger.config import settings
from cartledger.db import SessionLocal, init_db
from cartledger.services.session_service import SessionMaintenanceService
from cartledger.utils.log import get_logger

log = get_logger("app")


def purge_sessions_job():
    db = SessionLocal()
    try:
        SessionMaintenanceService(db).purge_expired()
    except Exception:
        log.exception("Session purge failed")
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup; RESET_DB=1 forces a clean schema
    init_db(reset=os.environ.get("RESET_DB", "0") in ("1", "true", "True"))

    # scheduler for dropping idle carts
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        purge_sessions_job,
        "interval",
        seconds=settings.SESSION_PURGE_INTERVAL_SECONDS,
        id="purge_sessions",
    )
    scheduler.start()

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)


app = FastAPI(title="Cart Ledger - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(cart_router, tags=["cart"])
