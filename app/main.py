"""OpenProposal signing service – FastAPI application."""
# Load .env before any app code that might read config
from dotenv import load_dotenv
from pathlib import Path
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import get_settings
from app.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from app.models import User, Document, Recipient, DocumentEvent, Payment  # noqa: F401
from app.routers import documents, sign
from app.services import ledger, tasks

log = logging.getLogger("uvicorn.error")

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sign.router)
app.include_router(documents.router)

_scheduler = None


@app.on_event("startup")
def startup():
    global _scheduler
    if not (settings.mailgun_api_key and settings.mailgun_domain):
        log.info("[Mailgun] Not configured - notification emails will be skipped")
    if not ledger.is_ledger_configured():
        log.info("Blockchain not configured - completed documents will not be anchored")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)

    # Reconciler: re-queue completed documents whose anchoring never landed
    if settings.reconciler_enabled:
        from apscheduler.schedulers.background import BackgroundScheduler
        from app.services.anchoring import reconcile_pending_anchors

        _scheduler = BackgroundScheduler()
        _scheduler.add_job(
            reconcile_pending_anchors,
            "interval",
            minutes=max(1, settings.reconciler_interval_minutes),
            id="anchor_reconciler",
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()


@app.on_event("shutdown")
def shutdown():
    if _scheduler is not None:
        _scheduler.shutdown(wait=False)
    tasks.shutdown(wait=False)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}
