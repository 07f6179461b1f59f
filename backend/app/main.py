"""Phaseline - Three-stage deadline tracker API."""
import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    """Send application logs to stdout unless logging is already configured."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())


def build_alert_scheduler(app_settings: Settings, session_factory):
    """Wire the alert scheduler to the database and the notification sinks."""
    from app.services.alert_scheduler import AlertScheduler
    from app.services.assignments import load_alert_targets, mark_notified
    from app.services.notification_tracker import NotificationTracker
    from app.services.notifications import CompositeSink, DatabaseSink, LoggingSink

    def source():
        db = session_factory()
        try:
            return load_alert_targets(db)
        finally:
            db.close()

    def on_notified(assignment_id: str) -> None:
        db = session_factory()
        try:
            mark_notified(db, assignment_id)
        finally:
            db.close()

    tracker = NotificationTracker(
        entry_window=timedelta(seconds=app_settings.phase_entry_window_seconds),
        pre_entry_lead=timedelta(seconds=app_settings.pre_entry_lead_seconds),
    )
    return AlertScheduler(
        source=source,
        sink=CompositeSink([DatabaseSink(session_factory), LoggingSink()]),
        tracker=tracker,
        mode=app_settings.alert_mode,
        on_notified=on_notified,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    setup_logging(settings.log_level)

    # Startup: Create tables and start alerting
    from app.database import Base, engine, SessionLocal

    # Import all models so they're registered with Base
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    scheduler = build_alert_scheduler(settings, SessionLocal)
    app.state.alert_scheduler = scheduler
    if settings.alert_scheduler_enabled:
        scheduler.start(settings.alert_poll_interval_seconds)
    else:
        logger.info("Alert scheduler disabled")

    yield

    # Shutdown: no ticks after this point
    scheduler.stop()


app = FastAPI(
    title=settings.app_name,
    description="Track assignments through green, yellow and red deadlines",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    scheduler = getattr(app.state, "alert_scheduler", None)
    return {
        "status": "healthy",
        "app": settings.app_name,
        "alerts_running": bool(scheduler and scheduler.running),
    }


# Import and include routers
from app.api import assignments, auth, notifications  # noqa: E402

app.include_router(auth.router, prefix="/api")
app.include_router(assignments.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
