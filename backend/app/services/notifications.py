"""Notification delivery sinks and the in-app notification inbox."""
import logging
from datetime import datetime
from typing import Callable, Iterable, Protocol

from sqlalchemy.orm import Session

from app.models.assignment import Assignment
from app.models.notification import Notification
from app.services.deadlines import to_storage, utcnow

logger = logging.getLogger(__name__)

PHASE_TITLES = {
    "green": "Start Working: {subject}",
    "yellow": "Deadline Approaching: {subject}",
    "red": "URGENT: {subject} Due Soon!",
}

PHASE_MESSAGES = {
    "green": 'Start working on "{task}" - Green phase begins now!',
    "yellow": '"{task}" is entering yellow phase. Don\'t delay!',
    "red": '"{task}" is now in RED phase - complete immediately!',
}

PRE_ENTRY_TITLES = {
    "green": "{subject} entering green phase soon",
    "yellow": "{subject} entering yellow phase soon",
    "red": "{subject} entering red phase soon",
}

PRE_ENTRY_MESSAGES = {
    "green": '"{task}" will enter green phase in 1 minute.',
    "yellow": '"{task}" will enter yellow phase in 1 minute!',
    "red": '"{task}" will enter red phase in 1 minute - deadline approaching!',
}


def render_message(phase: str, subject: str, task: str, pre: bool = False) -> tuple[str, str]:
    """Title and body for a phase notification."""
    titles = PRE_ENTRY_TITLES if pre else PHASE_TITLES
    messages = PRE_ENTRY_MESSAGES if pre else PHASE_MESSAGES
    return (
        titles[phase].format(subject=subject),
        messages[phase].format(task=task),
    )


class NotificationSink(Protocol):
    """Delivers a notification somewhere; the alerting core knows nothing else."""

    def send(self, title: str, body: str, urgency: str, dedup_key: str, event=None) -> None:
        ...


class LoggingSink:
    """Writes every notification to the application log."""

    def __init__(self, logger_name: str = "phaseline.alerts") -> None:
        self.logger = logging.getLogger(logger_name)

    def send(self, title: str, body: str, urgency: str, dedup_key: str, event=None) -> None:
        level = logging.WARNING if urgency == "urgent" else logging.INFO
        self.logger.log(level, f"[{urgency}] {title} - {body} ({dedup_key})")


class DatabaseSink:
    """Stores notifications as inbox rows for the assignment's owner."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    def send(self, title: str, body: str, urgency: str, dedup_key: str, event=None) -> None:
        if event is None:
            raise ValueError("DatabaseSink needs the dispatch event to find the owner")

        db = self.session_factory()
        try:
            db.add(Notification(
                user_id=event.owner_id,
                assignment_id=event.assignment_id,
                phase=event.phase,
                urgency=urgency,
                pre=1 if event.pre else 0,
                dedup_key=dedup_key,
                title=title,
                message=body,
            ))
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class CompositeSink:
    """Fans a notification out to several sinks.

    One sink failing (permission denied, database locked) does not stop the
    others from delivering.
    """

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks = list(sinks)

    def send(self, title: str, body: str, urgency: str, dedup_key: str, event=None) -> None:
        for sink in self.sinks:
            try:
                sink.send(title, body, urgency, dedup_key, event=event)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed for {dedup_key}: {e}")


def list_notifications(
    db: Session,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    """Newest notifications for a user."""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read == 0)
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def mark_notification_read(db: Session, user_id: str, notification_id: str) -> Notification | None:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == user_id,
    ).first()
    if not notification:
        return None

    notification.read = 1
    notification.read_at = to_storage(utcnow())
    db.commit()
    return notification


def mark_all_read(db: Session, user_id: str, now: datetime | None = None) -> int:
    read_at = to_storage(now or utcnow())
    updated = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.read == 0,
    ).update({"read": 1, "read_at": read_at}, synchronize_session=False)
    db.commit()
    return updated


def clear_notifications(db: Session, user_id: str, scheduler) -> dict:
    """Delete a user's inbox and forget which of their phases already fired.

    Only the user's own assignments are reset in the scheduler, so phases that
    are still inside their entry window may fire again on the next tick.
    """
    deleted = db.query(Notification).filter(
        Notification.user_id == user_id,
    ).delete(synchronize_session=False)
    db.commit()

    assignment_ids = [
        row.id for row in db.query(Assignment.id).filter(Assignment.owner_id == user_id).all()
    ]
    reset = scheduler.clear(assignment_ids)
    logger.info(f"Cleared {deleted} notifications and {reset} fired alerts for user {user_id}")
    return {"deleted": deleted, "reset": reset}
