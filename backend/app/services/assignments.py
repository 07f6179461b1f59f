"""Owner-scoped persistence for assignments.

Every query filters on ``owner_id``. A record owned by someone else is
reported exactly like a missing one so its existence never leaks.
"""
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from functools import cached_property
from typing import Any, Iterable

from sqlalchemy import or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.errors import NotFoundError, TransientIOError, ValidationError
from app.models.assignment import Assignment
from app.services.deadlines import DeadlineSet, to_storage, utcnow, validate_deadlines
from app.services.phases import STATUS_COMPLETED, STATUS_UPCOMING, STATUSES

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high")
SUBJECT_MAX_LENGTH = 100
TASK_MAX_LENGTH = 1000
TAG_MAX_LENGTH = 30
DEFAULT_LIST_LIMIT = 50


@dataclass
class AlertTarget:
    """Detached snapshot of an assignment for the alert scheduler.

    Deadlines are parsed on first access so a malformed row fails while
    that row is evaluated, not while the whole batch is loaded.
    """

    id: str
    owner_id: str
    subject: str
    task: str
    status: str
    notified: bool
    raw_deadlines: tuple[str, str, str] = field(repr=False)

    @cached_property
    def deadlines(self) -> DeadlineSet:
        return DeadlineSet.from_storage(*self.raw_deadlines)

    @classmethod
    def from_model(cls, assignment: Assignment) -> "AlertTarget":
        return cls(
            id=assignment.id,
            owner_id=assignment.owner_id,
            subject=assignment.subject,
            task=assignment.task,
            status=assignment.status,
            notified=bool(assignment.notified),
            raw_deadlines=(assignment.green_at, assignment.yellow_at, assignment.red_at),
        )


@contextmanager
def _translate_io_errors(db: Session, action: str):
    try:
        yield
    except OperationalError as exc:
        db.rollback()
        logger.error(f"Database failure while trying to {action}: {exc}")
        raise TransientIOError(f"Could not {action}, please retry") from exc


def _clean_text(value: Any, name: str, max_length: int) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError(f"{name} is required")
    if len(text) > max_length:
        raise ValidationError(f"{name} cannot exceed {max_length} characters")
    return text


def _clean_tags(tags: Iterable[str] | None) -> str:
    cleaned = []
    for tag in tags or []:
        tag = tag.strip()
        if len(tag) > TAG_MAX_LENGTH:
            raise ValidationError(f"Tag cannot exceed {TAG_MAX_LENGTH} characters")
        if tag:
            cleaned.append(tag)
    return json.dumps(cleaned)


def _check_choice(value: str, choices: tuple, name: str) -> str:
    if value not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
    return value


def _apply_status(assignment: Assignment, status: str, now: datetime) -> None:
    """Set status, stamping completed_at only on the transition into completed."""
    _check_choice(status, STATUSES, "Status")
    if status == STATUS_COMPLETED:
        if assignment.status != STATUS_COMPLETED or not assignment.completed_at:
            assignment.completed_at = to_storage(now)
    else:
        assignment.completed_at = None
    assignment.status = status


def _require_deadlines(deadlines: dict | None) -> dict:
    deadlines = deadlines or {}
    if not all(deadlines.get(phase) for phase in ("green", "yellow", "red")):
        raise ValidationError("All three deadlines (green, yellow, red) are required")
    return deadlines


def create_assignment(
    db: Session,
    owner_id: str,
    data: dict,
    now: datetime | None = None,
) -> Assignment:
    """Create an assignment; the red deadline must not already be past."""
    now = now or utcnow()
    deadlines = _require_deadlines(data.get("deadlines"))
    deadline_set = validate_deadlines(
        deadlines["green"], deadlines["yellow"], deadlines["red"], now, creating=True,
    )

    assignment = Assignment(
        owner_id=owner_id,
        subject=_clean_text(data.get("subject"), "Subject", SUBJECT_MAX_LENGTH),
        task=_clean_text(data.get("task"), "Task description", TASK_MAX_LENGTH),
        priority=_check_choice(data.get("priority") or "medium", PRIORITIES, "Priority"),
        tags=_clean_tags(data.get("tags")),
        status=STATUS_UPCOMING,
        notified=0,
    )
    assignment.deadlines = deadline_set
    _apply_status(assignment, data.get("status") or STATUS_UPCOMING, now)

    with _translate_io_errors(db, "create assignment"):
        db.add(assignment)
        db.commit()
        db.refresh(assignment)

    logger.info(f"Created assignment {assignment.id} for owner {owner_id}")
    return assignment


def get_assignment(db: Session, owner_id: str, assignment_id: str) -> Assignment:
    with _translate_io_errors(db, "load assignment"):
        assignment = db.query(Assignment).filter(
            Assignment.id == assignment_id,
            Assignment.owner_id == owner_id,
        ).first()

    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def update_assignment(
    db: Session,
    owner_id: str,
    assignment_id: str,
    fields: dict,
    now: datetime | None = None,
) -> Assignment:
    """Apply a partial update.

    Deadlines may be given partially; missing ones keep their current value
    and the merged set is checked for ordering only.
    """
    now = now or utcnow()
    assignment = get_assignment(db, owner_id, assignment_id)

    if fields.get("deadlines"):
        current = assignment.deadlines.as_dict()
        merged = {phase: fields["deadlines"].get(phase) or current[phase] for phase in current}
        assignment.deadlines = validate_deadlines(
            merged["green"], merged["yellow"], merged["red"], creating=False,
        )

    if fields.get("subject") is not None:
        assignment.subject = _clean_text(fields["subject"], "Subject", SUBJECT_MAX_LENGTH)
    if fields.get("task") is not None:
        assignment.task = _clean_text(fields["task"], "Task description", TASK_MAX_LENGTH)
    if fields.get("priority") is not None:
        assignment.priority = _check_choice(fields["priority"], PRIORITIES, "Priority")
    if fields.get("tags") is not None:
        assignment.tags = _clean_tags(fields["tags"])
    if fields.get("notified") is not None:
        assignment.notified = 1 if fields["notified"] else 0
    if fields.get("status") is not None:
        _apply_status(assignment, fields["status"], now)

    with _translate_io_errors(db, "update assignment"):
        db.commit()
        db.refresh(assignment)
    return assignment


def replace_assignment(
    db: Session,
    owner_id: str,
    assignment_id: str,
    data: dict,
    now: datetime | None = None,
) -> Assignment:
    """Overwrite every editable field; deadlines are checked for ordering only."""
    now = now or utcnow()
    assignment = get_assignment(db, owner_id, assignment_id)

    deadlines = _require_deadlines(data.get("deadlines"))
    deadline_set = validate_deadlines(
        deadlines["green"], deadlines["yellow"], deadlines["red"], creating=False,
    )
    subject = _clean_text(data.get("subject"), "Subject", SUBJECT_MAX_LENGTH)
    task = _clean_text(data.get("task"), "Task description", TASK_MAX_LENGTH)
    priority = _check_choice(data.get("priority") or "medium", PRIORITIES, "Priority")
    tags = _clean_tags(data.get("tags"))

    assignment.deadlines = deadline_set
    assignment.subject = subject
    assignment.task = task
    assignment.priority = priority
    assignment.tags = tags
    _apply_status(assignment, data.get("status") or STATUS_UPCOMING, now)

    with _translate_io_errors(db, "update assignment"):
        db.commit()
        db.refresh(assignment)
    return assignment


def delete_assignment(db: Session, owner_id: str, assignment_id: str) -> None:
    assignment = get_assignment(db, owner_id, assignment_id)
    with _translate_io_errors(db, "delete assignment"):
        db.delete(assignment)
        db.commit()
    logger.info(f"Deleted assignment {assignment_id} for owner {owner_id}")


def list_assignments(
    db: Session,
    owner_id: str,
    status: str | None = None,
    priority: str | None = None,
    overdue: bool = False,
    upcoming_hours: int | None = None,
    search: str | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
    skip: int = 0,
    now: datetime | None = None,
) -> list[Assignment]:
    """List an owner's assignments, soonest red deadline first.

    ``overdue`` keeps unfinished assignments whose red deadline has passed;
    ``upcoming_hours`` keeps unfinished ones due within that many hours.
    """
    now = now or utcnow()
    now_key = to_storage(now)

    query = db.query(Assignment).filter(Assignment.owner_id == owner_id)
    if status:
        query = query.filter(Assignment.status == status)
    if priority:
        query = query.filter(Assignment.priority == priority)
    if overdue:
        query = query.filter(
            Assignment.status != STATUS_COMPLETED,
            Assignment.red_at < now_key,
        )
    if upcoming_hours:
        horizon = to_storage(now + timedelta(hours=upcoming_hours))
        query = query.filter(
            Assignment.status != STATUS_COMPLETED,
            Assignment.red_at >= now_key,
            Assignment.red_at <= horizon,
        )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Assignment.subject.ilike(pattern), Assignment.task.ilike(pattern)))

    with _translate_io_errors(db, "list assignments"):
        return query.order_by(Assignment.red_at.asc()).offset(skip).limit(limit).all()


def list_pending_assignments(db: Session, owner_id: str) -> list[Assignment]:
    """Every unfinished assignment of an owner, with no page limit."""
    with _translate_io_errors(db, "list assignments"):
        return db.query(Assignment).filter(
            Assignment.owner_id == owner_id,
            Assignment.status != STATUS_COMPLETED,
        ).order_by(Assignment.red_at.asc()).all()


def bulk_complete(db: Session, owner_id: str, ids: list[str], now: datetime | None = None) -> int:
    """Complete the owner's assignments among ``ids``; returns how many changed.

    Ids owned by others, unknown ids and already completed assignments are
    left alone and not counted.
    """
    if not ids:
        raise ValidationError("Array of IDs required")
    now = now or utcnow()

    with _translate_io_errors(db, "complete assignments"):
        modified = db.query(Assignment).filter(
            Assignment.id.in_(ids),
            Assignment.owner_id == owner_id,
            Assignment.status != STATUS_COMPLETED,
        ).update(
            {"status": STATUS_COMPLETED, "completed_at": to_storage(now)},
            synchronize_session=False,
        )
        db.commit()
    return modified


def bulk_delete(db: Session, owner_id: str, ids: list[str]) -> int:
    if not ids:
        raise ValidationError("Array of IDs required")

    with _translate_io_errors(db, "delete assignments"):
        assignments = db.query(Assignment).filter(
            Assignment.id.in_(ids),
            Assignment.owner_id == owner_id,
        ).all()
        for assignment in assignments:
            db.delete(assignment)
        db.commit()
    return len(assignments)


def get_stats(db: Session, owner_id: str, due_soon_hours: int = 24, now: datetime | None = None) -> dict:
    """Counts for the overview dashboard."""
    now = now or utcnow()
    now_key = to_storage(now)
    horizon = to_storage(now + timedelta(hours=due_soon_hours))

    base = db.query(Assignment).filter(Assignment.owner_id == owner_id)
    pending = base.filter(Assignment.status != STATUS_COMPLETED)
    with _translate_io_errors(db, "load statistics"):
        return {
            "total": base.count(),
            "completed": base.filter(Assignment.status == STATUS_COMPLETED).count(),
            "pending": pending.count(),
            "overdue": pending.filter(Assignment.red_at < now_key).count(),
            "due_soon": pending.filter(Assignment.red_at >= now_key, Assignment.red_at <= horizon).count(),
        }


def load_alert_targets(db: Session) -> list[AlertTarget]:
    """Snapshot every unfinished assignment, across all owners."""
    assignments = db.query(Assignment).filter(Assignment.status != STATUS_COMPLETED).all()
    return [AlertTarget.from_model(assignment) for assignment in assignments]


def mark_notified(db: Session, assignment_id: str) -> None:
    db.query(Assignment).filter(Assignment.id == assignment_id).update(
        {"notified": 1}, synchronize_session=False,
    )
    db.commit()
