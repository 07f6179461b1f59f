"""Phase classification for assignments.

Every place that needs to know whether an assignment is overdue, which phase
it is in or how long is left goes through this module, so API responses,
list filters and alerting agree on the thresholds.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from app.services.deadlines import DeadlineSet

STATUS_UPCOMING = "upcoming"
STATUS_COMPLETED = "completed"
STATUS_ARCHIVED = "archived"
STATUSES = (STATUS_UPCOMING, STATUS_COMPLETED, STATUS_ARCHIVED)


class Phase(str, Enum):
    UPCOMING = "upcoming"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    COMPLETED = "completed"


URGENCY_BY_PHASE = {
    Phase.RED: "urgent",
    Phase.YELLOW: "warning",
    Phase.GREEN: "informational",
}

# Sort order for alert lists, most pressing first.
_ALERT_ORDER = {Phase.RED: 0, Phase.YELLOW: 1, Phase.GREEN: 2}


def classify(deadlines: DeadlineSet, status: str, now: datetime) -> Phase:
    """Map deadlines, status and time to a phase.

    Checks run latest phase first, so coinciding boundaries resolve to the
    later phase: with yellow == red and now == red the result is red.
    """
    if status == STATUS_COMPLETED:
        return Phase.COMPLETED
    if now >= deadlines.red:
        return Phase.RED
    if now >= deadlines.yellow:
        return Phase.YELLOW
    if now >= deadlines.green:
        return Phase.GREEN
    return Phase.UPCOMING


def current_phase(assignment, now: datetime) -> Phase:
    return classify(assignment.deadlines, assignment.status, now)


def is_overdue(assignment, now: datetime) -> bool:
    return assignment.status != STATUS_COMPLETED and now > assignment.deadlines.red


def time_remaining(assignment, now: datetime) -> timedelta:
    """Time left until the red deadline, never negative."""
    if assignment.status == STATUS_COMPLETED:
        return timedelta(0)
    return max(timedelta(0), assignment.deadlines.red - now)


def time_remaining_ms(assignment, now: datetime) -> int:
    return int(time_remaining(assignment, now) / timedelta(milliseconds=1))


def urgency_for(phase: Phase | str) -> str:
    """Urgency tier for a deadline phase."""
    try:
        return URGENCY_BY_PHASE[Phase(phase)]
    except (KeyError, ValueError):
        raise ValueError(f"Phase has no urgency tier: {phase}") from None


def active_alerts(assignments: Iterable, now: datetime) -> list[dict]:
    """List every phase currently in effect, red first.

    An assignment past its red deadline shows both red and yellow entries;
    green only shows while yellow has not started yet.
    """
    alerts = []
    for assignment in assignments:
        if assignment.status == STATUS_COMPLETED:
            continue
        deadlines = assignment.deadlines
        if now >= deadlines.red:
            alerts.append(_alert(assignment, Phase.RED, deadlines.red))
        if now >= deadlines.yellow:
            alerts.append(_alert(assignment, Phase.YELLOW, deadlines.yellow))
        if deadlines.green <= now < deadlines.yellow:
            alerts.append(_alert(assignment, Phase.GREEN, deadlines.green))

    alerts.sort(key=lambda alert: _ALERT_ORDER[alert["phase"]])
    return alerts


def _alert(assignment, phase: Phase, since: datetime) -> dict:
    messages = {
        Phase.RED: f"URGENT: {assignment.subject} is overdue!",
        Phase.YELLOW: f"{assignment.subject} deadline approaching",
        Phase.GREEN: f"Start working on {assignment.subject}",
    }
    return {
        "id": f"{assignment.id}-{phase.value}",
        "assignment_id": assignment.id,
        "subject": assignment.subject,
        "phase": phase,
        "urgency": URGENCY_BY_PHASE[phase],
        "message": messages[phase],
        "since": since,
    }
