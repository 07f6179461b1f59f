"""Assignment schemas."""
from datetime import datetime

from pydantic import BaseModel, Field

from app.services.phases import Phase

# Deadlines are accepted as raw strings and parsed by the deadline model, so
# a malformed date is reported as a validation error like any other.
DeadlineValue = datetime | str


class DeadlinesIn(BaseModel):
    """All three deadlines; required on create and full replace."""

    green: DeadlineValue | None = None
    yellow: DeadlineValue | None = None
    red: DeadlineValue | None = None


class AssignmentCreate(BaseModel):
    """Request to create an assignment."""

    subject: str
    task: str
    deadlines: DeadlinesIn
    status: str | None = None
    priority: str | None = None
    tags: list[str] = Field(default_factory=list)


class AssignmentUpdate(BaseModel):
    """Partial update; only fields that are sent change."""

    subject: str | None = None
    task: str | None = None
    deadlines: DeadlinesIn | None = None
    status: str | None = None
    priority: str | None = None
    tags: list[str] | None = None
    notified: bool | None = None


class DeadlinesOut(BaseModel):
    green: datetime
    yellow: datetime
    red: datetime


class AssignmentResponse(BaseModel):
    """Assignment with its derived phase fields."""

    id: str
    subject: str
    task: str
    deadlines: DeadlinesOut
    status: str
    priority: str
    tags: list[str]
    notified: bool
    completed_at: str | None
    created_at: str
    updated_at: str | None
    current_phase: Phase
    is_overdue: bool
    time_remaining_ms: int


class AssignmentListResponse(BaseModel):
    count: int
    assignments: list[AssignmentResponse]


class AssignmentStats(BaseModel):
    total: int
    completed: int
    pending: int
    overdue: int
    due_soon: int


class BulkIdsRequest(BaseModel):
    ids: list[str]


class BulkCompleteResponse(BaseModel):
    modified: int


class BulkDeleteResponse(BaseModel):
    deleted: int


class ActiveAlert(BaseModel):
    """A phase currently in effect for an assignment."""

    id: str
    assignment_id: str
    subject: str
    phase: Phase
    urgency: str
    message: str
    since: datetime
