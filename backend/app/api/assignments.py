"""Assignments API endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, service_errors
from app.config import get_settings
from app.models.assignment import Assignment
from app.models.user import User
from app.schemas.assignment import (
    ActiveAlert,
    AssignmentCreate,
    AssignmentListResponse,
    AssignmentResponse,
    AssignmentStats,
    AssignmentUpdate,
    BulkCompleteResponse,
    BulkDeleteResponse,
    BulkIdsRequest,
    DeadlinesOut,
)
from app.services import assignments as assignment_service
from app.services.deadlines import utcnow
from app.services.phases import (
    active_alerts,
    current_phase,
    is_overdue,
    time_remaining_ms,
)

router = APIRouter(prefix="/assignments", tags=["assignments"])
settings = get_settings()


def to_response(assignment: Assignment, now: datetime) -> AssignmentResponse:
    """Serialize an assignment with phase fields computed at ``now``."""
    deadlines = assignment.deadlines
    return AssignmentResponse(
        id=assignment.id,
        subject=assignment.subject,
        task=assignment.task,
        deadlines=DeadlinesOut(**deadlines.as_dict()),
        status=assignment.status,
        priority=assignment.priority,
        tags=assignment.tag_list,
        notified=bool(assignment.notified),
        completed_at=assignment.completed_at,
        created_at=assignment.created_at,
        updated_at=assignment.updated_at,
        current_phase=current_phase(assignment, now),
        is_overdue=is_overdue(assignment, now),
        time_remaining_ms=time_remaining_ms(assignment, now),
    )


@router.get("", response_model=AssignmentListResponse)
def list_assignments(
    status_filter: str | None = Query(None, alias="status", description="upcoming, completed or archived"),
    priority: str | None = Query(None, description="low, medium or high"),
    overdue: bool = Query(False, description="Only unfinished assignments past their red deadline"),
    upcoming: int | None = Query(None, ge=1, description="Only unfinished assignments due within this many hours"),
    search: str | None = Query(None, description="Text to find in subject or task"),
    limit: int = Query(50, ge=1, le=500),
    skip: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List the current user's assignments, soonest red deadline first."""
    now = utcnow()
    with service_errors():
        assignments = assignment_service.list_assignments(
            db,
            current_user.id,
            status=status_filter,
            priority=priority,
            overdue=overdue,
            upcoming_hours=upcoming,
            search=search,
            limit=limit,
            skip=skip,
            now=now,
        )
    return AssignmentListResponse(
        count=len(assignments),
        assignments=[to_response(a, now) for a in assignments],
    )


@router.get("/stats/overview", response_model=AssignmentStats)
def get_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Totals for the dashboard."""
    with service_errors():
        stats = assignment_service.get_stats(db, current_user.id, due_soon_hours=settings.due_soon_hours)
    return AssignmentStats(**stats)


@router.get("/alerts/active", response_model=list[ActiveAlert])
def get_active_alerts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Every deadline phase currently in effect, most urgent first."""
    with service_errors():
        pending = assignment_service.list_pending_assignments(db, current_user.id)
    return [ActiveAlert(**alert) for alert in active_alerts(pending, utcnow())]


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get one assignment."""
    with service_errors():
        assignment = assignment_service.get_assignment(db, current_user.id, assignment_id)
    return to_response(assignment, utcnow())


@router.post("", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def create_assignment(
    assignment_data: AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Create an assignment. The red deadline must not be in the past."""
    now = utcnow()
    with service_errors():
        assignment = assignment_service.create_assignment(
            db, current_user.id, assignment_data.model_dump(), now=now,
        )
    return to_response(assignment, now)


@router.patch("/{assignment_id}", response_model=AssignmentResponse)
def update_assignment(
    assignment_id: str,
    assignment_data: AssignmentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Update some fields of an assignment."""
    now = utcnow()
    with service_errors():
        assignment = assignment_service.update_assignment(
            db, current_user.id, assignment_id, assignment_data.model_dump(exclude_unset=True), now=now,
        )
    return to_response(assignment, now)


@router.put("/{assignment_id}", response_model=AssignmentResponse)
def replace_assignment(
    assignment_id: str,
    assignment_data: AssignmentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Replace every editable field of an assignment."""
    now = utcnow()
    with service_errors():
        assignment = assignment_service.replace_assignment(
            db, current_user.id, assignment_id, assignment_data.model_dump(), now=now,
        )
    return to_response(assignment, now)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete an assignment."""
    with service_errors():
        assignment_service.delete_assignment(db, current_user.id, assignment_id)


@router.post("/bulk/complete", response_model=BulkCompleteResponse)
def bulk_complete(
    request: BulkIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark several assignments completed."""
    with service_errors():
        modified = assignment_service.bulk_complete(db, current_user.id, request.ids)
    return BulkCompleteResponse(modified=modified)


@router.post("/bulk/delete", response_model=BulkDeleteResponse)
def bulk_delete(
    request: BulkIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Delete several assignments."""
    with service_errors():
        deleted = assignment_service.bulk_delete(db, current_user.id, request.ids)
    return BulkDeleteResponse(deleted=deleted)
