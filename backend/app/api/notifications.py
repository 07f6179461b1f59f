"""Notification API endpoints."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_alert_scheduler, get_current_user, get_db
from app.models.user import User
from app.services.alert_scheduler import AlertScheduler
from app.services.notifications import (
    clear_notifications,
    list_notifications,
    mark_all_read,
    mark_notification_read,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    id: str
    assignment_id: str | None
    phase: str
    urgency: str
    pre: bool
    title: str
    message: str
    read: bool
    created_at: str


class ClearResponse(BaseModel):
    deleted: int
    reset: int


class CheckResponse(BaseModel):
    dispatched: int


@router.get("", response_model=list[NotificationResponse])
def get_notifications(
    unread_only: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Get user's notifications."""
    notifications = list_notifications(db, current_user.id, unread_only=unread_only)
    return [
        NotificationResponse(
            id=n.id,
            assignment_id=n.assignment_id,
            phase=n.phase,
            urgency=n.urgency,
            pre=bool(n.pre),
            title=n.title,
            message=n.message,
            read=bool(n.read),
            created_at=n.created_at,
        )
        for n in notifications
    ]


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark a notification as read."""
    if not mark_notification_read(db, current_user.id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.post("/read-all")
def read_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Mark every notification as read."""
    return {"updated": mark_all_read(db, current_user.id)}


@router.delete("", response_model=ClearResponse)
def clear_all(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    scheduler: AlertScheduler = Depends(get_alert_scheduler),
):
    """Delete all notifications and let the user's phases alert again."""
    return ClearResponse(**clear_notifications(db, current_user.id, scheduler))


@router.post("/check", response_model=CheckResponse)
def check_now(
    current_user: User = Depends(get_current_user),
    scheduler: AlertScheduler = Depends(get_alert_scheduler),
):
    """Run an alert tick immediately instead of waiting for the next poll."""
    events = scheduler.tick_once()
    return CheckResponse(dispatched=sum(1 for e in events if e.owner_id == current_user.id))
