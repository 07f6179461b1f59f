"""Notification model for deadline reminders."""
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from app.database import Base


class Notification(Base):
    """In-app notification produced when an assignment changes phase."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "read"),
        Index("ix_notifications_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    assignment_id = Column(String(36), ForeignKey("assignments.id", ondelete="CASCADE"))

    # Context
    phase = Column(String(10), nullable=False)  # green, yellow, red
    urgency = Column(String(20), nullable=False)  # informational, warning, urgent
    pre = Column(Integer, default=0)  # SQLite boolean: 1 = "about to enter" warning
    dedup_key = Column(String(64), nullable=False)

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Status
    read = Column(Integer, default=0)  # SQLite boolean
    read_at = Column(String(26))

    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(timespec="microseconds"))
