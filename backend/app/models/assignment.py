"""Assignment model with three-stage deadlines."""
import json
import uuid
from datetime import datetime

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.services.deadlines import DeadlineSet


class Assignment(Base):
    """A task with green (start), yellow (warning) and red (final) deadlines."""

    __tablename__ = "assignments"
    __table_args__ = (
        Index("ix_assignments_owner_status_red", "owner_id", "status", "red_at"),
        Index("ix_assignments_owner_red", "owner_id", "red_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    subject = Column(String(100), nullable=False)
    task = Column(String(1000), nullable=False)

    # Deadlines, naive UTC ISO strings so SQL string order is time order
    green_at = Column(String(26), nullable=False)
    yellow_at = Column(String(26), nullable=False)
    red_at = Column(String(26), nullable=False)

    status = Column(String(20), nullable=False, default="upcoming")  # upcoming, completed, archived
    priority = Column(String(10), nullable=False, default="medium")  # low, medium, high
    tags = Column(Text, default="[]")  # JSON array
    completed_at = Column(String(26))
    notified = Column(Integer, default=0)  # SQLite boolean

    # Timestamps
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(timespec="microseconds"))
    updated_at = Column(
        String(26),
        default=lambda: datetime.utcnow().isoformat(timespec="microseconds"),
        onupdate=lambda: datetime.utcnow().isoformat(timespec="microseconds"),
    )

    # Relationships
    owner = relationship("User", back_populates="assignments")
    notifications = relationship("Notification", backref="assignment", cascade="all, delete-orphan")

    @property
    def deadlines(self) -> DeadlineSet:
        return DeadlineSet.from_storage(self.green_at, self.yellow_at, self.red_at)

    @deadlines.setter
    def deadlines(self, value: DeadlineSet) -> None:
        stored = value.to_storage()
        self.green_at = stored["green_at"]
        self.yellow_at = stored["yellow_at"]
        self.red_at = stored["red_at"]

    @property
    def tag_list(self) -> list[str]:
        return json.loads(self.tags or "[]")
