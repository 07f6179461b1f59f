"""User model."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from app.database import Base


class User(Base):
    """User account; its id is the owner id of every assignment."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(String(26), default=lambda: datetime.utcnow().isoformat(timespec="microseconds"))

    # Relationships
    assignments = relationship("Assignment", back_populates="owner", cascade="all, delete-orphan")
    notifications = relationship("Notification", backref="user", cascade="all, delete-orphan")
