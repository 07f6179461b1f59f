"""SQLAlchemy models package."""
from app.models.user import User
from app.models.assignment import Assignment
from app.models.notification import Notification

__all__ = [
    "User",
    "Assignment",
    "Notification",
]
