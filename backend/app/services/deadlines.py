"""Three-stage deadline model and its validation rules."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from dateutil.parser import isoparse

from app.errors import InvalidDateError, OrderingError, PastDeadlineError

PHASE_ORDER = ("green", "yellow", "red")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse a datetime or ISO-8601 string into an aware UTC datetime.

    Naive values are taken to be UTC already.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = isoparse(value.strip())
        except (ValueError, OverflowError) as exc:
            raise InvalidDateError(f"Invalid date: {value!r}") from exc
    else:
        raise InvalidDateError(f"Invalid date: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_storage(value: datetime) -> str:
    """Serialize to the fixed-width naive UTC form used in the database."""
    return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="microseconds")


def from_storage(value: str) -> datetime:
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DeadlineSet:
    """The green, yellow and red deadlines of one assignment."""

    green: datetime
    yellow: datetime
    red: datetime

    def boundary(self, phase: str) -> datetime:
        """Timestamp at which ``phase`` begins."""
        if phase not in PHASE_ORDER:
            raise ValueError(f"Phase has no boundary: {phase}")
        return getattr(self, phase)

    def to_storage(self) -> dict[str, str]:
        return {
            "green_at": to_storage(self.green),
            "yellow_at": to_storage(self.yellow),
            "red_at": to_storage(self.red),
        }

    @classmethod
    def from_storage(cls, green_at: str, yellow_at: str, red_at: str) -> "DeadlineSet":
        return cls(
            green=from_storage(green_at),
            yellow=from_storage(yellow_at),
            red=from_storage(red_at),
        )

    def as_dict(self) -> dict[str, datetime]:
        return {"green": self.green, "yellow": self.yellow, "red": self.red}


def validate_deadlines(
    green: Any,
    yellow: Any,
    red: Any,
    now: datetime | None = None,
    *,
    creating: bool = True,
) -> DeadlineSet:
    """Build a DeadlineSet, enforcing green <= yellow <= red.

    Equal adjacent timestamps are accepted and collapse a phase to zero
    duration. The red deadline must lie strictly after ``now``, but only
    when ``creating``; edits may keep or extend a deadline that has passed.
    """
    green_at = parse_timestamp(green)
    yellow_at = parse_timestamp(yellow)
    red_at = parse_timestamp(red)

    if not (green_at <= yellow_at and yellow_at <= red_at):
        raise OrderingError("Deadlines must follow: Green <= Yellow <= Red")

    if creating:
        now = parse_timestamp(now) if now is not None else utcnow()
        if red_at <= now:
            raise PastDeadlineError("Red deadline must be in the future")

    return DeadlineSet(green=green_at, yellow=yellow_at, red=red_at)
