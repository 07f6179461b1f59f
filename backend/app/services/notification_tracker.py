"""At-most-once bookkeeping for phase notifications.

Alerting polls, so a phase boundary is almost never evaluated at the exact
instant it passes. Instead a phase-entry notification may fire any time
within ``entry_window`` after the boundary, and a fired key is remembered
so the next poll inside the same window does not fire again. With a poll
interval shorter than the window each phase is announced exactly once.

Fired keys live in memory only. A process restart, or an explicit
``clear()``, lets phases fire again.
"""
from datetime import datetime, timedelta
from typing import Callable, Iterable

from app.services.deadlines import utcnow
from app.services.phases import STATUS_COMPLETED, Phase

DEFAULT_ENTRY_WINDOW = timedelta(minutes=2)
DEFAULT_PRE_ENTRY_LEAD = timedelta(seconds=60)

PRE_SUFFIX = "pre"


def phase_key(assignment_id: str, phase: Phase | str) -> tuple:
    return (assignment_id, Phase(phase).value)


def pre_entry_key(assignment_id: str, phase: Phase | str) -> tuple:
    return (assignment_id, Phase(phase).value, PRE_SUFFIX)


def dedup_key(key: tuple) -> str:
    """String form of a tracker key, e.g. ``"<id>-red-pre"``."""
    return "-".join(key)


class NotificationTracker:
    """Remembers which (assignment, phase) notifications have gone out."""

    def __init__(
        self,
        entry_window: timedelta = DEFAULT_ENTRY_WINDOW,
        pre_entry_lead: timedelta = DEFAULT_PRE_ENTRY_LEAD,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.entry_window = entry_window
        self.pre_entry_lead = pre_entry_lead
        self.clock = clock
        self._fired: set[tuple] = set()

    def should_fire_phase_entry(self, assignment, phase: Phase | str, now: datetime | None = None) -> bool:
        """Claim the phase-entry notification for ``phase`` if it is due.

        True only when the boundary passed less than ``entry_window`` ago,
        the key has not fired yet and the assignment is not completed. A
        True result marks the key fired, so asking again returns False.
        """
        now = now or self.clock()
        key = phase_key(assignment.id, phase)
        if key in self._fired or assignment.status == STATUS_COMPLETED:
            return False

        elapsed = now - assignment.deadlines.boundary(Phase(phase).value)
        if not (timedelta(0) <= elapsed < self.entry_window):
            return False

        self._fired.add(key)
        return True

    def should_fire_pre_entry(self, assignment, phase: Phase | str, now: datetime | None = None) -> bool:
        """Claim the warning that goes out shortly before ``phase`` begins."""
        now = now or self.clock()
        key = pre_entry_key(assignment.id, phase)
        if key in self._fired:
            return False

        remaining = assignment.deadlines.boundary(Phase(phase).value) - now
        if not (timedelta(0) < remaining <= self.pre_entry_lead):
            return False

        self._fired.add(key)
        return True

    def has_fired(self, key: tuple) -> bool:
        return key in self._fired

    def mark_fired(self, key: tuple) -> None:
        self._fired.add(key)

    @property
    def fired_keys(self) -> frozenset:
        return frozenset(self._fired)

    def clear(self, assignment_ids: Iterable[str] | None = None) -> int:
        """Forget fired keys, for all assignments or only the given ones.

        Returns the number of keys removed.
        """
        if assignment_ids is None:
            removed = len(self._fired)
            self._fired.clear()
            return removed

        ids = set(assignment_ids)
        stale = {key for key in list(self._fired) if key[0] in ids}
        self._fired -= stale
        return len(stale)
