"""Periodic re-evaluation of assignments into phase notifications."""
import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable

from app.services.deadlines import PHASE_ORDER, utcnow
from app.services.notification_tracker import (
    NotificationTracker,
    dedup_key,
    phase_key,
    pre_entry_key,
)
from app.services.notifications import NotificationSink, render_message
from app.services.phases import STATUS_COMPLETED, Phase, classify, urgency_for

logger = logging.getLogger(__name__)

MODE_PHASES = "phases"
MODE_LEGACY = "legacy"

LEGACY_SUFFIX = "notified"


@dataclass(frozen=True)
class DispatchEvent:
    """One notification the scheduler decided to send."""

    assignment_id: str
    owner_id: str
    subject: str
    description: str
    phase: str
    urgency: str
    pre: bool
    dedup_key: str
    title: str
    body: str


class AlertScheduler:
    """Runs ticks that turn phase changes into notifications.

    ``source`` returns the assignments to look at on each tick. Anything
    with ``id``, ``owner_id``, ``subject``, ``task``, ``status``,
    ``notified`` and a ``deadlines`` DeadlineSet works.

    In ``phases`` mode every phase entry (and the pre-entry warning for
    phases in ``pre_entry_phases``) fires once per assignment, tracked by
    ``tracker``. ``legacy`` mode sends one notification once yellow starts
    and never again once the ``notified`` flag is set or its tracker key
    has fired.
    ``on_notified`` persists that flag after an assignment's first dispatch
    in either mode.
    """

    def __init__(
        self,
        source: Callable[[], Iterable],
        sink: NotificationSink,
        tracker: NotificationTracker | None = None,
        *,
        mode: str = MODE_PHASES,
        clock: Callable[[], datetime] = utcnow,
        on_notified: Callable[[str], None] | None = None,
        pre_entry_phases: Iterable[str] = ("yellow", "red"),
    ) -> None:
        if mode not in (MODE_PHASES, MODE_LEGACY):
            raise ValueError(f"Unknown alert mode: {mode}")
        self.source = source
        self.sink = sink
        self.tracker = tracker or NotificationTracker(clock=clock)
        self.mode = mode
        self.clock = clock
        self.on_notified = on_notified
        self.pre_entry_phases = frozenset(pre_entry_phases)
        self._tick_lock = threading.Lock()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, interval_seconds: float) -> None:
        """Tick now and then every ``interval_seconds`` on the running event loop."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        if self.running:
            logger.info("Alert scheduler already running")
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(interval_seconds))
        logger.info(f"Alert scheduler started ({self.mode} mode, every {interval_seconds}s)")

    def stop(self) -> None:
        """Cancel the periodic task so no further tick starts.

        A tick already running in its worker thread is allowed to finish.
        """
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Alert scheduler stopped")

    async def _run(self, interval_seconds: float) -> None:
        while True:
            try:
                # Ticks do blocking database work; keep it off the event loop.
                await asyncio.to_thread(self.tick_once)
            except Exception as e:
                logger.error(f"Alert tick failed: {e}")
            await asyncio.sleep(interval_seconds)

    def clear(self, assignment_ids: Iterable[str] | None = None) -> int:
        """Forget fired alerts, waiting for any running tick to finish first."""
        with self._tick_lock:
            return self.tracker.clear(assignment_ids)

    def tick_once(self, now: datetime | None = None) -> list[DispatchEvent]:
        """Evaluate every assignment once and dispatch what is due.

        Returns the dispatched events. If another tick is still running the
        call is skipped and returns an empty list.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Alert tick skipped: previous tick still running")
            return []
        try:
            now = now or self.clock()
            events: list[DispatchEvent] = []
            for assignment in self.source():
                try:
                    events.extend(self._evaluate(assignment, now))
                except Exception as e:
                    logger.error(f"Failed to evaluate assignment {getattr(assignment, 'id', '?')}: {e}")
            return events
        finally:
            self._tick_lock.release()

    def _evaluate(self, assignment, now: datetime) -> list[DispatchEvent]:
        if assignment.status == STATUS_COMPLETED:
            return []
        if self.mode == MODE_LEGACY:
            return self._evaluate_legacy(assignment, now)

        events = []
        for phase in PHASE_ORDER:
            if self.tracker.should_fire_phase_entry(assignment, phase, now):
                events.append(self._dispatch(assignment, phase, dedup_key(phase_key(assignment.id, phase))))
            if phase in self.pre_entry_phases and self.tracker.should_fire_pre_entry(assignment, phase, now):
                events.append(self._dispatch(
                    assignment, phase, dedup_key(pre_entry_key(assignment.id, phase)), pre=True,
                ))

        if events and not assignment.notified:
            self._mark_notified(assignment)
        return events

    def _evaluate_legacy(self, assignment, now: datetime) -> list[DispatchEvent]:
        key = (assignment.id, LEGACY_SUFFIX)
        if assignment.notified or self.tracker.has_fired(key) or now < assignment.deadlines.yellow:
            return []
        # Claimed before dispatch; persisting the flag may still fail.
        self.tracker.mark_fired(key)
        phase = classify(assignment.deadlines, assignment.status, now)
        event = self._dispatch(assignment, phase.value, dedup_key(key))
        self._mark_notified(assignment)
        return [event]

    def _dispatch(self, assignment, phase: str, key: str, pre: bool = False) -> DispatchEvent:
        title, body = render_message(phase, assignment.subject, assignment.task, pre=pre)
        event = DispatchEvent(
            assignment_id=assignment.id,
            owner_id=assignment.owner_id,
            subject=assignment.subject,
            description=assignment.task,
            phase=phase,
            urgency=urgency_for(Phase(phase)),
            pre=pre,
            dedup_key=key,
            title=title,
            body=body,
        )
        # Delivery is fire-and-forget; the key is already claimed either way.
        try:
            self.sink.send(title, body, event.urgency, key, event=event)
        except Exception as e:
            logger.warning(f"Dispatch of {key} failed: {e}")
        else:
            logger.info(f"Dispatched {key} ({event.urgency})")
        return event

    def _mark_notified(self, assignment) -> None:
        if self.on_notified is None:
            return
        try:
            self.on_notified(assignment.id)
        except Exception as e:
            logger.error(f"Failed to flag assignment {assignment.id} as notified: {e}")
