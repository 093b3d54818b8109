"""Reminder scheduler.

Keeps exactly one armed timer per task that is eligible for a reminder:
- arms a one-shot timer at ``due_at - reminder_minutes``,
- disarms it when the task leaves pending/active or is deleted,
- re-derives the armed set on a fixed interval (reconciliation sweep) to fix
  drift and to deliver reminders whose timer was missed.

All state lives on one event loop; timer callbacks and the sweep run as
ordinary queued callbacks, so no locking is needed. Nothing is persisted:
after a restart the caller re-arms with ``schedule_many``.

Delivering a reminder does not write to storage. The ``on_fired`` hook is
called after a successful delivery so the orchestrator can persist
``notified_at``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from typing import Awaitable, Callable, Iterable, NamedTuple, Optional, Sequence

from taskflow.clock import Clock, now_utc
from taskflow.models.task import TaskState
from taskflow.schemas.task import NotificationStatus, TaskRead
from taskflow.services.ports import NotificationPresenter, TimerSource
from taskflow.services.task_rules import (
    ARMABLE_STATES,
    format_reminder_body,
    get_notification_time,
    is_armable,
    is_notification_due,
)

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Task Reminder"
RECONCILE_JOB_ID = "reminder-reconcile"
DEFAULT_RECONCILE_INTERVAL_SECONDS = 5 * 60

TaskSource = Callable[[], Awaitable[Sequence[TaskRead]]]
FiredHook = Callable[[str], Awaitable[object]]


@dataclass(slots=True)
class ArmedTimer:
    task_id: str
    job_id: str
    fire_at: datetime
    task: TaskRead


DriftCheck = Callable[[ArmedTimer, TaskRead, datetime], bool]


def fire_time_changed(timer: ArmedTimer, task: TaskRead, now: datetime) -> bool:
    """Default drift check: the recomputed reminder time differs from the armed one."""
    return get_notification_time(task) != timer.fire_at


class SweepReport(NamedTuple):
    armed: int = 0
    cleared: int = 0
    rearmed: int = 0
    fired: int = 0


class SchedulerHandle:
    """Returned by ``initialize``; disposing it cancels the reconciliation interval."""

    def __init__(self, scheduler: "NotificationScheduler"):
        self._scheduler = scheduler
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._scheduler._release(self)

    def __enter__(self) -> "SchedulerHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.dispose()


def _job_id(task_id: str) -> str:
    return f"task-reminder-{task_id}"


class NotificationScheduler:
    def __init__(
        self,
        presenter: NotificationPresenter,
        timers: TimerSource,
        *,
        clock: Clock = now_utc,
        task_source: Optional[TaskSource] = None,
        reconcile_interval_seconds: float = DEFAULT_RECONCILE_INTERVAL_SECONDS,
        drift_check: DriftCheck = fire_time_changed,
        on_fired: Optional[FiredHook] = None,
    ):
        self._presenter = presenter
        self._timers = timers
        self._clock = clock
        self._task_source = task_source
        self._interval = float(reconcile_interval_seconds)
        self._drift_check = drift_check
        self.on_fired = on_fired
        self._armed: dict[str, ArmedTimer] = {}
        self._handle: Optional[SchedulerHandle] = None

    # ---- lifecycle ----

    async def initialize(self) -> SchedulerHandle:
        """Start the reconciliation interval and run one sweep. Idempotent."""
        if self._handle is not None:
            return self._handle
        handle = SchedulerHandle(self)
        self._handle = handle
        self._timers.call_every(RECONCILE_JOB_ID, self._interval, self.reconcile)
        logger.info("Notification scheduler initialized (sweep every %ss)", self._interval)
        await self.reconcile()
        return handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.dispose()

    def _release(self, handle: SchedulerHandle) -> None:
        if handle is not self._handle:
            return
        self._handle = None
        self._timers.cancel(RECONCILE_JOB_ID)
        logger.info("Notification scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    # ---- arming ----

    @property
    def armed_ids(self) -> frozenset[str]:
        return frozenset(self._armed)

    def armed_timer(self, task_id: str) -> Optional[ArmedTimer]:
        return self._armed.get(str(task_id))

    def schedule_one(self, task: TaskRead) -> bool:
        """Arm a reminder for ``task`` if it is eligible and not armed yet.

        Returns True when a timer was armed. Ineligible tasks are skipped
        silently.
        """
        task_id = str(task.id)
        if task_id in self._armed:
            return False
        if not is_armable(task, self._clock()):
            return False

        fire_at = get_notification_time(task)
        job_id = _job_id(task_id)
        try:
            self._timers.call_at(job_id, fire_at, partial(self._fire, task_id))
        except Exception:
            logger.exception("Could not arm reminder for task %s", task_id)
            return False

        self._armed[task_id] = ArmedTimer(
            task_id=task_id, job_id=job_id, fire_at=fire_at, task=task
        )
        logger.info("Scheduled reminder for task %s at %s", task_id, fire_at.isoformat())
        return True

    def schedule_many(self, tasks: Iterable[TaskRead]) -> int:
        tasks = list(tasks)
        armed = sum(1 for task in tasks if self.schedule_one(task))
        logger.info("Scheduled %d reminder(s) across %d task(s)", armed, len(tasks))
        return armed

    def clear_one(self, task_id: str) -> bool:
        """Disarm a task's reminder. Unknown or already-fired ids are a no-op."""
        timer = self._armed.pop(str(task_id), None)
        if timer is None:
            return False
        self._timers.cancel(timer.job_id)
        self._presenter.cancel(timer.task_id)
        logger.info("Cleared reminder for task %s", timer.task_id)
        return True

    def update_one(self, task: TaskRead) -> bool:
        self.clear_one(task.id)
        return self.schedule_one(task)

    def handle_state_change(self, task: TaskRead) -> bool:
        if task.state in (TaskState.completed, TaskState.failed):
            self.clear_one(task.id)
            return False
        if task.state in (TaskState.pending, TaskState.active):
            return self.schedule_one(task)
        return False

    def clear_all(self) -> None:
        for timer in self._armed.values():
            self._timers.cancel(timer.job_id)
        count = len(self._armed)
        self._armed.clear()
        self._presenter.cancel_all()
        logger.info("Cleared all scheduled reminders (%d)", count)

    # ---- diagnostics ----

    def get_status(self, task_id: str) -> NotificationStatus:
        return NotificationStatus(
            is_scheduled=str(task_id) in self._armed,
            browser_supported=self._presenter.is_supported(),
            permission_granted=self._presenter.get_permission_status() == "granted",
        )

    async def ensure_permission(self) -> bool:
        if not self._presenter.is_supported():
            logger.warning("Notifications not supported by the configured presenter")
            return False
        status = await self._presenter.request_permission()
        if status == "granted":
            logger.info("Notification permission granted")
            return True
        logger.warning("Notification permission %s", status)
        return False

    # ---- firing ----

    async def _fire(self, task_id: str) -> None:
        timer = self._armed.pop(task_id, None)
        if timer is None:
            # Cleared after the callback was queued.
            return
        await self._deliver(timer)

    async def _deliver(self, timer: ArmedTimer) -> bool:
        if not self._presenter.is_supported():
            logger.warning("Reminder for task %s dropped: presenter unsupported", timer.task_id)
            return False
        if self._presenter.get_permission_status() != "granted":
            logger.warning("Reminder for task %s dropped: permission not granted", timer.task_id)
            return False

        try:
            await self._presenter.show(
                timer.task_id, REMINDER_TITLE, format_reminder_body(timer.task), timer.fire_at
            )
        except Exception:
            logger.exception("Reminder delivery failed for task %s", timer.task_id)
            return False
        logger.info("Delivered reminder for task %s", timer.task_id)

        if self.on_fired is not None:
            try:
                await self.on_fired(timer.task_id)
            except Exception:
                logger.exception("Recording delivered reminder failed for task %s", timer.task_id)
        return True

    # ---- reconciliation ----

    async def reconcile(self) -> SweepReport:
        """Re-derive the armed set from the current task list."""
        if self._task_source is None:
            return SweepReport()
        try:
            tasks = list(await self._task_source())
        except Exception:
            logger.exception("Reminder sweep skipped: could not load tasks")
            return SweepReport()

        now = self._clock()
        by_id = {str(task.id): task for task in tasks}
        cleared = rearmed = fired = 0

        for task_id, timer in list(self._armed.items()):
            task = by_id.get(task_id)
            if task is None:
                self.clear_one(task_id)
                cleared += 1
            elif is_armable(task, now):
                if self._drift_check(timer, task, now):
                    self.clear_one(task_id)
                    self.schedule_one(task)
                    rearmed += 1
                else:
                    timer.task = task
            elif (
                timer.fire_at <= now
                and task.state in ARMABLE_STATES
                and is_notification_due(task, now)
            ):
                # Timer should have fired already (e.g. the host was asleep).
                self._armed.pop(task_id, None)
                self._timers.cancel(timer.job_id)
                timer.task = task
                await self._deliver(timer)
                fired += 1
            else:
                self.clear_one(task_id)
                cleared += 1

        armed = sum(1 for task in tasks if self.schedule_one(task))

        report = SweepReport(armed=armed, cleared=cleared, rearmed=rearmed, fired=fired)
        if any(report):
            logger.info("Reminder sweep: %s", report._asdict())
        else:
            logger.debug("Reminder sweep: no drift across %d task(s)", len(tasks))
        return report
