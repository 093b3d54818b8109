"""Task orchestration: rules → repository → reminder scheduler.

Every mutating action follows the same sequence:
1. load the current task when the guard needs it,
2. validate with ``task_rules``,
3. persist through the repository,
4. on success, tell the scheduler.

Nothing here raises to the caller. Validation and guard failures come back
as typed ``TaskActionResult`` failures; repository errors are logged and
reported as ``"Failed to <action>"``. Scheduler errors are logged and never
undo a successful mutation.
"""

import logging
from typing import Awaitable, Callable, Optional

from taskflow.clock import Clock, now_utc
from taskflow.errors import TaskError, TaskErrorCode
from taskflow.models.task import TaskState
from taskflow.schemas.task import (
    NotificationStatus,
    TaskActionResult,
    TaskBadge,
    TaskCreate,
    TaskRead,
    TaskReactivate,
    TaskUpdate,
)
from taskflow.services import task_rules
from taskflow.services.notification_scheduler import NotificationScheduler
from taskflow.services.ports import TaskRepository

logger = logging.getLogger(__name__)

_NOT_FOUND = TaskError(TaskErrorCode.not_found, "Task not found")


def _failure(error: TaskError) -> TaskActionResult:
    return TaskActionResult(success=False, error=error.message, code=error.code)


def _persistence_failure(action: str) -> TaskActionResult:
    return TaskActionResult(
        success=False, error=f"Failed to {action}", code=TaskErrorCode.persistence_failed
    )


def _ok(task: Optional[TaskRead] = None) -> TaskActionResult:
    return TaskActionResult(success=True, task=task)


class TaskOrchestrator:
    def __init__(
        self,
        repository: TaskRepository,
        scheduler: NotificationScheduler,
        clock: Clock = now_utc,
    ):
        self._repo = repository
        self._scheduler = scheduler
        self._clock = clock

    # ---- helpers ----

    def _notify_scheduler(self, what: str, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Reminder scheduler %s failed; task change kept", what)

    async def _load(self, task_id: str) -> tuple[Optional[TaskRead], Optional[TaskActionResult]]:
        try:
            task = await self._repo.find_by_id(task_id)
        except Exception:
            logger.exception("Loading task %s failed", task_id)
            return None, _persistence_failure("load task")
        if task is None:
            return None, _failure(_NOT_FOUND)
        return task, None

    # ---- queries ----

    async def get_all_tasks(self) -> list[TaskRead]:
        return task_rules.sort_by_priority(await self._repo.find_all(), self._clock())

    async def get_tasks_by_state(self, state: TaskState) -> list[TaskRead]:
        tasks = await self._repo.find_by_state(state)
        return task_rules.sort_by_priority(tasks, self._clock())

    async def get_task(self, task_id: str) -> Optional[TaskRead]:
        return await self._repo.find_by_id(task_id)

    async def get_task_badges(self, task_id: str) -> Optional[list[TaskBadge]]:
        task = await self._repo.find_by_id(task_id)
        if task is None:
            return None
        return task_rules.get_task_display_badges(task, self._clock())

    def get_notification_status(self, task_id: str) -> NotificationStatus:
        return self._scheduler.get_status(task_id)

    # ---- create / update / delete ----

    async def create_task(self, req: TaskCreate) -> TaskActionResult:
        now = self._clock()
        checks = [
            task_rules.validate_text(req.text),
            task_rules.validate_due_date(req.due_at, req.type, now),
        ]
        if req.notification is not None:
            checks.append(task_rules.validate_reminder_minutes(req.notification.reminder_minutes))
        for check in checks:
            if not check.is_valid:
                return _failure(check.error)

        try:
            task = await self._repo.create(req)
        except Exception:
            logger.exception("Creating task failed")
            return _persistence_failure("create task")

        self._notify_scheduler("schedule", self._scheduler.schedule_one, task)
        logger.info("Task %s created", task.id)
        return _ok(task)

    async def update_task(self, task_id: str, req: TaskUpdate) -> TaskActionResult:
        existing, failure = await self._load(task_id)
        if failure:
            return failure
        if not task_rules.can_be_edited(existing):
            return _failure(
                TaskError(TaskErrorCode.not_editable, "Task cannot be edited in its current state")
            )

        checks = []
        if req.text is not None:
            checks.append(task_rules.validate_text(req.text))
        if req.due_at is not None:
            checks.append(task_rules.validate_due_date(req.due_at, existing.type, self._clock()))
        if req.notification is not None:
            checks.append(task_rules.validate_reminder_minutes(req.notification.reminder_minutes))
        for check in checks:
            if not check.is_valid:
                return _failure(check.error)

        try:
            task = await self._repo.update(task_id, req)
        except Exception:
            logger.exception("Updating task %s failed", task_id)
            return _persistence_failure("update task")

        self._notify_scheduler("update", self._scheduler.update_one, task)
        return _ok(task)

    async def delete_task(self, task_id: str) -> TaskActionResult:
        existing, failure = await self._load(task_id)
        if failure:
            return failure

        # Disarm first so a crash mid-delete cannot leave a timer for a missing task.
        self._notify_scheduler("clear", self._scheduler.clear_one, existing.id)
        try:
            await self._repo.delete(task_id)
        except Exception:
            logger.exception("Deleting task %s failed", task_id)
            self._notify_scheduler("re-arm", self._scheduler.schedule_one, existing)
            return _persistence_failure("delete task")

        logger.info("Task %s deleted", task_id)
        return _ok()

    # ---- state transitions ----

    async def activate_task(self, task_id: str) -> TaskActionResult:
        return await self._run_transition(
            task_id, "activate", "activated", "activate task", lambda: self._repo.activate(task_id)
        )

    async def complete_task(self, task_id: str) -> TaskActionResult:
        return await self._run_transition(
            task_id, "complete", "completed", "complete task", lambda: self._repo.complete(task_id)
        )

    async def fail_task(self, task_id: str) -> TaskActionResult:
        return await self._run_transition(
            task_id, "fail", "failed", "mark task as failed", lambda: self._repo.fail(task_id)
        )

    async def reactivate_task(
        self, task_id: str, req: Optional[TaskReactivate] = None
    ) -> TaskActionResult:
        return await self._run_transition(
            task_id,
            "reactivate",
            "reactivated",
            "reactivate task",
            lambda: self._repo.reactivate(task_id, req),
            new_due_at=req.new_due_at if req else None,
        )

    async def _run_transition(
        self,
        task_id: str,
        action: str,
        verb: str,
        failure_label: str,
        persist: Callable[[], Awaitable[TaskRead]],
        new_due_at: Optional[str] = None,
    ) -> TaskActionResult:
        existing, failure = await self._load(task_id)
        if failure:
            return failure
        if not task_rules.can_transition(existing, action):
            return _failure(
                TaskError(
                    TaskErrorCode.invalid_transition,
                    f"Task cannot be {verb} in its current state",
                )
            )

        if new_due_at:
            check = task_rules.validate_due_date(new_due_at, existing.type, self._clock())
            if not check.is_valid:
                return _failure(check.error)

        try:
            task = await persist()
        except Exception:
            logger.exception("Task %s %s failed", task_id, action)
            return _persistence_failure(failure_label)

        self._notify_scheduler("state change", self._scheduler.handle_state_change, task)
        logger.info("Task %s %s (now %s)", task_id, verb, task.state.value)
        return _ok(task)

    # ---- bulk delete ----

    async def _delete_all(self, state: TaskState, label: str, bulk_delete) -> TaskActionResult:
        try:
            affected = await self._repo.find_by_state(state)
        except Exception:
            logger.exception("Loading %s tasks failed", state.value)
            return _persistence_failure(label)

        for task in affected:
            self._notify_scheduler("clear", self._scheduler.clear_one, task.id)
        try:
            await bulk_delete()
        except Exception:
            logger.exception("Bulk delete of %s tasks failed", state.value)
            return _persistence_failure(label)

        logger.info("Deleted %d %s task(s)", len(affected), state.value)
        return _ok()

    async def delete_all_completed(self) -> TaskActionResult:
        return await self._delete_all(
            TaskState.completed, "delete completed tasks", self._repo.delete_completed
        )

    async def delete_all_failed(self) -> TaskActionResult:
        return await self._delete_all(
            TaskState.failed, "delete failed tasks", self._repo.delete_failed
        )

    # ---- reminders ----

    async def load_and_schedule(self) -> int:
        """Arm reminders for every stored task. Call once at startup."""
        try:
            tasks = await self._repo.find_all()
        except Exception:
            logger.exception("Loading tasks for reminder scheduling failed")
            return 0
        return self._scheduler.schedule_many(tasks)

    async def record_notification(self, task_id: str) -> TaskActionResult:
        """Persist ``notified_at`` after a reminder was delivered."""
        try:
            task = await self._repo.mark_notified(task_id)
        except Exception:
            logger.exception("Recording reminder for task %s failed", task_id)
            return _persistence_failure("record notification")
        return _ok(task)
