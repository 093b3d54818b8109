"""Ports used by the task services.

The orchestrator and scheduler depend on these Protocols, never on the SQL
repository, the Telegram client or APScheduler directly.
"""
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol, Sequence

from taskflow.models.task import TaskState
from taskflow.schemas.task import TaskCreate, TaskRead, TaskReactivate, TaskUpdate

PermissionStatus = Literal["granted", "denied", "default"]


class TaskRepository(Protocol):
    """Task persistence. Every method raises on failure."""

    async def find_all(self) -> Sequence[TaskRead]: ...
    async def find_by_state(self, state: TaskState) -> Sequence[TaskRead]: ...
    async def find_by_id(self, task_id: str) -> Optional[TaskRead]: ...
    async def create(self, req: TaskCreate) -> TaskRead: ...
    async def update(self, task_id: str, req: TaskUpdate) -> TaskRead: ...
    async def delete(self, task_id: str) -> None: ...
    async def activate(self, task_id: str) -> TaskRead: ...
    async def complete(self, task_id: str) -> TaskRead: ...
    async def fail(self, task_id: str) -> TaskRead: ...
    async def reactivate(self, task_id: str, req: Optional[TaskReactivate] = None) -> TaskRead: ...
    async def delete_completed(self) -> None: ...
    async def delete_failed(self) -> None: ...
    async def mark_notified(self, task_id: str) -> TaskRead: ...


class NotificationPresenter(Protocol):
    """Where reminders end up (chat message, desktop popup, log line...)."""

    def is_supported(self) -> bool: ...
    def get_permission_status(self) -> PermissionStatus: ...
    async def request_permission(self) -> PermissionStatus: ...
    async def show(self, task_id: str, title: str, body: str, fire_at: datetime) -> None: ...
    def cancel(self, task_id: str) -> None: ...
    def cancel_all(self) -> None: ...


class TimerSource(Protocol):
    """One-shot and recurring callbacks on the event loop.

    ``callback`` is an async callable taking no arguments. ``job_id`` is unique
    per source; arming an existing id replaces it.
    """

    def call_at(
        self, job_id: str, run_at: datetime, callback: Callable[[], Awaitable[Any]]
    ) -> None: ...
    def call_every(
        self, job_id: str, seconds: float, callback: Callable[[], Awaitable[Any]]
    ) -> None: ...
    def cancel(self, job_id: str) -> None: ...
