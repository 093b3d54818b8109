from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_serializer
from pydantic.alias_generators import to_camel

from taskflow.clock import to_iso
from taskflow.errors import TaskErrorCode
from taskflow.models.task import Task, TaskState, TaskType

_CAMEL = {"alias_generator": to_camel, "populate_by_name": True}


class NotificationSettings(BaseModel):
    """Reminder settings supplied on create/update."""

    model_config = _CAMEL
    enabled: bool
    reminder_minutes: Optional[int] = None


class TaskNotification(BaseModel):
    model_config = _CAMEL
    enabled: bool
    reminder_minutes: Optional[int] = None
    notified_at: Optional[datetime] = None

    @field_serializer("notified_at")
    def _ser_ts(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value)


class TaskCreate(BaseModel):
    model_config = _CAMEL
    text: str
    type: TaskType
    # Kept as raw strings so malformed dates surface as typed validation errors.
    due_at: Optional[str] = None
    notification: Optional[NotificationSettings] = None


class TaskUpdate(BaseModel):
    model_config = _CAMEL
    text: Optional[str] = None
    due_at: Optional[str] = None
    notification: Optional[NotificationSettings] = None


class TaskReactivate(BaseModel):
    model_config = _CAMEL
    new_due_at: Optional[str] = None


class TaskRead(BaseModel):
    """A task as exchanged between repository, orchestrator and API."""

    model_config = {**_CAMEL, "from_attributes": True}
    id: str
    text: str
    type: TaskType
    state: TaskState
    due_at: Optional[datetime] = None
    notification: Optional[TaskNotification] = None
    created_at: datetime
    updated_at: datetime
    activated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    is_reactivation: bool = False
    original_id: Optional[str] = None

    @field_serializer(
        "due_at", "created_at", "updated_at", "activated_at", "completed_at", "failed_at"
    )
    def _ser_ts(self, value: Optional[datetime]) -> Optional[str]:
        return to_iso(value)

    @classmethod
    def from_model(cls, task: Task) -> "TaskRead":
        notification = None
        if task.notification_enabled or task.reminder_minutes is not None:
            notification = TaskNotification(
                enabled=task.notification_enabled,
                reminder_minutes=task.reminder_minutes,
                notified_at=task.notified_at,
            )
        return cls(
            id=str(task.id),
            text=task.text,
            type=task.type,
            state=task.state,
            due_at=task.due_at,
            notification=notification,
            created_at=task.created_at,
            updated_at=task.updated_at,
            activated_at=task.activated_at,
            completed_at=task.completed_at,
            failed_at=task.failed_at,
            is_reactivation=task.is_reactivation,
            original_id=str(task.original_id) if task.original_id is not None else None,
        )


class TaskActionResult(BaseModel):
    model_config = _CAMEL
    success: bool
    task: Optional[TaskRead] = None
    error: Optional[str] = None
    code: Optional[TaskErrorCode] = None


class NotificationStatus(BaseModel):
    model_config = _CAMEL
    is_scheduled: bool
    browser_supported: bool
    permission_granted: bool


class TaskBadge(BaseModel):
    variant: str = Field(..., pattern="^(success|purple|danger)$")
    text: str
