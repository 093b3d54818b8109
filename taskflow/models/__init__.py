from taskflow.models.base import Base, TimestampMixin
from taskflow.models.task import Task, TaskState, TaskType

__all__ = [
    "Base",
    "TimestampMixin",
    "Task",
    "TaskState",
    "TaskType",
]
