import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from taskflow.models.base import Base, TimestampMixin


class TaskType(str, enum.Enum):
    one_time = "one-time"
    daily = "daily"


class TaskState(str, enum.Enum):
    pending = "pending"
    active = "active"
    completed = "completed"
    failed = "failed"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Task(Base, TimestampMixin):
    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_state_due_at", "state", "due_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[TaskType] = mapped_column(
        Enum(TaskType, values_callable=_enum_values), nullable=False
    )
    state: Mapped[TaskState] = mapped_column(
        Enum(TaskState, values_callable=_enum_values), nullable=False, default=TaskState.pending
    )
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Reminder settings (flattened "notification" object)
    notification_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Lifecycle history
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    is_reactivation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Informational backlink only; deleting the original must not cascade.
    original_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True
    )
