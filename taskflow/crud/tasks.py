from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.clock import now_utc, parse_timestamp
from taskflow.config import get_settings
from taskflow.crud.base import CRUDBase
from taskflow.models.task import Task, TaskState
from taskflow.schemas.task import NotificationSettings, TaskCreate, TaskUpdate

# Which history column a transition stamps.
_STAMP_FIELD = {
    TaskState.active: "activated_at",
    TaskState.completed: "completed_at",
    TaskState.failed: "failed_at",
}


def _apply_notification(task: Task, settings_in: Optional[NotificationSettings]) -> None:
    if settings_in is None:
        return
    task.notification_enabled = settings_in.enabled
    if settings_in.reminder_minutes is not None:
        task.reminder_minutes = settings_in.reminder_minutes
    elif settings_in.enabled and task.reminder_minutes is None:
        task.reminder_minutes = get_settings().DEFAULT_REMINDER_MINUTES


class CRUDTask(CRUDBase[Task, TaskCreate, TaskUpdate]):
    async def get_by_state(self, db: AsyncSession, state: TaskState) -> Sequence[Task]:
        result = await db.execute(
            select(Task).where(Task.state == state).order_by(Task.created_at.desc(), Task.id)
        )
        return result.scalars().all()

    async def create_from_request(
        self, db: AsyncSession, req: TaskCreate, now: Optional[datetime] = None
    ) -> Task:
        now = now or now_utc()
        task = Task(
            text=req.text.strip(),
            type=req.type,
            state=TaskState.pending,
            due_at=parse_timestamp(req.due_at),
            notification_enabled=False,
            is_reactivation=False,
            created_at=now,
            updated_at=now,
        )
        _apply_notification(task, req.notification)
        db.add(task)
        await db.flush()
        await db.refresh(task)
        return task

    async def apply_update(
        self, db: AsyncSession, task: Task, req: TaskUpdate, now: Optional[datetime] = None
    ) -> Task:
        if req.text is not None:
            task.text = req.text.strip()
        if req.due_at is not None:
            task.due_at = parse_timestamp(req.due_at)
        _apply_notification(task, req.notification)
        task.updated_at = now or now_utc()
        await db.flush()
        await db.refresh(task)
        return task

    async def transition(
        self, db: AsyncSession, task: Task, new_state: TaskState, now: Optional[datetime] = None
    ) -> Task:
        now = now or now_utc()
        task.state = new_state
        stamp = _STAMP_FIELD.get(new_state)
        if stamp is not None:
            setattr(task, stamp, now)
        task.updated_at = now
        await db.flush()
        await db.refresh(task)
        return task

    async def clone_for_reactivation(
        self,
        db: AsyncSession,
        original: Task,
        new_due_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """Start a new cycle as a fresh pending task linked back to ``original``."""
        now = now or now_utc()
        clone = Task(
            text=original.text,
            type=original.type,
            state=TaskState.pending,
            due_at=new_due_at if new_due_at is not None else original.due_at,
            notification_enabled=original.notification_enabled,
            reminder_minutes=original.reminder_minutes,
            notified_at=None,
            is_reactivation=True,
            original_id=original.id,
            created_at=now,
            updated_at=now,
        )
        db.add(clone)
        await db.flush()
        await db.refresh(clone)
        return clone

    async def mark_notified(
        self, db: AsyncSession, task: Task, now: Optional[datetime] = None
    ) -> Task:
        if task.notified_at is None:
            now = now or now_utc()
            task.notified_at = now
            task.updated_at = now
            await db.flush()
            await db.refresh(task)
        return task

    async def delete_by_state(self, db: AsyncSession, state: TaskState) -> int:
        result = await db.execute(delete(Task).where(Task.state == state))
        await db.flush()
        return result.rowcount or 0


crud_task = CRUDTask(Task)
