"""SQLAlchemy implementation of the ``TaskRepository`` port.

Each call runs in its own session and commits before returning, so values
handed back to the orchestrator are plain ``TaskRead`` snapshots.
"""
import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskflow.clock import Clock, now_utc, parse_timestamp
from taskflow.crud.tasks import crud_task
from taskflow.errors import TaskNotFoundError
from taskflow.models.task import Task, TaskState
from taskflow.schemas.task import TaskCreate, TaskRead, TaskReactivate, TaskUpdate

logger = logging.getLogger(__name__)


def _pk(task_id: str) -> int:
    try:
        return int(task_id)
    except (TypeError, ValueError):
        raise TaskNotFoundError(str(task_id)) from None


class SqlTaskRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = now_utc):
        self._session_factory = session_factory
        self._clock = clock

    async def _require(self, db: AsyncSession, task_id: str) -> Task:
        task = await crud_task.get(db, _pk(task_id))
        if task is None:
            raise TaskNotFoundError(str(task_id))
        return task

    async def find_all(self) -> Sequence[TaskRead]:
        async with self._session_factory() as db:
            return [TaskRead.from_model(t) for t in await crud_task.get_multi(db)]

    async def find_by_state(self, state: TaskState) -> Sequence[TaskRead]:
        async with self._session_factory() as db:
            return [TaskRead.from_model(t) for t in await crud_task.get_by_state(db, state)]

    async def find_by_id(self, task_id: str) -> Optional[TaskRead]:
        try:
            pk = _pk(task_id)
        except TaskNotFoundError:
            return None
        async with self._session_factory() as db:
            task = await crud_task.get(db, pk)
            return TaskRead.from_model(task) if task else None

    async def create(self, req: TaskCreate) -> TaskRead:
        async with self._session_factory() as db:
            task = await crud_task.create_from_request(db, req, now=self._clock())
            await db.commit()
            logger.debug("Task created id=%s type=%s", task.id, task.type.value)
            return TaskRead.from_model(task)

    async def update(self, task_id: str, req: TaskUpdate) -> TaskRead:
        async with self._session_factory() as db:
            task = await self._require(db, task_id)
            task = await crud_task.apply_update(db, task, req, now=self._clock())
            await db.commit()
            return TaskRead.from_model(task)

    async def delete(self, task_id: str) -> None:
        async with self._session_factory() as db:
            removed = await crud_task.remove(db, id=_pk(task_id))
            if removed is None:
                raise TaskNotFoundError(str(task_id))
            await db.commit()

    async def _transition(self, task_id: str, new_state: TaskState) -> TaskRead:
        async with self._session_factory() as db:
            task = await self._require(db, task_id)
            task = await crud_task.transition(db, task, new_state, now=self._clock())
            await db.commit()
            logger.debug("Task %s -> %s", task_id, new_state.value)
            return TaskRead.from_model(task)

    async def activate(self, task_id: str) -> TaskRead:
        return await self._transition(task_id, TaskState.active)

    async def complete(self, task_id: str) -> TaskRead:
        return await self._transition(task_id, TaskState.completed)

    async def fail(self, task_id: str) -> TaskRead:
        return await self._transition(task_id, TaskState.failed)

    async def reactivate(self, task_id: str, req: Optional[TaskReactivate] = None) -> TaskRead:
        new_due_at = parse_timestamp(req.new_due_at) if req else None
        async with self._session_factory() as db:
            original = await self._require(db, task_id)
            clone = await crud_task.clone_for_reactivation(
                db, original, new_due_at=new_due_at, now=self._clock()
            )
            await db.commit()
            logger.debug("Task %s reactivated as %s", task_id, clone.id)
            return TaskRead.from_model(clone)

    async def _delete_state(self, state: TaskState) -> None:
        async with self._session_factory() as db:
            count = await crud_task.delete_by_state(db, state)
            await db.commit()
            logger.debug("Deleted %d %s task(s)", count, state.value)

    async def delete_completed(self) -> None:
        await self._delete_state(TaskState.completed)

    async def delete_failed(self) -> None:
        await self._delete_state(TaskState.failed)

    async def mark_notified(self, task_id: str) -> TaskRead:
        async with self._session_factory() as db:
            task = await self._require(db, task_id)
            task = await crud_task.mark_notified(db, task, now=self._clock())
            await db.commit()
            return TaskRead.from_model(task)
