"""Task endpoints: CRUD, lifecycle transitions and reminder status."""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from taskflow.api.v1.deps import get_orchestrator
from taskflow.errors import TaskErrorCode
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
from taskflow.services.task_orchestrator import TaskOrchestrator

router = APIRouter(prefix="/tasks", tags=["tasks"])

Orchestrator = Annotated[TaskOrchestrator, Depends(get_orchestrator)]

_ERROR_STATUS = {
    TaskErrorCode.not_found: 404,
    TaskErrorCode.invalid_transition: 409,
    TaskErrorCode.not_editable: 409,
    TaskErrorCode.persistence_failed: 500,
}


def _respond(result: TaskActionResult, success_status: int = 200) -> JSONResponse:
    if result.success:
        status = success_status
    else:
        status = _ERROR_STATUS.get(result.code, 400)
    return JSONResponse(
        result.model_dump(mode="json", by_alias=True, exclude_none=True), status_code=status
    )


@router.get("", response_model=list[TaskRead])
async def list_tasks(orchestrator: Orchestrator):
    return await orchestrator.get_all_tasks()


@router.get("/state/{state}", response_model=list[TaskRead])
async def list_tasks_by_state(state: TaskState, orchestrator: Orchestrator):
    return await orchestrator.get_tasks_by_state(state)


@router.delete("/completed", response_model=TaskActionResult)
async def delete_completed_tasks(orchestrator: Orchestrator):
    return _respond(await orchestrator.delete_all_completed())


@router.delete("/failed", response_model=TaskActionResult)
async def delete_failed_tasks(orchestrator: Orchestrator):
    return _respond(await orchestrator.delete_all_failed())


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(task_id: str, orchestrator: Orchestrator):
    task = await orchestrator.get_task(task_id)
    if not task:
        raise HTTPException(404, "Task not found")
    return task


@router.get("/{task_id}/badges", response_model=list[TaskBadge])
async def get_task_badges(task_id: str, orchestrator: Orchestrator):
    badges = await orchestrator.get_task_badges(task_id)
    if badges is None:
        raise HTTPException(404, "Task not found")
    return badges


@router.get("/{task_id}/notification-status", response_model=NotificationStatus)
async def get_notification_status(task_id: str, orchestrator: Orchestrator):
    return orchestrator.get_notification_status(task_id)


@router.post("", response_model=TaskActionResult, status_code=201)
async def create_task(body: TaskCreate, orchestrator: Orchestrator):
    return _respond(await orchestrator.create_task(body), success_status=201)


@router.put("/{task_id}", response_model=TaskActionResult)
async def update_task(task_id: str, body: TaskUpdate, orchestrator: Orchestrator):
    return _respond(await orchestrator.update_task(task_id, body))


@router.delete("/{task_id}", response_model=TaskActionResult)
async def delete_task(task_id: str, orchestrator: Orchestrator):
    return _respond(await orchestrator.delete_task(task_id))


@router.patch("/{task_id}/activate", response_model=TaskActionResult)
async def activate_task(task_id: str, orchestrator: Orchestrator):
    return _respond(await orchestrator.activate_task(task_id))


@router.patch("/{task_id}/complete", response_model=TaskActionResult)
async def complete_task(task_id: str, orchestrator: Orchestrator):
    return _respond(await orchestrator.complete_task(task_id))


@router.patch("/{task_id}/fail", response_model=TaskActionResult)
async def fail_task(task_id: str, orchestrator: Orchestrator):
    return _respond(await orchestrator.fail_task(task_id))


@router.patch("/{task_id}/reactivate", response_model=TaskActionResult)
async def reactivate_task(
    task_id: str,
    orchestrator: Orchestrator,
    body: Annotated[Optional[TaskReactivate], Body()] = None,
):
    return _respond(await orchestrator.reactivate_task(task_id, body))
