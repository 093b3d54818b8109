"""FastAPI dependencies."""

from fastapi import HTTPException, Request

from taskflow.services.task_orchestrator import TaskOrchestrator


async def get_orchestrator(request: Request) -> TaskOrchestrator:
    container = getattr(request.app.state, "services", None)
    if container is None:
        raise HTTPException(status_code=503, detail="Task services not started")
    return container.orchestrator
