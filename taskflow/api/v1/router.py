"""Aggregates all v1 routers."""
from fastapi import APIRouter

from taskflow.api.v1.tasks import router as tasks_router

router = APIRouter()
router.include_router(tasks_router)
