"""FastAPI application entry point with the reminder scheduler on APScheduler."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskflow.config import get_settings
from taskflow.database import AsyncSessionLocal, engine, init_db
from taskflow.services.container import build_container
from taskflow.services.scheduler_service import shutdown_scheduler, start_scheduler

logger = logging.getLogger(__name__)
settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.APP_DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s  %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting taskflow...")
    await init_db()
    start_scheduler()

    services = build_container(AsyncSessionLocal, settings=settings)
    app.state.services = services
    armed = await services.orchestrator.load_and_schedule()
    logger.info("Armed %d reminder(s) from stored tasks", armed)
    handle = await services.scheduler.initialize()

    yield

    # Shutdown
    handle.dispose()
    services.scheduler.clear_all()
    shutdown_scheduler()
    app.state.services = None


app = FastAPI(
    title="taskflow",
    description="Task lifecycle service with local reminder scheduling",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST API router
from taskflow.api.v1.router import router as api_router  # noqa: E402

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    """Basic liveness check."""
    return {"status": "ok", "service": "taskflow"}


@app.get("/health/ready")
async def health_ready():
    """Readiness check including the database."""
    from sqlalchemy import text

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ready", "database": "ok"}
    except Exception as e:
        logger.error("Health ready check failed: %s", e)
        return JSONResponse({"status": "not_ready", "database": "error"}, status_code=503)
