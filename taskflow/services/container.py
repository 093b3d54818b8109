"""Wires repository, presenter, timers, scheduler and orchestrator together."""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskflow.config import Settings, get_settings
from taskflow.services.notification_scheduler import NotificationScheduler
from taskflow.services.notification_service import build_presenter
from taskflow.services.ports import NotificationPresenter, TimerSource
from taskflow.services.scheduler_service import APSchedulerTimers
from taskflow.services.task_orchestrator import TaskOrchestrator
from taskflow.services.task_repository import SqlTaskRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ServiceContainer:
    repository: SqlTaskRepository
    scheduler: NotificationScheduler
    orchestrator: TaskOrchestrator


def build_container(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    settings: Optional[Settings] = None,
    presenter: Optional[NotificationPresenter] = None,
    timers: Optional[TimerSource] = None,
) -> ServiceContainer:
    settings = settings or get_settings()
    repository = SqlTaskRepository(session_factory)
    scheduler = NotificationScheduler(
        presenter or build_presenter(settings),
        timers or APSchedulerTimers(),
        task_source=repository.find_all,
        reconcile_interval_seconds=settings.RECONCILE_INTERVAL_SECONDS,
    )
    orchestrator = TaskOrchestrator(repository, scheduler)
    # Persist-on-fire: delivered reminders are recorded through the orchestrator.
    scheduler.on_fired = orchestrator.record_notification
    logger.debug("Service container built")
    return ServiceContainer(repository=repository, scheduler=scheduler, orchestrator=orchestrator)
