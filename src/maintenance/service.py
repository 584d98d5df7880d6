"""Сборка MaintenanceCronService из настроек приложения."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from src.config.settings import Settings, get_settings
from .clock import Clock
from .cron_service import MaintenanceCronService
from .repository import (
    DatabaseNotificationDispatcher,
    SessionFactory,
    SqlAlchemyEventRecorder,
    SqlAlchemyMachineRepository,
)


def build_cron_service(
    settings: Optional[Settings] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    clock: Optional[Clock] = None,
) -> MaintenanceCronService:
    st = settings or get_settings()
    kwargs = {'session_factory': session_factory} if session_factory is not None else {}
    repository = SqlAlchemyMachineRepository(default_reset_on_trigger=st.MAINTENANCE_RESET_ON_TRIGGER, **kwargs)
    return MaintenanceCronService(
        repository,
        SqlAlchemyEventRecorder(**kwargs),
        DatabaseNotificationDispatcher(**kwargs),
        clock=clock,
        schedule_expression=st.CRON_MAINTENANCE_SCHEDULE,
        tz=st.timezone,
        max_workers=st.MAINTENANCE_MAX_WORKERS,
        run_deadline_seconds=st.MAINTENANCE_RUN_DEADLINE_SECONDS,
        min_interval_seconds=st.MAINTENANCE_MIN_INTERVAL_SECONDS,
        stop_timeout_seconds=st.MAINTENANCE_STOP_TIMEOUT_SECONDS,
    )


@lru_cache()
def get_cron_service() -> MaintenanceCronService:
    """Сервис процесса API (один на процесс, с кешированием)."""
    return build_cron_service()


__all__ = ["build_cron_service", "get_cron_service"]
