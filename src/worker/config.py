# Минимальная конфигурация Celery (имя maintenance, брокер/бэкенд из settings)

from celery import Celery
from celery.schedules import crontab

from src.config.settings import get_settings
from src.config.logging import get_logger
from src.maintenance.errors import InvalidScheduleError
from src.maintenance.schedule import CronSchedule, parse_schedule
import os

settings = get_settings()
logger = get_logger(__name__)

celery_app = Celery(
    'maintenance',
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone=settings.CRON_TIMEZONE,
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    # Жёсткий лимит чуть больше дедлайна прохода: дедлайн срабатывает первым
    task_time_limit=int(settings.MAINTENANCE_RUN_DEADLINE_SECONDS) + 120,
    task_soft_time_limit=int(settings.MAINTENANCE_RUN_DEADLINE_SECONDS) + 60,
    result_expires=86400,
    task_routes={
        'maintenance.run_pass': {'queue': 'maintenance'},
    },
)


async def _run_pass_async(trigger: str) -> dict:
    from src.database.connection import engine
    from src.maintenance.service import build_cron_service
    service = build_cron_service()
    try:
        outcome = await service.execute(trigger=trigger)
    finally:
        # Пул соединений привязан к event loop этого asyncio.run
        await engine.dispose()
    if outcome.ran:
        return {'status': outcome.status, **outcome.result.summary()}
    return {'status': outcome.status, 'reason': outcome.reason, 'at': outcome.at.isoformat()}


@celery_app.task(name='maintenance.run_pass')
def run_maintenance_pass_task(trigger: str = 'schedule'):
    """Один проход проверки алармов обслуживания (периодическая задача beat)."""
    import asyncio
    logger.info(f"[Celery] maintenance pass start trigger={trigger}")
    return asyncio.run(_run_pass_async(trigger))


def beat_schedule_entry(expression: str, tz=None):
    """Расписание beat для выражения CRON_MAINTENANCE_SCHEDULE (crontab или интервал)."""
    schedule = parse_schedule(expression, tz or settings.timezone)
    if isinstance(schedule, CronSchedule):
        minute, hour, day_of_month, month_of_year, day_of_week = schedule.fields
        return crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month_of_year,
            day_of_week=day_of_week,
        )
    return schedule.interval


@celery_app.on_after_configure.connect  # pragma: no cover
def setup_periodic_tasks(sender, **kwargs):
    if settings.MAINTENANCE_SCHEDULER_BACKEND != 'celery':
        return
    try:
        entry = beat_schedule_entry(settings.CRON_MAINTENANCE_SCHEDULE)
    except InvalidScheduleError as e:
        logger.error(f"[Celery] maintenance pass not scheduled: {e}")
        raise
    sender.add_periodic_task(entry, run_maintenance_pass_task.s('schedule'), name='maintenance_alarms_pass')


# Локальный режим без брокера (eager) при отладке / тестах:
if os.getenv('CELERY_TASK_ALWAYS_EAGER', '0').lower() in {'1', 'true', 'yes'}:
    celery_app.conf.task_always_eager = True
    celery_app.conf.task_eager_propagates = True
    logger.info('[Celery] task_always_eager=TRUE (локальный режим без брокера)')


__all__ = ["celery_app", "run_maintenance_pass_task", "beat_schedule_entry"]
