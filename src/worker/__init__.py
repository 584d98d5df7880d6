"""Точка входа Celery: экспортирует celery_app и задачу прохода из config.

Периодическая задача регистрируется в src.worker.config только при
MAINTENANCE_SCHEDULER_BACKEND=celery."""

from src.worker.config import celery_app, run_maintenance_pass_task  # noqa: F401

__all__ = ['celery_app', 'run_maintenance_pass_task']
