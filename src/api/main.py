"""FastAPI приложение: health-эндпоинты и админ-управление проверкой алармов.

При MAINTENANCE_SCHEDULER_BACKEND=inprocess таймер проверки взводится на
старте приложения и мягко останавливается при завершении. При backend=celery
расписанием управляет celery beat (src.worker.config).
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from src.api.routes import admin_cron
from src.config.logging import configure_logging, get_logger
from src.config.settings import Settings, get_settings
from src.database.connection import check_connection
from src.maintenance.service import get_cron_service

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    st = settings or get_settings()
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        service = None
        if st.MAINTENANCE_SCHEDULER_BACKEND == "inprocess":
            service = get_cron_service()
            service.start()
        else:
            logger.info("Maintenance scheduling delegated to celery beat")
        yield
        if service is not None:
            drained = await service.stop()
            if not drained:
                logger.warning("Shutdown continues with maintenance pass still running")

    app = FastAPI(title=st.APP_NAME, version=st.APP_VERSION, lifespan=lifespan)
    app.include_router(admin_cron.router)

    @app.get("/health")
    async def health():
        return {'status': 'ok', 'environment': st.APP_ENVIRONMENT}

    @app.get("/health/db")
    async def health_db():
        ok = await check_connection()
        return {'database': 'ok' if ok else 'unavailable'}

    return app


app = create_app()
