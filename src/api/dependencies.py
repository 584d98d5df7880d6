"""Общие зависимости FastAPI для админ-роутов."""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Header, HTTPException

from src.config.settings import get_settings
from src.maintenance.cron_service import MaintenanceCronService
from src.maintenance.service import get_cron_service


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> str:
    """Проверка X-Admin-Token. Без настроенного токена доступ открыт только в development/test."""
    settings = get_settings()
    expected = settings.ADMIN_API_TOKEN
    if not expected:
        if settings.is_development or settings.is_testing:
            return "anonymous-admin"
        raise HTTPException(status_code=403, detail="admin_token_not_configured")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="invalid_admin_token")
    return "admin"


def cron_service() -> MaintenanceCronService:
    return get_cron_service()


__all__ = ["require_admin", "cron_service"]
