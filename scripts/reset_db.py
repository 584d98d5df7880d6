#!/usr/bin/env python
"""Очистка БД проекта: удаление строк основных таблиц.
Требует валидного DATABASE_URL. Используйте осторожно.
"""
import asyncio

from sqlalchemy import text

from src.config.logging import get_logger
from src.config.settings import get_settings
from src.database.connection import engine

logger = get_logger(__name__)

# Порядок: сначала зависимые таблицы
TABLES = [
    'notifications',
    'machine_events',
    'maintenance_alarms',
    'machines',
]


async def reset_db():
    if get_settings().is_production:
        raise RuntimeError('Нельзя выполнять reset_db в production среде')
    async with engine.begin() as conn:
        for t in TABLES:
            await conn.execute(text(f'DELETE FROM {t}'))
    logger.info('База данных очищена')
    await engine.dispose()

if __name__ == '__main__':
    asyncio.run(reset_db())
