#!/usr/bin/env python
"""Быстрая инициализация БД (без Alembic) для локального запуска.

Шаги:
 1. (опц.) DROP таблиц моделей при --drop
 2. Создание ORM таблиц (Base.metadata.create_all)
 3. (опц.) демо-данные при --seed: одна машина (Пн-Пт, 8 ч/день) с двумя алармами

Для production используйте Alembic (alembic upgrade head).
"""
from __future__ import annotations
import argparse
import asyncio
from datetime import datetime, timezone

from src.config.logging import get_logger
from src.database.connection import async_session_maker, engine
from src.database.models import Base, Machine, MachineStatus, MaintenanceAlarm

logger = get_logger(__name__)


async def init_schema(drop: bool = False):
    async with engine.begin() as conn:
        if drop:
            logger.warning("DROP всех ORM таблиц (Base.metadata.drop_all)")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        logger.info("ORM таблицы синхронизированы")


async def seed_demo():
    now = datetime.now(timezone.utc)
    async with async_session_maker() as session:
        machine = Machine(
            name="Demo press",
            status=MachineStatus.ACTIVE,
            daily_hours=8.0,
            operating_days=["MON", "TUE", "WED", "THU", "FRI"],
        )
        machine.alarms = [
            MaintenanceAlarm(title="Oil change", interval_hours=250.0, last_accumulation_checkpoint=now,
                             related_parts=["oil filter"]),
            MaintenanceAlarm(title="Belt inspection", interval_hours=40.0, last_accumulation_checkpoint=now),
        ]
        session.add(machine)
        await session.commit()
        logger.info(f"Демо-машина создана: {machine.id}")


async def main(drop: bool, seed: bool):
    await init_schema(drop=drop)
    if seed:
        await seed_demo()
    await engine.dispose()


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description="Init maintenance DB schema")
    parser.add_argument('--drop', action='store_true', help='Удалить таблицы перед созданием')
    parser.add_argument('--seed', action='store_true', help='Добавить демо-данные')
    args = parser.parse_args()
    asyncio.run(main(args.drop, args.seed))
