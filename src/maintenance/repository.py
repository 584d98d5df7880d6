"""Реализации коллабораторов движка на SQLAlchemy (async).

Каждое изменение аларма – один UPDATE с условием, без чтения-потом-записи:
  - накопление: compare-and-set по last_accumulation_checkpoint;
  - срабатывание: times_triggered + 1 только если он равен прочитанному
    значению; маркер и сброс считаются в SQL от текущих значений строки.
"""
from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.config.logging import get_logger
from src.database.connection import get_async_session
from src.database.models import (
    Machine as MachineRow,
    MachineEvent as MachineEventRow,
    MachineStatus,
    MaintenanceAlarm as AlarmRow,
    Notification as NotificationRow,
)
from .types import Machine, MachineEvent, MaintenanceAlarm, UsageSchedule

logger = get_logger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite возвращает naive datetime; храним и сравниваем всё в UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def alarm_from_row(row: AlarmRow, default_reset_on_trigger: bool = True) -> MaintenanceAlarm:
    return MaintenanceAlarm(
        id=str(row.id),
        title=row.title,
        description=row.description,
        related_parts=list(row.related_parts or []),
        interval_hours=float(row.interval_hours),
        accumulated_hours=float(row.accumulated_hours or 0.0),
        is_active=bool(row.is_active),
        reset_on_trigger=default_reset_on_trigger if row.reset_on_trigger is None else bool(row.reset_on_trigger),
        last_accumulation_checkpoint=_utc(row.last_accumulation_checkpoint),
        last_triggered_at=_utc(row.last_triggered_at),
        last_triggered_hours=float(row.last_triggered_hours) if row.last_triggered_hours is not None else None,
        times_triggered=int(row.times_triggered or 0),
        created_at=_utc(row.created_at),
    )


def machine_from_row(row: MachineRow, default_reset_on_trigger: bool = True) -> Machine:
    """Строка машины в доменный объект.

    Битые данные (daily_hours вне [0, 24], неизвестный день недели в
    operating_days, нечисловые поля аларма) не роняют выборку: причина
    попадает в load_errors, а проход отчитается о ней как об ошибке
    конфигурации этой машины.
    """
    machine_id = str(row.id)
    load_errors = []
    try:
        schedule = UsageSchedule(
            daily_hours=float(row.daily_hours or 0.0),
            operating_days=frozenset(row.operating_days or []),
        )
    except (TypeError, ValueError) as e:
        schedule = UsageSchedule()
        load_errors.append((None, f"invalid usage schedule: {e}"))
        logger.warning(f"Machine {machine_id} has invalid usage schedule: {e}")

    alarms = []
    for alarm_row in row.alarms:
        try:
            alarms.append(alarm_from_row(alarm_row, default_reset_on_trigger))
        except (TypeError, ValueError) as e:
            load_errors.append((str(alarm_row.id), f"invalid alarm row: {e}"))
            logger.warning(f"Alarm {alarm_row.id} of machine {machine_id} could not be loaded: {e}")

    return Machine(
        id=machine_id,
        name=row.name,
        is_active=row.status == MachineStatus.ACTIVE,
        usage_schedule=schedule,
        alarms=alarms,
        load_errors=load_errors,
    )


class SqlAlchemyMachineRepository:

    def __init__(self, session_factory: SessionFactory = get_async_session, default_reset_on_trigger: bool = True):
        self.session_factory = session_factory
        self.default_reset_on_trigger = default_reset_on_trigger

    async def list_active_machines_with_active_alarms(self) -> List[Machine]:
        async with self.session_factory() as session:
            res = await session.execute(
                select(MachineRow)
                .where(MachineRow.status == MachineStatus.ACTIVE)
                .where(MachineRow.alarms.any(AlarmRow.is_active.is_(True)))
                .options(selectinload(MachineRow.alarms))
                .order_by(MachineRow.created_at)
            )
            rows = res.scalars().all()
            return [machine_from_row(r, self.default_reset_on_trigger) for r in rows]

    async def update_alarm_accumulation(
        self,
        machine_id: str,
        alarm_id: str,
        new_accumulated_hours: float,
        new_checkpoint: datetime,
        *,
        expected_checkpoint: Optional[datetime] = None,
    ) -> bool:
        stmt = (
            update(AlarmRow)
            .where(AlarmRow.id == UUID(alarm_id), AlarmRow.machine_id == UUID(machine_id))
            .values(accumulated_hours=new_accumulated_hours, last_accumulation_checkpoint=_utc(new_checkpoint))
            .execution_options(synchronize_session=False)
        )
        if expected_checkpoint is None:
            stmt = stmt.where(AlarmRow.last_accumulation_checkpoint.is_(None))
        else:
            stmt = stmt.where(AlarmRow.last_accumulation_checkpoint == _utc(expected_checkpoint))
        async with self.session_factory() as session:
            res = await session.execute(stmt)
            await session.commit()
            return res.rowcount == 1

    async def record_alarm_trigger(
        self,
        machine_id: str,
        alarm_id: str,
        triggered_at: datetime,
        reset_accumulated: bool,
        *,
        expected_times_triggered: Optional[int] = None,
    ) -> bool:
        values = {
            'last_triggered_at': _utc(triggered_at),
            'last_triggered_hours': AlarmRow.accumulated_hours,
            'times_triggered': AlarmRow.times_triggered + 1,
        }
        if reset_accumulated:
            values['accumulated_hours'] = 0.0
        stmt = (
            update(AlarmRow)
            .where(AlarmRow.id == UUID(alarm_id), AlarmRow.machine_id == UUID(machine_id))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if expected_times_triggered is not None:
            stmt = stmt.where(AlarmRow.times_triggered == expected_times_triggered)
        async with self.session_factory() as session:
            res = await session.execute(stmt)
            await session.commit()
            return res.rowcount == 1

    async def clear_alarm(self, alarm_id: str) -> bool:
        """Ручной сброс после обслуживания: счётчик в 0, маркер срабатывания снят."""
        stmt = (
            update(AlarmRow)
            .where(AlarmRow.id == UUID(alarm_id))
            .values(accumulated_hours=0.0, last_triggered_hours=None)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            res = await session.execute(stmt)
            await session.commit()
            return res.rowcount == 1


class SqlAlchemyEventRecorder:

    def __init__(self, session_factory: SessionFactory = get_async_session):
        self.session_factory = session_factory

    async def record_machine_event(self, event: MachineEvent) -> bool:
        async with self.session_factory() as session:
            existing = await session.execute(
                select(MachineEventRow.id).where(
                    MachineEventRow.alarm_id == UUID(event.alarm_id),
                    MachineEventRow.trigger_number == event.trigger_number,
                )
            )
            if existing.scalar_one_or_none() is not None:
                logger.info(f"Event for alarm {event.alarm_id} #{event.trigger_number} already recorded")
                return True
            session.add(MachineEventRow(
                id=UUID(event.id),
                machine_id=UUID(event.machine_id),
                alarm_id=UUID(event.alarm_id),
                trigger_number=event.trigger_number,
                title=event.title,
                description=event.description,
                triggered_at=_utc(event.triggered_at),
                accumulated_hours=event.accumulated_hours,
            ))
            try:
                await session.commit()
            except IntegrityError:
                # Параллельная запись того же срабатывания
                await session.rollback()
                logger.info(f"Event for alarm {event.alarm_id} #{event.trigger_number} recorded concurrently")
            return True


class DatabaseNotificationDispatcher:

    def __init__(self, session_factory: SessionFactory = get_async_session):
        self.session_factory = session_factory

    async def notify_maintenance_due(self, machine_id: str, alarm_id: str, title: str) -> bool:
        async with self.session_factory() as session:
            session.add(NotificationRow(
                machine_id=UUID(machine_id),
                alarm_id=UUID(alarm_id),
                notification_type="maintenance_due",
                message=f"Maintenance required: {title}"[:500],
            ))
            await session.commit()
        return True


__all__ = [
    "SqlAlchemyMachineRepository",
    "SqlAlchemyEventRecorder",
    "DatabaseNotificationDispatcher",
    "machine_from_row",
    "alarm_from_row",
]
