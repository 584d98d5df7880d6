"""Накопление часов работы по расписанию использования машины.

Интервал [чекпоинт, now) режется по границам календарных дней в таймзоне
расписания. Каждый день даёт daily_hours * (перекрытие / длина дня), если это
рабочий день, иначе 0. Полные дни дают daily_hours целиком, частичные –
пропорционально; длина дня берётся реальная (23/25 часов при переходе на
летнее время).

Новый счётчик и новый чекпоинт пишутся в хранилище одним вызовом
update_alarm_accumulation и только после успеха отражаются на объекте аларма.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional

from src.config.logging import get_logger
from .errors import AccumulationConflict
from .ports import MachineRepository
from .types import Machine, MaintenanceAlarm, UsageSchedule

logger = get_logger(__name__)

# Точность хранения накопленных часов
HOURS_PRECISION = 6


def _midnight_utc(d: date, tz: tzinfo) -> datetime:
    # Разность aware-datetime с одинаковым tzinfo игнорирует смещение, поэтому считаем в UTC
    return datetime(d.year, d.month, d.day, tzinfo=tz).astimezone(timezone.utc)


def operating_hours_between(schedule: UsageSchedule, start: datetime, end: datetime, tz: tzinfo = timezone.utc) -> float:
    """Часы работы машины в интервале [start, end). Никогда не отрицательно."""
    if not schedule.accrues or end <= start:
        return 0.0

    start = start.astimezone(timezone.utc)
    end = end.astimezone(timezone.utc)
    total = 0.0
    local_day = start.astimezone(tz).date()
    day_start = _midnight_utc(local_day, tz)
    while day_start < end:
        next_day = local_day + timedelta(days=1)
        day_end = _midnight_utc(next_day, tz)
        if schedule.is_operating_day(local_day):
            overlap = (min(end, day_end) - max(start, day_start)).total_seconds()
            if overlap > 0:
                day_length = (day_end - day_start).total_seconds()
                total += schedule.daily_hours * overlap / day_length
        local_day, day_start = next_day, day_end
    return round(total, HOURS_PRECISION)


class UsageAccumulator:
    """Переводит прошедшее время в часы работы и сдвигает чекпоинт аларма."""

    def __init__(self, repository: MachineRepository, tz: tzinfo = timezone.utc):
        self.repository = repository
        self.tz = tz

    def effective_checkpoint(self, alarm: MaintenanceAlarm) -> Optional[datetime]:
        return alarm.last_accumulation_checkpoint or alarm.created_at

    def compute(self, machine: Machine, alarm: MaintenanceAlarm, now: datetime) -> float:
        checkpoint = self.effective_checkpoint(alarm)
        if checkpoint is None:
            return 0.0
        return operating_hours_between(machine.usage_schedule, checkpoint, now, self.tz)

    async def accumulate(self, machine: Machine, alarm: MaintenanceAlarm, now: datetime) -> float:
        """Добавить часы с последнего чекпоинта; возвращает добавленные часы.

        now <= чекпоинт (clock skew) – 0, в хранилище ничего не пишется.
        Отказ compare-and-set – AccumulationConflict, аларм не тронут.
        """
        previous = alarm.last_accumulation_checkpoint
        checkpoint = self.effective_checkpoint(alarm)

        if checkpoint is not None and now <= checkpoint:
            if now < checkpoint:
                logger.warning(
                    f"Clock skew: now={now.isoformat()} раньше чекпоинта {checkpoint.isoformat()} "
                    f"(machine={machine.id}, alarm={alarm.id}), накопление пропущено"
                )
            return 0.0

        added = self.compute(machine, alarm, now)
        new_accumulated = round(alarm.accumulated_hours + added, HOURS_PRECISION)

        ok = await self.repository.update_alarm_accumulation(
            machine.id,
            alarm.id,
            new_accumulated,
            now,
            expected_checkpoint=previous,
        )
        if not ok:
            raise AccumulationConflict(machine.id, alarm.id)

        alarm.accumulated_hours = new_accumulated
        alarm.last_accumulation_checkpoint = now
        if checkpoint is None:
            logger.info(f"Alarm {alarm.id}: первый чекпоинт накопления {now.isoformat()}")
        else:
            logger.debug(
                f"Alarm {alarm.id}: +{added}h (итого {new_accumulated}h из {alarm.interval_hours}h)"
            )
        return added


__all__ = ["UsageAccumulator", "operating_hours_between", "HOURS_PRECISION"]
