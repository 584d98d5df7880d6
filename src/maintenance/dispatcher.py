"""Побочные эффекты подтверждённого срабатывания аларма.

Порядок:
  1. MachineEvent (аудит). Ошибка – срабатывание не фиксируется вовсе,
     следующий проход повторит его.
  2. Учёт срабатывания в аларме одним вызовом record_alarm_trigger
     (last_triggered_at, times_triggered, маркер, сброс счётчика) при условии,
     что times_triggered не изменился с момента выборки. Иначе срабатывание
     уже учёл параллельный проход, и уведомление не отправляется.
  3. Уведомление, best-effort: ошибка логируется и попадает в отчёт, но
     срабатывание не откатывает.

Идентификатор события детерминирован по (alarm_id, trigger_number), поэтому
повтор после сбоя на шаге 2 не создаёт второго события.
"""
from __future__ import annotations

from datetime import datetime
from uuid import NAMESPACE_URL, uuid5

from src.config.logging import get_logger
from .errors import EventRecordingError, TriggerBookkeepingError
from .ports import EventRecorder, MachineRepository, NotificationDispatcher
from .types import DispatchReport, Machine, MachineEvent, MaintenanceAlarm

logger = get_logger(__name__)


def event_id_for(alarm_id: str, trigger_number: int) -> str:
    return str(uuid5(NAMESPACE_URL, f"maintenance-alarm/{alarm_id}/trigger/{trigger_number}"))


def build_event(machine: Machine, alarm: MaintenanceAlarm, now: datetime) -> MachineEvent:
    trigger_number = alarm.times_triggered + 1
    description = (
        f'Maintenance alarm "{alarm.title}" fired after {alarm.interval_hours:g} operating hours. '
        f'Accumulated hours: {alarm.accumulated_hours:g}h.'
    )
    if alarm.related_parts:
        description += f" Related parts: {', '.join(alarm.related_parts)}."
    return MachineEvent(
        id=event_id_for(alarm.id, trigger_number),
        machine_id=machine.id,
        alarm_id=alarm.id,
        triggered_at=now,
        accumulated_hours=alarm.accumulated_hours,
        trigger_number=trigger_number,
        title=f"Maintenance required: {alarm.title}",
        description=description,
    )


class AlarmTriggerDispatcher:

    def __init__(
        self,
        repository: MachineRepository,
        event_recorder: EventRecorder,
        notifier: NotificationDispatcher,
    ):
        self.repository = repository
        self.event_recorder = event_recorder
        self.notifier = notifier

    async def dispatch(self, machine: Machine, alarm: MaintenanceAlarm, now: datetime) -> DispatchReport:
        event = build_event(machine, alarm, now)

        # 1. Аудит
        try:
            recorded = await self.event_recorder.record_machine_event(event)
        except Exception as e:
            raise EventRecordingError(f"Event for alarm {alarm.id} not recorded: {e}") from e
        if not recorded:
            raise EventRecordingError(f"Event for alarm {alarm.id} not recorded")

        # 2. Учёт срабатывания (атомарно в хранилище, условно по times_triggered)
        committed = await self.repository.record_alarm_trigger(
            machine.id, alarm.id, now, alarm.reset_on_trigger,
            expected_times_triggered=alarm.times_triggered,
        )
        if not committed:
            # Параллельный проход уже учёл это срабатывание: уведомление не отправляем
            raise TriggerBookkeepingError(
                f"Trigger bookkeeping for alarm {alarm.id} not saved: times_triggered changed "
                f"concurrently or alarm missing (event {event.id} kept)"
            )
        alarm.last_triggered_at = now
        alarm.last_triggered_hours = alarm.accumulated_hours
        alarm.times_triggered += 1
        if alarm.reset_on_trigger:
            alarm.accumulated_hours = 0.0

        logger.info(
            f"Alarm triggered: machine={machine.id} alarm={alarm.id} '{alarm.title}' "
            f"at {event.accumulated_hours:g}h (#{event.trigger_number})"
        )

        # 3. Уведомление (fire-and-forget)
        error = None
        try:
            notified = await self.notifier.notify_maintenance_due(machine.id, alarm.id, alarm.title)
            if not notified:
                error = "notification dispatcher returned failure"
        except Exception as e:
            notified = False
            error = str(e)
        if error:
            logger.warning(f"Notification for alarm {alarm.id} failed: {error}")
        return DispatchReport(event_id=event.id, notified=bool(notified) and error is None, notification_error=error)


__all__ = ["AlarmTriggerDispatcher", "build_event", "event_id_for"]
