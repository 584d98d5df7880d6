"""Проверка условия срабатывания аларма.

Одно пересечение порога – ровно одно срабатывание:

* reset_on_trigger=True: после срабатывания счётчик обнуляется, поэтому
  accumulated >= interval всегда означает новое пересечение.
* reset_on_trigger=False: счётчик растёт дальше, а last_triggered_hours
  помнит значение на момент срабатывания. Следующее пересечение наступает
  при accumulated >= last_triggered_hours + interval. Если маркер сброшен
  вручную (None) или счётчик опустился ниже маркера, порог снова interval.
"""
from __future__ import annotations

from .errors import InvalidAlarmConfiguration
from .types import Evaluation, MaintenanceAlarm


class AlarmEvaluator:

    def validate(self, alarm: MaintenanceAlarm) -> None:
        if alarm.interval_hours is None or alarm.interval_hours <= 0:
            raise InvalidAlarmConfiguration(alarm.id, f"interval_hours must be positive, got {alarm.interval_hours}")
        if alarm.accumulated_hours < 0:
            raise InvalidAlarmConfiguration(alarm.id, f"accumulated_hours is negative ({alarm.accumulated_hours})")

    def threshold(self, alarm: MaintenanceAlarm) -> float:
        if alarm.reset_on_trigger:
            return float(alarm.interval_hours)
        marker = alarm.last_triggered_hours
        if alarm.last_triggered_at is None or marker is None or alarm.accumulated_hours < marker:
            return float(alarm.interval_hours)
        return float(marker + alarm.interval_hours)

    def evaluate(self, alarm: MaintenanceAlarm) -> Evaluation:
        if not alarm.is_active:
            return Evaluation(crossed=False, threshold=float(alarm.interval_hours or 0), reason="inactive")
        self.validate(alarm)

        threshold = self.threshold(alarm)
        if alarm.accumulated_hours < threshold:
            reason = "below_threshold"
            if alarm.is_overdue:
                # Просрочен, но это пересечение уже обработано
                reason = "already_triggered"
            return Evaluation(crossed=False, threshold=threshold, reason=reason)
        return Evaluation(crossed=True, threshold=threshold, reason="threshold_crossed")


__all__ = ["AlarmEvaluator"]
