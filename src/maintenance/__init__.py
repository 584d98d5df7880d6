"""Движок алармов обслуживания: накопление часов работы и срабатывания."""

from src.maintenance.accumulator import UsageAccumulator
from src.maintenance.clock import Clock, FixedClock, SystemClock
from src.maintenance.cron_service import MaintenanceCronService
from src.maintenance.dispatcher import AlarmTriggerDispatcher
from src.maintenance.evaluator import AlarmEvaluator
from src.maintenance.types import (
    DayOfWeek,
    Machine,
    MaintenanceAlarm,
    PartialFailure,
    RunResult,
    SchedulerState,
    Skipped,
    Success,
    UsageSchedule,
)

__all__ = [
    'UsageAccumulator', 'AlarmEvaluator', 'AlarmTriggerDispatcher', 'MaintenanceCronService',
    'Clock', 'SystemClock', 'FixedClock',
    'DayOfWeek', 'Machine', 'MaintenanceAlarm', 'UsageSchedule',
    'RunResult', 'Success', 'Skipped', 'PartialFailure', 'SchedulerState',
]
