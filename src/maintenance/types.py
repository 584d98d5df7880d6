"""Доменные типы движка: машина, аларм, событие, результат прохода."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum as PyEnum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union


class DayOfWeek(PyEnum):
    # Порядок совпадает с date.weekday(): 0 = понедельник
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"

    @classmethod
    def from_date(cls, d: date) -> "DayOfWeek":
        return _WEEKDAYS[d.weekday()]


_WEEKDAYS = list(DayOfWeek)


@dataclass(frozen=True)
class UsageSchedule:
    daily_hours: float = 0.0
    operating_days: FrozenSet[DayOfWeek] = frozenset()

    def __post_init__(self):
        if self.daily_hours < 0 or self.daily_hours > 24:
            raise ValueError(f"daily_hours must be within [0, 24], got {self.daily_hours}")
        object.__setattr__(self, "operating_days", frozenset(DayOfWeek(d) for d in self.operating_days))

    @property
    def accrues(self) -> bool:
        return self.daily_hours > 0 and bool(self.operating_days)

    def is_operating_day(self, d: date) -> bool:
        return DayOfWeek.from_date(d) in self.operating_days


@dataclass
class MaintenanceAlarm:
    id: str
    title: str
    interval_hours: float
    accumulated_hours: float = 0.0
    is_active: bool = True
    reset_on_trigger: bool = True
    last_accumulation_checkpoint: Optional[datetime] = None
    last_triggered_at: Optional[datetime] = None
    # Значение счётчика в момент последнего срабатывания (маркер «пересечение обработано»)
    last_triggered_hours: Optional[float] = None
    times_triggered: int = 0
    description: Optional[str] = None
    related_parts: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    @property
    def is_overdue(self) -> bool:
        return self.accumulated_hours >= self.interval_hours


@dataclass
class Machine:
    id: str
    usage_schedule: UsageSchedule
    is_active: bool = True
    name: Optional[str] = None
    alarms: List[MaintenanceAlarm] = field(default_factory=list)
    # Ошибки разбора строки хранилища: (alarm_id или None для самой машины, причина)
    load_errors: List[Tuple[Optional[str], str]] = field(default_factory=list)

    @property
    def active_alarms(self) -> List[MaintenanceAlarm]:
        return [a for a in self.alarms if a.is_active]


@dataclass(frozen=True)
class MachineEvent:
    id: str
    machine_id: str
    alarm_id: str
    triggered_at: datetime
    accumulated_hours: float
    trigger_number: int
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Evaluation:
    crossed: bool
    threshold: float
    reason: str


@dataclass(frozen=True)
class DispatchReport:
    event_id: str
    notified: bool
    notification_error: Optional[str] = None


@dataclass(frozen=True)
class RunError:
    machine_id: Optional[str]
    alarm_id: Optional[str]
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'machine_id': self.machine_id,
            'alarm_id': self.alarm_id,
            'kind': self.kind,
            'message': self.message,
        }


@dataclass
class RunResult:
    run_id: str
    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    machines_processed: int = 0
    machines_not_started: int = 0
    alarms_evaluated: int = 0
    alarms_triggered: int = 0
    errors: List[RunError] = field(default_factory=list)
    notification_failures: List[RunError] = field(default_factory=list)
    deadline_exceeded: bool = False

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def failed_machine_ids(self) -> List[str]:
        return sorted({e.machine_id for e in self.errors if e.machine_id})

    def summary(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'trigger': self.trigger,
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration_seconds': round(self.duration_seconds, 3) if self.duration_seconds is not None else None,
            'machines_processed': self.machines_processed,
            'machines_not_started': self.machines_not_started,
            'alarms_evaluated': self.alarms_evaluated,
            'alarms_triggered': self.alarms_triggered,
            'errors': [e.to_dict() for e in self.errors],
            'notification_failures': [e.to_dict() for e in self.notification_failures],
            'deadline_exceeded': self.deadline_exceeded,
        }


# ----------------------- RunOutcome (tagged variant) -----------------------
@dataclass(frozen=True)
class Success:
    result: RunResult
    status: str = "success"

    @property
    def ran(self) -> bool:
        return True


@dataclass(frozen=True)
class Skipped:
    reason: str
    at: datetime
    status: str = "skipped"

    @property
    def ran(self) -> bool:
        return False


@dataclass(frozen=True)
class PartialFailure:
    result: RunResult
    status: str = "partial_failure"

    @property
    def ran(self) -> bool:
        return True

    @property
    def errors(self) -> List[RunError]:
        return self.result.errors


RunOutcome = Union[Success, Skipped, PartialFailure]


class SchedulerState(str, PyEnum):
    STOPPED = "stopped"
    SCHEDULED = "scheduled"
    RUNNING = "running"


@dataclass(frozen=True)
class SchedulerStatus:
    state: SchedulerState
    schedule: str
    timezone: str
    scheduler_armed: bool
    last_execution_at: Optional[datetime]
    last_result: Optional[RunResult]
    next_execution_at: Optional[datetime]
    seconds_since_last_execution: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'schedule': self.schedule,
            'timezone': self.timezone,
            'scheduler_armed': self.scheduler_armed,
            'last_execution_at': self.last_execution_at.isoformat() if self.last_execution_at else None,
            'last_result': self.last_result.summary() if self.last_result else None,
            'next_execution_at': self.next_execution_at.isoformat() if self.next_execution_at else None,
            'seconds_since_last_execution': self.seconds_since_last_execution,
        }


__all__ = [
    "DayOfWeek", "UsageSchedule", "MaintenanceAlarm", "Machine", "MachineEvent",
    "Evaluation", "DispatchReport", "RunError", "RunResult",
    "Success", "Skipped", "PartialFailure", "RunOutcome",
    "SchedulerState", "SchedulerStatus",
]
