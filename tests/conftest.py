"""Общие фикстуры: in-memory коллабораторы движка и управляемые часы.

FakeMachineRepository хранит «персистентное» состояние отдельно от объектов,
которые отдаёт list_active_machines_with_active_alarms (глубокие копии), так
что изменения видны следующему проходу только через update/record вызовы –
как с настоящей БД.
"""
import asyncio
import copy
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from src.maintenance.clock import FixedClock
from src.maintenance.types import DayOfWeek, Machine, MachineEvent, MaintenanceAlarm, UsageSchedule

WEEKDAYS = frozenset({DayOfWeek.MON, DayOfWeek.TUE, DayOfWeek.WED, DayOfWeek.THU, DayOfWeek.FRI})
ALL_DAYS = frozenset(DayOfWeek)

# Понедельник
MONDAY = datetime(2025, 1, 6, tzinfo=timezone.utc)


def make_alarm(alarm_id: str, interval_hours: float = 40.0, **kwargs) -> MaintenanceAlarm:
    kwargs.setdefault("last_accumulation_checkpoint", MONDAY)
    title = kwargs.pop("title", f"Alarm {alarm_id}")
    return MaintenanceAlarm(id=alarm_id, title=title, interval_hours=interval_hours, **kwargs)


def make_machine(machine_id: str, alarms: List[MaintenanceAlarm], daily_hours: float = 8.0, days=WEEKDAYS, **kwargs) -> Machine:
    return Machine(
        id=machine_id,
        usage_schedule=UsageSchedule(daily_hours=daily_hours, operating_days=days),
        alarms=alarms,
        **kwargs,
    )


class FakeMachineRepository:

    def __init__(self, machines: Optional[List[Machine]] = None):
        self.machines: Dict[str, Machine] = {m.id: m for m in (machines or [])}
        self.list_calls = 0
        self.accumulation_calls: List[tuple] = []
        self.trigger_calls: List[tuple] = []
        self.fail_list = False
        self.fail_accumulation_for: Set[str] = set()
        self.conflict_for: Set[str] = set()
        self.fail_trigger_for: Set[str] = set()
        # Управление конкурентностью в тестах
        self.listed = asyncio.Event()
        self.list_gate: Optional[asyncio.Event] = None
        self.accumulation_gate: Optional[asyncio.Event] = None
        self.blocked_machines: Set[str] = set()
        self.accumulation_entered = asyncio.Event()

    def add(self, machine: Machine) -> None:
        self.machines[machine.id] = machine

    def alarm(self, machine_id: str, alarm_id: str) -> MaintenanceAlarm:
        return next(a for a in self.machines[machine_id].alarms if a.id == alarm_id)

    async def list_active_machines_with_active_alarms(self) -> List[Machine]:
        self.list_calls += 1
        self.listed.set()
        if self.list_gate is not None:
            await self.list_gate.wait()
        if self.fail_list:
            raise ConnectionError("machines table unavailable")
        return [
            copy.deepcopy(m) for m in self.machines.values()
            if m.is_active and m.active_alarms
        ]

    async def update_alarm_accumulation(self, machine_id, alarm_id, new_accumulated_hours, new_checkpoint, *, expected_checkpoint=None):
        self.accumulation_calls.append((machine_id, alarm_id, new_accumulated_hours, new_checkpoint))
        if machine_id in self.blocked_machines and self.accumulation_gate is not None:
            self.accumulation_entered.set()
            await self.accumulation_gate.wait()
        if machine_id in self.fail_accumulation_for:
            raise ConnectionError(f"write timeout for machine {machine_id}")
        stored = self.alarm(machine_id, alarm_id)
        if machine_id in self.conflict_for or stored.last_accumulation_checkpoint != expected_checkpoint:
            return False
        stored.accumulated_hours = new_accumulated_hours
        stored.last_accumulation_checkpoint = new_checkpoint
        return True

    async def record_alarm_trigger(self, machine_id, alarm_id, triggered_at, reset_accumulated, *, expected_times_triggered=None):
        self.trigger_calls.append((machine_id, alarm_id, triggered_at, reset_accumulated))
        if machine_id in self.fail_trigger_for:
            return False
        stored = self.alarm(machine_id, alarm_id)
        if expected_times_triggered is not None and stored.times_triggered != expected_times_triggered:
            return False
        stored.last_triggered_at = triggered_at
        stored.last_triggered_hours = stored.accumulated_hours
        stored.times_triggered += 1
        if reset_accumulated:
            stored.accumulated_hours = 0.0
        return True


class FakeEventRecorder:

    def __init__(self):
        self.events: Dict[tuple, MachineEvent] = {}
        self.calls = 0
        self.fail = False
        self.refuse = False
        # Одноразовый шлюз: первый вызов ждёт gate, следующие проходят сразу
        self.gate: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def record_machine_event(self, event: MachineEvent) -> bool:
        self.calls += 1
        if self.gate is not None:
            gate, self.gate = self.gate, None
            self.entered.set()
            await gate.wait()
        if self.fail:
            raise ConnectionError("event store unavailable")
        if self.refuse:
            return False
        self.events.setdefault((event.alarm_id, event.trigger_number), event)
        return True


class FakeNotifier:

    def __init__(self):
        self.sent: List[tuple] = []
        self.fail = False
        self.refuse = False

    async def notify_maintenance_due(self, machine_id: str, alarm_id: str, title: str) -> bool:
        if self.fail:
            raise TimeoutError("notification gateway timeout")
        if self.refuse:
            return False
        self.sent.append((machine_id, alarm_id, title))
        return True


@pytest.fixture
def clock():
    return FixedClock(MONDAY)


@pytest.fixture
def repository():
    return FakeMachineRepository()


@pytest.fixture
def recorder():
    return FakeEventRecorder()


@pytest.fixture
def notifier():
    return FakeNotifier()
