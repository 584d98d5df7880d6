"""Интерфейсы внешних коллабораторов движка.

Реализации на SQLAlchemy лежат в src.maintenance.repository, в тестах –
in-memory фейки.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Protocol

from .types import Machine, MachineEvent


class MachineRepository(Protocol):
    async def list_active_machines_with_active_alarms(self) -> List[Machine]: ...

    async def update_alarm_accumulation(
        self,
        machine_id: str,
        alarm_id: str,
        new_accumulated_hours: float,
        new_checkpoint: datetime,
        *,
        expected_checkpoint: Optional[datetime] = None,
    ) -> bool:
        """Атомарно записать счётчик и чекпоинт.

        False – чекпоинт в хранилище уже не равен expected_checkpoint
        (параллельное изменение), ничего не записано.
        """
        ...

    async def record_alarm_trigger(
        self,
        machine_id: str,
        alarm_id: str,
        triggered_at: datetime,
        reset_accumulated: bool,
        *,
        expected_times_triggered: Optional[int] = None,
    ) -> bool:
        """False – аларм не найден либо times_triggered уже не равен ожидаемому
        (срабатывание учтено параллельным проходом), ничего не записано.
        """
        ...


class EventRecorder(Protocol):
    async def record_machine_event(self, event: MachineEvent) -> bool:
        """Идемпотентно по (alarm_id, trigger_number): повтор не создаёт дубль."""
        ...


class NotificationDispatcher(Protocol):
    async def notify_maintenance_due(self, machine_id: str, alarm_id: str, title: str) -> bool: ...


__all__ = ["MachineRepository", "EventRecorder", "NotificationDispatcher"]
