"""SQLAlchemy-коллабораторы движка на SQLite (aiosqlite): выборка, CAS, срабатывание, идемпотентность событий."""
from datetime import timedelta
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config.settings import Settings
from src.database.models import (
    Base,
    Machine,
    MachineEvent,
    MachineStatus,
    MaintenanceAlarm,
    Notification,
)
from src.maintenance.clock import FixedClock
from src.maintenance.dispatcher import build_event
from src.maintenance.repository import SqlAlchemyEventRecorder, SqlAlchemyMachineRepository
from src.maintenance.service import build_cron_service
from src.maintenance.types import PartialFailure, Success
from tests.conftest import MONDAY

WEEKDAYS = ["MON", "TUE", "WED", "THU", "FRI"]


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'maintenance.sqlite'}", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


async def _seed(session_factory, **alarm_kwargs):
    alarm_kwargs.setdefault("interval_hours", 40.0)
    alarm_kwargs.setdefault("last_accumulation_checkpoint", MONDAY)
    async with session_factory() as session:
        machine = Machine(name="Press #1", status=MachineStatus.ACTIVE, daily_hours=8.0, operating_days=WEEKDAYS)
        alarm = MaintenanceAlarm(title="Belt inspection", related_parts=["belt"], **alarm_kwargs)
        machine.alarms = [alarm]
        session.add(machine)
        await session.commit()
        return str(machine.id), str(alarm.id)


async def _alarm(session_factory, alarm_id):
    async with session_factory() as session:
        return await session.get(MaintenanceAlarm, UUID(alarm_id))


async def _count(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()


def _settings(**overrides):
    return Settings(APP_ENVIRONMENT="test", MAINTENANCE_MAX_WORKERS=1, **overrides)


@pytest.mark.asyncio
async def test_lists_only_active_machines_with_active_alarms(session_factory):
    machine_id, _ = await _seed(session_factory)
    async with session_factory() as session:
        idle = Machine(name="Stopped", status=MachineStatus.INACTIVE, daily_hours=8.0, operating_days=WEEKDAYS)
        idle.alarms = [MaintenanceAlarm(title="x", interval_hours=10.0)]
        silent = Machine(name="No alarms", status=MachineStatus.ACTIVE, daily_hours=8.0, operating_days=WEEKDAYS)
        silent.alarms = [MaintenanceAlarm(title="off", interval_hours=10.0, is_active=False)]
        session.add_all([idle, silent])
        await session.commit()

    machines = await SqlAlchemyMachineRepository(session_factory).list_active_machines_with_active_alarms()

    assert [m.id for m in machines] == [machine_id]
    machine = machines[0]
    assert machine.usage_schedule.daily_hours == 8.0
    assert machine.load_errors == []
    assert machine.alarms[0].last_accumulation_checkpoint == MONDAY
    assert machine.alarms[0].related_parts == ["belt"]


@pytest.mark.asyncio
async def test_full_pass_triggers_once(session_factory):
    machine_id, alarm_id = await _seed(session_factory)
    clock = FixedClock(MONDAY + timedelta(days=7))
    service = build_cron_service(_settings(), session_factory=session_factory, clock=clock)

    outcome = await service.execute()
    assert isinstance(outcome, Success)
    assert outcome.result.alarms_triggered == 1

    # Повтор без нового времени работы не даёт второго срабатывания
    await service.execute()

    row = await _alarm(session_factory, alarm_id)
    assert row.times_triggered == 1
    assert row.accumulated_hours == 0.0
    assert row.last_triggered_hours == 40.0
    assert await _count(session_factory, MachineEvent) == 1
    assert await _count(session_factory, Notification) == 1


@pytest.mark.asyncio
async def test_reset_default_comes_from_settings(session_factory):
    _, alarm_id = await _seed(session_factory)
    clock = FixedClock(MONDAY + timedelta(days=7))
    service = build_cron_service(
        _settings(MAINTENANCE_RESET_ON_TRIGGER=False), session_factory=session_factory, clock=clock
    )

    await service.execute()

    row = await _alarm(session_factory, alarm_id)
    assert row.times_triggered == 1
    assert row.accumulated_hours == 40.0


@pytest.mark.asyncio
async def test_accumulation_compare_and_set(session_factory):
    machine_id, alarm_id = await _seed(session_factory, accumulated_hours=3.0)
    repo = SqlAlchemyMachineRepository(session_factory)
    later = MONDAY + timedelta(days=1)

    stale = await repo.update_alarm_accumulation(
        machine_id, alarm_id, 99.0, later, expected_checkpoint=MONDAY - timedelta(days=1)
    )
    assert stale is False
    assert (await _alarm(session_factory, alarm_id)).accumulated_hours == 3.0

    ok = await repo.update_alarm_accumulation(machine_id, alarm_id, 11.0, later, expected_checkpoint=MONDAY)
    assert ok is True
    assert (await _alarm(session_factory, alarm_id)).accumulated_hours == 11.0

    # Второй писатель с тем же ожидаемым чекпоинтом проигрывает
    again = await repo.update_alarm_accumulation(machine_id, alarm_id, 19.0, later, expected_checkpoint=MONDAY)
    assert again is False


@pytest.mark.asyncio
async def test_event_recording_is_idempotent(session_factory):
    machine_id, alarm_id = await _seed(session_factory)
    repo = SqlAlchemyMachineRepository(session_factory)
    machine = (await repo.list_active_machines_with_active_alarms())[0]
    event = build_event(machine, machine.alarms[0], MONDAY + timedelta(days=7))
    recorder = SqlAlchemyEventRecorder(session_factory)

    assert await recorder.record_machine_event(event) is True
    assert await recorder.record_machine_event(event) is True
    assert await _count(session_factory, MachineEvent) == 1


@pytest.mark.asyncio
async def test_clear_alarm(session_factory):
    machine_id, alarm_id = await _seed(session_factory, accumulated_hours=55.0, last_triggered_hours=40.0)
    repo = SqlAlchemyMachineRepository(session_factory)

    assert await repo.clear_alarm(alarm_id) is True
    row = await _alarm(session_factory, alarm_id)
    assert row.accumulated_hours == 0.0
    assert row.last_triggered_hours is None
    assert await repo.clear_alarm("00000000-0000-0000-0000-000000000000") is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "daily_hours, operating_days",
    [(30.0, WEEKDAYS), (8.0, ["MON", "XYZ"])],
    ids=["hours_over_24", "unknown_weekday"],
)
async def test_broken_machine_row_does_not_abort_pass(session_factory, daily_hours, operating_days):
    _, good_alarm_id = await _seed(session_factory)
    async with session_factory() as session:
        bad = Machine(name="Broken", status=MachineStatus.ACTIVE, daily_hours=daily_hours, operating_days=operating_days)
        bad.alarms = [MaintenanceAlarm(title="Oil", interval_hours=10.0, last_accumulation_checkpoint=MONDAY)]
        session.add(bad)
        await session.commit()
        bad_id, bad_alarm_id = str(bad.id), str(bad.alarms[0].id)

    machines = await SqlAlchemyMachineRepository(session_factory).list_active_machines_with_active_alarms()
    assert len(machines) == 2
    broken = next(m for m in machines if m.id == bad_id)
    assert [alarm_id for alarm_id, _ in broken.load_errors] == [None]

    clock = FixedClock(MONDAY + timedelta(days=7))
    service = build_cron_service(_settings(), session_factory=session_factory, clock=clock)
    outcome = await service.execute()

    assert isinstance(outcome, PartialFailure)
    assert [(e.machine_id, e.kind) for e in outcome.result.errors] == [(bad_id, "configuration")]
    assert outcome.result.alarms_triggered == 1
    assert (await _alarm(session_factory, good_alarm_id)).times_triggered == 1
    bad_row = await _alarm(session_factory, bad_alarm_id)
    assert bad_row.times_triggered == 0
    assert bad_row.accumulated_hours == 0.0


@pytest.mark.asyncio
async def test_record_alarm_trigger_is_conditional_on_times_triggered(session_factory):
    machine_id, alarm_id = await _seed(session_factory, accumulated_hours=41.0)
    repo = SqlAlchemyMachineRepository(session_factory)
    now = MONDAY + timedelta(days=7)

    assert await repo.record_alarm_trigger(machine_id, alarm_id, now, True, expected_times_triggered=0) is True
    # Второй проход прочитал times_triggered=0 до первого учёта
    assert await repo.record_alarm_trigger(machine_id, alarm_id, now, True, expected_times_triggered=0) is False

    row = await _alarm(session_factory, alarm_id)
    assert row.times_triggered == 1
    assert row.last_triggered_hours == 41.0
    assert row.accumulated_hours == 0.0
