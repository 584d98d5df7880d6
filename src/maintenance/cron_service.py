"""Сервис периодической проверки алармов обслуживания.

Оркестрирует проход: для каждой активной машины с активными алармами
накапливает часы (UsageAccumulator), проверяет порог (AlarmEvaluator) и при
пересечении выполняет срабатывание (AlarmTriggerDispatcher).

Состояния: stopped -> scheduled -> running -> scheduled, scheduled -> stopped.
Плановый таймер и ручной запуск идут через один asyncio.Lock: одновременно
выполняется не больше одного прохода, второй вызов сразу получает
Skipped('already_running').

Особенности:
 - ошибки изолированы по алармам/машинам, проход продолжается;
 - stop() мягкий: текущие машины дорабатывают, новые не начинаются;
 - общий дедлайн прохода, по истечении проход – PartialFailure и лок снят;
 - плановый запуск раньше min_interval_seconds после прошлого пропускается
   (рестарт сервера внутри интервала расписания).

Использование:
    service = MaintenanceCronService(repo, recorder, notifier)
    service.start()            # внутри работающего event loop
    outcome = await service.trigger()
    await service.stop()
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import Optional, Set
from uuid import uuid4

from src.config.logging import get_logger
from .accumulator import UsageAccumulator
from .clock import Clock, SystemClock
from .dispatcher import AlarmTriggerDispatcher
from .errors import (
    AccumulationConflict,
    EventRecordingError,
    InvalidAlarmConfiguration,
    TriggerBookkeepingError,
)
from .evaluator import AlarmEvaluator
from .ports import EventRecorder, MachineRepository, NotificationDispatcher
from .schedule import Schedule, parse_schedule
from .types import (
    Machine,
    PartialFailure,
    RunError,
    RunOutcome,
    RunResult,
    SchedulerState,
    SchedulerStatus,
    Skipped,
    Success,
)

logger = get_logger(__name__)

TRIGGER_SCHEDULE = "schedule"
TRIGGER_MANUAL = "manual"


class _PassProgress:
    """Какие машины прохода ещё не завершены и какие в работе сейчас."""

    def __init__(self) -> None:
        self.pending: Set[str] = set()
        self.inflight: Set[str] = set()


class MaintenanceCronService:

    def __init__(
        self,
        repository: MachineRepository,
        event_recorder: EventRecorder,
        notifier: NotificationDispatcher,
        *,
        clock: Optional[Clock] = None,
        schedule_expression: str = "0 5 * * *",
        tz: tzinfo = timezone.utc,
        max_workers: int = 4,
        run_deadline_seconds: Optional[float] = 1800.0,
        min_interval_seconds: float = 10.0,
        stop_timeout_seconds: float = 300.0,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.repository = repository
        self.clock: Clock = clock or SystemClock()
        self.schedule_expression = schedule_expression
        self.tz = tz
        self.max_workers = max_workers
        self.run_deadline_seconds = run_deadline_seconds
        self.min_interval_seconds = min_interval_seconds
        self.stop_timeout_seconds = stop_timeout_seconds

        self.accumulator = UsageAccumulator(repository, tz)
        self.evaluator = AlarmEvaluator()
        self.dispatcher = AlarmTriggerDispatcher(repository, event_recorder, notifier)

        self._schedule: Optional[Schedule] = None
        self._run_lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._wake = asyncio.Event()
        self._timer_task: Optional[asyncio.Task] = None
        self._stop_requested = False
        self._progress: Optional[_PassProgress] = None

        self._last_fire_at: Optional[datetime] = None
        self._next_fire_at: Optional[datetime] = None
        self._last_execution_at: Optional[datetime] = None
        self._last_result: Optional[RunResult] = None

    # ----------------------- Состояние -----------------------
    @property
    def state(self) -> SchedulerState:
        if self._run_lock.locked():
            return SchedulerState.RUNNING
        if self.is_scheduler_running:
            return SchedulerState.SCHEDULED
        return SchedulerState.STOPPED

    @property
    def is_scheduler_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def is_execution_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def last_result(self) -> Optional[RunResult]:
        return self._last_result

    # ----------------------- Жизненный цикл -----------------------
    def start(self) -> None:
        """Взвести таймер. Повторный вызов – no-op.

        Невалидное расписание – InvalidScheduleError. Требует работающий event loop.
        """
        if self.is_scheduler_running:
            logger.info("Maintenance scheduler already started, start() ignored")
            return
        self._schedule = parse_schedule(self.schedule_expression, self.tz)
        self._wake = asyncio.Event()
        self._timer_task = asyncio.get_running_loop().create_task(
            self._timer_loop(), name="maintenance-cron-timer"
        )
        logger.info(f"Maintenance scheduler started (schedule='{self.schedule_expression}', tz={self.tz})")

    async def stop(self, timeout: Optional[float] = None) -> bool:
        """Снять таймер и дождаться текущего прохода.

        Возвращает False, если проход не завершился за timeout (по умолчанию
        stop_timeout_seconds); проход при этом не прерывается.
        """
        timeout = self.stop_timeout_seconds if timeout is None else timeout
        task, self._timer_task = self._timer_task, None
        self._wake.set()
        if task is not None:
            logger.info("Maintenance scheduler stopped (no more scheduled executions)")

        if self._run_lock.locked():
            self._stop_requested = True
            logger.info(f"Waiting for current maintenance pass to finish (max {timeout}s)...")

        waiters = [self._idle.wait()]
        if task is not None:
            waiters.append(asyncio.shield(task))
        try:
            await asyncio.wait_for(asyncio.gather(*waiters), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Maintenance pass still running after {timeout}s, stop() returns without drain")
            return False
        self._next_fire_at = None
        return True

    async def _timer_loop(self) -> None:
        assert self._schedule is not None
        wake = self._wake
        try:
            while not wake.is_set():
                now = self.clock.now()
                base = max(now, self._last_fire_at) if self._last_fire_at else now
                fire_at = self._schedule.next_after(base)
                self._next_fire_at = fire_at
                delay = max(0.0, (fire_at - now).total_seconds())
                try:
                    await asyncio.wait_for(wake.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
                if wake.is_set():
                    break
                self._last_fire_at = fire_at
                try:
                    await self.execute(trigger=TRIGGER_SCHEDULE)
                except Exception:  # execute() сам изолирует ошибки; сюда – только баги
                    logger.exception("Scheduled maintenance execution failed")
        finally:
            self._next_fire_at = None

    # ----------------------- Проход -----------------------
    async def trigger(self) -> RunOutcome:
        """Ручной запуск (админ)."""
        return await self.execute(trigger=TRIGGER_MANUAL)

    def _too_soon(self, now: datetime) -> bool:
        if self._last_execution_at is None or self.min_interval_seconds <= 0:
            return False
        return (now - self._last_execution_at).total_seconds() < self.min_interval_seconds

    async def execute(self, trigger: str = TRIGGER_MANUAL) -> RunOutcome:
        now = self.clock.now()
        if self._run_lock.locked():
            logger.warning("Maintenance pass already running, skipping this execution")
            return Skipped(reason="already_running", at=now)
        if trigger == TRIGGER_SCHEDULE and self._too_soon(now):
            logger.info(
                f"Skipping scheduled execution - too soon since last execution "
                f"({self._last_execution_at.isoformat()})"
            )
            return Skipped(reason="too_soon", at=now)

        async with self._run_lock:
            self._idle.clear()
            try:
                result = await self._run(trigger)
            finally:
                self._stop_requested = False
                self._idle.set()

        self._last_result = result
        self._last_execution_at = result.finished_at
        if result.errors:
            return PartialFailure(result=result)
        return Success(result=result)

    async def _run(self, trigger: str) -> RunResult:
        result = RunResult(run_id=str(uuid4()), trigger=trigger, started_at=self.clock.now())
        progress = self._progress = _PassProgress()
        logger.info(f"Starting maintenance pass {result.run_id} (trigger={trigger})")
        try:
            if self.run_deadline_seconds:
                await asyncio.wait_for(self._run_pass(result, progress), timeout=self.run_deadline_seconds)
            else:
                await self._run_pass(result, progress)
        except asyncio.TimeoutError:
            result.deadline_exceeded = True
            for machine_id in sorted(progress.pending):
                if machine_id in progress.inflight:
                    result.errors.append(RunError(machine_id, None, "interrupted", "pass deadline exceeded"))
                else:
                    result.machines_not_started += 1
            result.errors.append(
                RunError(None, None, "deadline_exceeded", f"pass exceeded {self.run_deadline_seconds}s")
            )
            logger.error(f"Maintenance pass {result.run_id} exceeded deadline of {self.run_deadline_seconds}s")
        except Exception as e:
            result.errors.append(RunError(None, None, "pass_failed", str(e)))
            logger.exception(f"Maintenance pass {result.run_id} failed with critical error")
        finally:
            self._progress = None
            result.finished_at = self.clock.now()

        logger.info(
            f"Maintenance pass {result.run_id} finished: machines={result.machines_processed} "
            f"not_started={result.machines_not_started} evaluated={result.alarms_evaluated} "
            f"triggered={result.alarms_triggered} errors={len(result.errors)} "
            f"notification_failures={len(result.notification_failures)} duration={result.duration_seconds:.3f}s"
        )
        return result

    async def _run_pass(self, result: RunResult, progress: _PassProgress) -> None:
        machines = await self.repository.list_active_machines_with_active_alarms()

        unique = []
        for machine in machines:
            if not machine.is_active or machine.id in progress.pending:
                continue
            progress.pending.add(machine.id)
            unique.append(machine)
        logger.info(f"Fetched {len(unique)} active machines with active alarms")

        semaphore = asyncio.Semaphore(self.max_workers)

        async def worker(machine: Machine) -> None:
            async with semaphore:
                if self._stop_requested:
                    result.machines_not_started += 1
                    progress.pending.discard(machine.id)
                    return
                progress.inflight.add(machine.id)
                try:
                    await self._process_machine(machine, result)
                except Exception as e:
                    result.errors.append(RunError(machine.id, None, "machine_failed", str(e)))
                    logger.exception(f"Machine {machine.id} failed")
                # При отмене по дедлайну машина остаётся в pending/inflight и попадает в отчёт
                progress.inflight.discard(machine.id)
                progress.pending.discard(machine.id)

        await asyncio.gather(*(worker(m) for m in unique))
        if result.machines_not_started:
            logger.info(f"Stop requested: {result.machines_not_started} machines not started")

    async def _process_machine(self, machine: Machine, result: RunResult) -> None:
        now = self.clock.now()
        broken = False
        for alarm_id, reason in machine.load_errors:
            result.errors.append(RunError(machine.id, alarm_id, "configuration", reason))
            broken = broken or alarm_id is None
        if broken:
            # Без корректного графика работы накопление невозможно: машину пропускаем
            logger.warning(f"Skipping machine {machine.id}: invalid configuration")
            return
        for alarm in machine.active_alarms:
            result.alarms_evaluated += 1
            try:
                self.evaluator.validate(alarm)
                await self.accumulator.accumulate(machine, alarm, now)
                evaluation = self.evaluator.evaluate(alarm)
                if not evaluation.crossed:
                    continue
                report = await self.dispatcher.dispatch(machine, alarm, now)
                result.alarms_triggered += 1
                if report.notification_error:
                    result.notification_failures.append(
                        RunError(machine.id, alarm.id, "notification_failed", report.notification_error)
                    )
            except InvalidAlarmConfiguration as e:
                result.errors.append(RunError(machine.id, alarm.id, "configuration", str(e)))
                logger.warning(f"Skipping misconfigured alarm: {e}")
            except AccumulationConflict as e:
                result.errors.append(RunError(machine.id, alarm.id, "conflict", str(e)))
                logger.warning(str(e))
            except EventRecordingError as e:
                result.errors.append(RunError(machine.id, alarm.id, "event_recording", str(e)))
                logger.error(str(e))
            except TriggerBookkeepingError as e:
                result.errors.append(RunError(machine.id, alarm.id, "trigger_bookkeeping", str(e)))
                logger.error(str(e))
            except Exception as e:
                result.errors.append(RunError(machine.id, alarm.id, "io", str(e)))
                logger.error(f"Alarm {alarm.id} of machine {machine.id} failed: {e}")
        result.machines_processed += 1

    # ----------------------- Статус -----------------------
    def get_status(self) -> SchedulerStatus:
        now = self.clock.now()
        next_at = None
        if self.is_scheduler_running:
            next_at = self._next_fire_at
            if next_at is None and self._schedule is not None:
                next_at = self._schedule.next_after(now)
        since = None
        if self._last_execution_at is not None:
            since = max(0.0, (now - self._last_execution_at).total_seconds())
        return SchedulerStatus(
            state=self.state,
            schedule=self.schedule_expression,
            timezone=str(self.tz),
            scheduler_armed=self.is_scheduler_running,
            last_execution_at=self._last_execution_at,
            last_result=self._last_result,
            next_execution_at=next_at,
            seconds_since_last_execution=since,
        )


__all__ = ["MaintenanceCronService", "TRIGGER_SCHEDULE", "TRIGGER_MANUAL"]
