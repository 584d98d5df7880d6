"""Срабатывание: порядок побочных эффектов и поведение при частичных сбоях."""
from datetime import timedelta

import pytest

from src.maintenance.dispatcher import AlarmTriggerDispatcher, build_event, event_id_for
from src.maintenance.errors import EventRecordingError, TriggerBookkeepingError
from tests.conftest import MONDAY, FakeEventRecorder, FakeMachineRepository, FakeNotifier, make_alarm, make_machine

NOW = MONDAY + timedelta(days=7)


def _setup(**alarm_kwargs):
    alarm_kwargs.setdefault("accumulated_hours", 40.0)
    alarm = make_alarm("a1", related_parts=["belt", "tensioner"], **alarm_kwargs)
    machine = make_machine("m1", [alarm])
    repo = FakeMachineRepository([make_machine("m1", [make_alarm("a1", **alarm_kwargs)])])
    recorder, notifier = FakeEventRecorder(), FakeNotifier()
    return machine, alarm, repo, recorder, notifier, AlarmTriggerDispatcher(repo, recorder, notifier)


def test_event_id_is_deterministic_per_trigger_number():
    assert event_id_for("a1", 1) == event_id_for("a1", 1)
    assert event_id_for("a1", 1) != event_id_for("a1", 2)
    assert event_id_for("a1", 1) != event_id_for("a2", 1)


def test_build_event_captures_counter_and_parts():
    alarm = make_alarm("a1", accumulated_hours=41.5, times_triggered=2, related_parts=["filter"])
    event = build_event(make_machine("m1", [alarm]), alarm, NOW)
    assert event.trigger_number == 3
    assert event.accumulated_hours == 41.5
    assert event.triggered_at == NOW
    assert "filter" in event.description


@pytest.mark.asyncio
async def test_dispatch_records_event_then_bookkeeping_then_notifies():
    machine, alarm, repo, recorder, notifier, dispatcher = _setup()

    report = await dispatcher.dispatch(machine, alarm, NOW)

    assert report.notified and report.notification_error is None
    assert list(recorder.events) == [("a1", 1)]
    assert recorder.events[("a1", 1)].accumulated_hours == 40.0
    assert repo.trigger_calls == [("m1", "a1", NOW, True)]
    assert notifier.sent == [("m1", "a1", "Alarm a1")]
    assert alarm.times_triggered == 1
    assert alarm.last_triggered_at == NOW
    assert alarm.last_triggered_hours == 40.0
    assert alarm.accumulated_hours == 0.0


@pytest.mark.asyncio
async def test_no_reset_keeps_counter():
    machine, alarm, repo, recorder, notifier, dispatcher = _setup(reset_on_trigger=False)

    await dispatcher.dispatch(machine, alarm, NOW)

    assert repo.trigger_calls == [("m1", "a1", NOW, False)]
    assert alarm.accumulated_hours == 40.0
    assert repo.alarm("m1", "a1").last_triggered_hours == 40.0


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["fail", "refuse"])
async def test_event_failure_blocks_bookkeeping_and_notification(mode):
    machine, alarm, repo, recorder, notifier, dispatcher = _setup()
    setattr(recorder, mode, True)

    with pytest.raises(EventRecordingError):
        await dispatcher.dispatch(machine, alarm, NOW)

    assert repo.trigger_calls == []
    assert notifier.sent == []
    assert alarm.times_triggered == 0
    assert alarm.accumulated_hours == 40.0


@pytest.mark.asyncio
async def test_bookkeeping_failure_then_retry_does_not_duplicate_event():
    machine, alarm, repo, recorder, notifier, dispatcher = _setup()
    repo.fail_trigger_for.add("m1")

    with pytest.raises(TriggerBookkeepingError):
        await dispatcher.dispatch(machine, alarm, NOW)
    assert notifier.sent == []
    assert alarm.times_triggered == 0

    repo.fail_trigger_for.clear()
    report = await dispatcher.dispatch(machine, alarm, NOW + timedelta(hours=1))

    assert recorder.calls == 2
    assert len(recorder.events) == 1
    assert report.event_id == event_id_for("a1", 1)
    assert alarm.times_triggered == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("mode", ["fail", "refuse"])
async def test_notification_failure_is_reported_not_rolled_back(mode):
    machine, alarm, repo, recorder, notifier, dispatcher = _setup()
    setattr(notifier, mode, True)

    report = await dispatcher.dispatch(machine, alarm, NOW)

    assert not report.notified
    assert report.notification_error
    assert alarm.times_triggered == 1
    assert repo.alarm("m1", "a1").times_triggered == 1


@pytest.mark.asyncio
async def test_trigger_already_counted_elsewhere_skips_notification():
    machine, alarm, repo, recorder, notifier, dispatcher = _setup()
    # Параллельный проход уже учёл срабатывание #1
    repo.alarm("m1", "a1").times_triggered = 1

    with pytest.raises(TriggerBookkeepingError):
        await dispatcher.dispatch(machine, alarm, NOW)

    assert notifier.sent == []
    assert alarm.times_triggered == 0
    assert repo.alarm("m1", "a1").times_triggered == 1
    assert repo.alarm("m1", "a1").accumulated_hours == 40.0
