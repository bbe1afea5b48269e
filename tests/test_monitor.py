import asyncio
from datetime import datetime

import pytest

from kouen_watch.models import AvailabilityRecord, AvailabilityStatus, MonitorConfig, NotifyResult
from kouen_watch.monitor import PollScheduler, SchedulerState


def _record(status, label="Aコート"):
    return AvailabilityRecord("砧公園", label, "2025-05-01", "09:00-11:00", status, datetime(2025, 5, 1, 9, 0))


class StubOrchestrator:
    def __init__(self, results, gate=None):
        self.results = list(results)
        self.gate = gate
        self.calls = 0
        self.last_error = None

    async def run_check(self, config, session):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        return self.results[min(self.calls - 1, len(self.results) - 1)]


class RecordingNotifier:
    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = result or NotifyResult(success=True, method="console")
        self.error = error

    async def __call__(self, records, observed_at):
        self.calls.append((list(records), observed_at))
        if self.error:
            raise self.error
        return self.result


CONFIG = MonitorConfig(locations=["砧公園"], time_slots=["09:00-11:00"], dates=["2025-05-01"], interval_minutes=5)


@pytest.mark.asyncio
async def test_start_runs_immediate_check_and_schedules_job():
    orchestrator = StubOrchestrator([[_record(AvailabilityStatus.UNAVAILABLE)]])
    scheduler = PollScheduler(orchestrator, session=object())

    await scheduler.start(CONFIG)
    try:
        assert scheduler.state is SchedulerState.RUNNING
        assert orchestrator.calls == 1
        assert scheduler.check_count == 1
        assert scheduler.config.active
        assert scheduler.next_run_time() is not None
        status = scheduler.status()
        assert status["state"] == "running"
        assert status["last_results"][0]["court_label"] == "Aコート"
    finally:
        scheduler.stop()

    assert scheduler.state is SchedulerState.STOPPED
    assert not scheduler.config.active
    assert scheduler.next_run_time() is None


@pytest.mark.asyncio
async def test_start_twice_is_rejected():
    scheduler = PollScheduler(StubOrchestrator([[]]), session=object())
    await scheduler.start(CONFIG, run_immediately=False)
    try:
        with pytest.raises(RuntimeError):
            await scheduler.start(CONFIG)
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_notifier_called_once_per_cycle_with_available_records():
    available = _record(AvailabilityStatus.AVAILABLE)
    orchestrator = StubOrchestrator(
        [
            [available, _record(AvailabilityStatus.UNAVAILABLE, "Bコート")],
            [_record(AvailabilityStatus.UNAVAILABLE)],
            [available],
        ]
    )
    notifier = RecordingNotifier()
    scheduler = PollScheduler(orchestrator, session=object(), notifier=notifier)

    await scheduler.start(CONFIG)
    try:
        await scheduler.tick()
        await scheduler.tick()
    finally:
        scheduler.stop()

    assert orchestrator.calls == 3
    assert len(notifier.calls) == 2
    assert notifier.calls[0][0] == [available]
    assert notifier.calls[1][0] == [available]
    history = scheduler.status()["notifications"]
    assert len(history) == 2
    assert history[0]["success"] and history[0]["method"] == "console"


@pytest.mark.asyncio
async def test_overlapping_tick_is_skipped():
    gate = asyncio.Event()
    orchestrator = StubOrchestrator([[_record(AvailabilityStatus.UNAVAILABLE)]], gate=gate)
    scheduler = PollScheduler(orchestrator, session=object())
    await scheduler.start(CONFIG, run_immediately=False)
    try:
        first = asyncio.ensure_future(scheduler.tick())
        await asyncio.sleep(0)
        assert scheduler.in_flight

        skipped = await scheduler.tick()
        assert skipped is None
        assert scheduler.skipped_ticks == 1

        gate.set()
        records = await first
        assert records is not None
    finally:
        scheduler.stop()

    assert orchestrator.calls == 1
    assert scheduler.check_count == 1


@pytest.mark.asyncio
async def test_stop_lets_in_flight_check_finish_and_blocks_new_ticks():
    gate = asyncio.Event()
    orchestrator = StubOrchestrator([[_record(AvailabilityStatus.AVAILABLE)]], gate=gate)
    notifier = RecordingNotifier()
    scheduler = PollScheduler(orchestrator, session=object(), notifier=notifier)
    await scheduler.start(CONFIG, run_immediately=False)

    in_flight = asyncio.ensure_future(scheduler.tick())
    await asyncio.sleep(0)
    scheduler.stop()
    gate.set()
    records = await in_flight

    assert records is not None
    assert scheduler.check_count == 1
    assert await scheduler.tick() is None
    assert orchestrator.calls == 1


@pytest.mark.asyncio
async def test_notifier_errors_do_not_stop_polling():
    orchestrator = StubOrchestrator([[_record(AvailabilityStatus.AVAILABLE)]])
    notifier = RecordingNotifier(error=RuntimeError("smtp down"))
    scheduler = PollScheduler(orchestrator, session=object(), notifier=notifier)

    await scheduler.start(CONFIG)
    try:
        await scheduler.tick()
        assert scheduler.running
    finally:
        scheduler.stop()

    assert len(notifier.calls) == 2
    assert scheduler.notifications[0]["error"] == "smtp down"
    assert scheduler.notifications[0]["success"] is False


@pytest.mark.asyncio
async def test_last_error_is_surfaced():
    orchestrator = StubOrchestrator([[_record(AvailabilityStatus.UNAVAILABLE, "login failed: x")]])
    orchestrator.last_error = "login failed: x"
    scheduler = PollScheduler(orchestrator, session=object())

    await scheduler.start(CONFIG)
    scheduler.stop()

    assert scheduler.status()["last_error"] == "login failed: x"
