"""Tests for the scrape scheduler state machine."""

import threading
import time

import pytest

from purple_exporter.scheduler import Scheduler, SchedulerState


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_cycles_never_overlap() -> None:
    spans: list[tuple[float, float]] = []
    in_flight = threading.Lock()

    def cycle():
        assert in_flight.acquire(blocking=False), "cycle started while another was running"
        try:
            start = time.monotonic()
            time.sleep(0.01)
            spans.append((start, time.monotonic()))
        finally:
            in_flight.release()
        if len(spans) == 5:
            scheduler.stop()

    scheduler = Scheduler(cycle, interval=0.0)
    scheduler.run()

    assert len(spans) == 5
    for (_, prev_end), (next_start, _) in zip(spans, spans[1:]):
        assert next_start >= prev_end


def test_ticker_waits_out_the_remainder_of_the_interval() -> None:
    clock = FakeClock()
    delays: list[float] = []

    def cycle():
        clock.now += 2.0

    def ticker(delay):
        delays.append(delay)
        if len(delays) == 2:
            scheduler.stop()

    scheduler = Scheduler(cycle, interval=5.0, clock=clock, ticker=ticker)
    scheduler.run()

    assert delays == [3.0, 3.0]
    assert scheduler.cycles_completed == 2


def test_overrunning_cycle_delays_next_tick_without_waiting() -> None:
    clock = FakeClock()
    delays: list[float] = []

    def cycle():
        clock.now += 7.0

    def ticker(delay):
        delays.append(delay)
        scheduler.stop()

    scheduler = Scheduler(cycle, interval=5.0, clock=clock, ticker=ticker)
    scheduler.run()

    assert delays == [0.0]


def test_first_cycle_runs_immediately() -> None:
    calls = []
    scheduler = Scheduler(lambda: calls.append(1) or scheduler.stop(), interval=60.0)

    thread = scheduler.start()
    assert scheduler.wait(timeout=5)
    thread.join(timeout=5)

    assert calls == [1]


def test_stop_wakes_the_default_ticker() -> None:
    started = threading.Event()
    scheduler = Scheduler(started.set, interval=60.0)

    thread = scheduler.start()
    assert started.wait(timeout=5)
    scheduler.stop()

    assert scheduler.wait(timeout=5)
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert scheduler.state is SchedulerState.STOPPED


def test_in_flight_cycle_finishes_before_stop() -> None:
    entered = threading.Event()
    release = threading.Event()
    finished = []

    def cycle():
        entered.set()
        release.wait(timeout=5)
        finished.append(True)

    scheduler = Scheduler(cycle, interval=60.0)
    thread = scheduler.start()
    assert entered.wait(timeout=5)

    scheduler.stop()
    assert scheduler.state is SchedulerState.STOPPING
    assert not scheduler.wait(timeout=0.05)

    release.set()
    assert scheduler.wait(timeout=5)
    thread.join(timeout=5)
    assert finished == [True]
    assert scheduler.cycles_completed == 1


def test_failing_cycle_does_not_end_the_loop() -> None:
    calls = []

    def cycle():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        scheduler.stop()

    scheduler = Scheduler(cycle, interval=0.0)
    scheduler.run()

    assert len(calls) == 2


def test_stop_before_start() -> None:
    scheduler = Scheduler(lambda: None, interval=1.0)

    scheduler.stop()

    assert scheduler.state is SchedulerState.STOPPED
    assert scheduler.wait(timeout=0)
    with pytest.raises(RuntimeError):
        scheduler.run()


def test_health_follows_heartbeat() -> None:
    scheduler = Scheduler(lambda: None, interval=5.0)
    assert not scheduler.is_healthy(now=100.0)

    scheduler.last_heartbeat = 100.0

    assert scheduler.is_healthy(now=120.0)
    # threshold is max(30s, 3 * interval)
    assert not scheduler.is_healthy(now=131.0)
