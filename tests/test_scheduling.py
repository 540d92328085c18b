"""Test the host-pumped scheduler and clocks."""

import pytest

from open_spray_sim.brush import MonotonicClock, TaskScheduler, VirtualClock


@pytest.fixture
def scheduler(clock):
    return TaskScheduler(clock)


def test_virtual_clock(clock):
    assert clock.now_ms() == 10_000.0
    clock.advance(16.0)
    clock.advance(-50.0)
    assert clock.now_ms() == 10_016.0
    clock.advance_s(0.5)
    assert clock.now_ms() == 10_516.0


def test_monotonic_clock_never_goes_back():
    clock = MonotonicClock()
    a = clock.now_ms()
    b = clock.now_ms()
    assert b >= a


def test_task_fires_after_interval(clock, scheduler):
    calls = []
    task = scheduler.call_every(16.0, lambda: calls.append(clock.now_ms()))
    assert scheduler.run_pending() == 0
    clock.advance(15.0)
    assert scheduler.run_pending() == 0
    clock.advance(1.0)
    assert scheduler.run_pending() == 1
    assert task.runs == 1
    assert task.next_due == clock.now_ms() + 16.0


def test_overdue_task_fires_once(clock, scheduler):
    calls = []
    scheduler.call_every(16.0, lambda: calls.append(1))
    clock.advance(500.0)
    scheduler.run_pending()
    scheduler.run_pending()
    assert calls == [1]


def test_cancel_is_idempotent(clock, scheduler):
    calls = []
    task = scheduler.call_every(10.0, lambda: calls.append(1))
    task.cancel()
    task.cancel()
    assert not task.active
    assert scheduler.pending == 0
    clock.advance(100.0)
    assert scheduler.run_pending() == 0
    assert calls == []


def test_callback_can_cancel_a_later_task(clock, scheduler):
    calls = []
    second = None

    def first():
        calls.append("first")
        second.cancel()

    scheduler.call_every(10.0, first)
    second = scheduler.call_every(10.0, lambda: calls.append("second"))
    clock.advance(10.0)
    scheduler.run_pending()
    assert calls == ["first"]
    assert scheduler.pending == 1


def test_interval_has_a_floor(clock, scheduler):
    task = scheduler.call_every(0.0, lambda: None)
    assert task.interval_ms == 1.0
