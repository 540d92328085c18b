"""Shared fixtures: virtual clock, recording diagnostics sink, seeded engine."""

import numpy as np
import pytest

from open_spray_sim.brush import RecordingDiagnosticSink, SprayEngine, TaskScheduler, VirtualClock


@pytest.fixture
def clock():
    """Manually advanced clock starting at t=10s."""
    return VirtualClock(start_ms=10_000.0)


@pytest.fixture
def sink():
    return RecordingDiagnosticSink()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def engine(clock, sink):
    """Seeded 240x180 engine on the virtual clock."""
    return SprayEngine(240, 180, seed=1234, clock=clock, scheduler=TaskScheduler(clock), diagnostics=sink)


@pytest.fixture
def saturate():
    """Fills the whole wetness grid to `value` (default: the cap)."""
    def _saturate(engine, value=None):
        engine.wetness.w.fill(engine.p.wet_cap if value is None else value)
    return _saturate


@pytest.fixture
def pump():
    """Runs the host loop: sampler, then decay and drips, once per frame."""
    def _pump(engine, clock, seconds, frame_ms=16.0, on_frame=None):
        frames = int(round(seconds * 1000.0 / frame_ms))
        for i in range(frames):
            clock.advance(frame_ms)
            if on_frame is not None:
                on_frame(i)
            engine.scheduler.run_pending()
            engine.tick(frame_ms / 1000.0)
    return _pump
