"""Test the wetness field: deposits, cap, decay, drain and the spawn gate.

Run:
    pytest tests/test_wetness.py -v
"""

import math

import numpy as np
import pytest

from open_spray_sim.brush import RecordingDiagnosticSink, SprayParams
from open_spray_sim.brush.wetness import WetnessField


@pytest.fixture
def params():
    return SprayParams()


@pytest.fixture
def field(params):
    return WetnessField(100, 61, params, downsample=2, report=RecordingDiagnosticSink())


def test_grid_shape_rounds_up(field):
    assert field.w.shape == (31, 50)
    assert field.cooldown.dtype == np.uint16
    assert np.all(np.isneginf(field.last_spawn_ms))


def test_non_positive_size_raises(params):
    with pytest.raises(ValueError):
        WetnessField(0, 10, params)


def test_cell_of_bounds(field):
    assert field.cell_of(0.0, 0.0) == (0, 0)
    assert field.cell_of(99.9, 60.9) == (49, 30)
    assert field.cell_of(-0.1, 5.0) is None
    assert field.cell_of(100.0, 5.0) is None
    assert field.cell_of(math.nan, 5.0) is None


def test_cap_holds_for_any_accumulate_sequence(field, params):
    rng = np.random.default_rng(7)
    for _ in range(3000):
        x = rng.uniform(-10, 110)
        y = rng.uniform(-10, 70)
        amount = rng.choice([1e-4, 0.05, 0.5, 5.0, 1e6])
        speed = rng.uniform(0, 400)
        field.accumulate(x, y, amount, speed, centre_bias=bool(rng.random() < 0.3))
        assert field.w.min() >= 0.0
        assert field.w.max() <= params.wet_cap + 1e-6


def test_centre_bias_only_touches_hit_cell(field):
    stored = field.accumulate(21.0, 21.0, 0.2, centre_bias=True)
    assert stored > 0.0
    assert field.value(10, 10) == pytest.approx(stored)
    assert field.total() == pytest.approx(stored)


def test_slow_deposits_bleed_into_neighbours(field):
    field.accumulate(21.0, 21.0, 0.2, speed=0.0)
    for nx, ny in ((9, 10), (11, 10), (10, 9), (10, 11)):
        assert field.value(nx, ny) > 0.0
    assert field.value(9, 9) == 0.0


def test_fast_deposits_stay_in_cell(field, params):
    field.accumulate(21.0, 21.0, 0.2, speed=params.v_ref)
    assert field.total() == pytest.approx(field.value(10, 10))


def test_out_of_bounds_deposit_is_noop(field):
    assert field.accumulate(-5.0, 3.0, 1.0) == 0.0
    assert field.total() == 0.0


def test_headroom_slows_filling(field):
    first = field.accumulate(21.0, 21.0, 0.1, centre_bias=True)
    for _ in range(20):
        field.accumulate(21.0, 21.0, 0.1, centre_bias=True)
    last = field.accumulate(21.0, 21.0, 0.1, centre_bias=True)
    assert last < first


def test_decay_is_exponential(field, params):
    field.w.fill(0.5)
    field.decay_tick(1.0)
    assert field.value(0, 0) == pytest.approx(0.5 * math.exp(-params.wet_evaporation), rel=1e-5)


def test_decay_with_zero_dt_is_noop(field):
    field.w.fill(0.5)
    field.cooldown.fill(3)
    field.decay_tick(0.0)
    assert np.all(field.w == np.float32(0.5))
    assert np.all(field.cooldown == 3)


def test_decay_counts_down_cooldown(field):
    field.cooldown[5, 5] = 2
    field.decay_tick(0.016)
    assert field.cooldown[5, 5] == 1
    field.decay_tick(0.016)
    field.decay_tick(0.016)
    assert field.cooldown[5, 5] == 0


def test_pool_weights_and_edges(field):
    field.w.fill(0.5)
    pool, weight = field.pool_at(10, 10)
    assert weight == pytest.approx(1.0 + 8 * 0.65)
    assert pool == pytest.approx(0.5 * weight)

    pool, weight = field.pool_at(0, 0)
    assert weight == pytest.approx(1.0 + 3 * 0.65)


def test_drain_has_radial_falloff(field):
    field.w.fill(0.5)
    field.drain(10, 10, 0.3, 4)
    centre = field.value(10, 10)
    mid = field.value(12, 10)
    edge = field.value(14, 10)
    assert centre == pytest.approx(0.2, abs=1e-6)
    assert centre < mid < edge <= 0.5
    assert field.value(20, 20) == pytest.approx(0.5)
    assert field.w.min() >= 0.0


def test_spawn_gate_blocks_neighbourhood(field):
    now = 5000.0
    assert field.gate_open(10, 10, 3, now, 1000.0)
    field.mark_spawn(10, 10, 3, now, frames=0)

    assert not field.gate_open(10, 10, 3, now + 500.0, 1000.0)
    # squares overlap at the shared corner
    assert not field.gate_open(16, 16, 3, now + 500.0, 1000.0)
    assert field.gate_open(17, 10, 3, now + 500.0, 1000.0)
    assert field.gate_open(10, 10, 3, now + 1000.0, 1000.0)


def test_spawn_gate_frame_cooldown(field):
    field.mark_spawn(10, 10, 2, 0.0, frames=2)
    assert not field.gate_open(10, 10, 2, 1e9, 0.0)
    field.decay_tick(0.016)
    field.decay_tick(0.016)
    assert field.gate_open(10, 10, 2, 1e9, 0.0)


def test_enforce_cap_after_lowering(field, params):
    field.w.fill(params.wet_cap)
    params.wet_cap = 0.4
    field.enforce_cap()
    assert field.max() == pytest.approx(0.4)


def test_reset_and_resize(field):
    field.w.fill(0.3)
    field.mark_spawn(3, 3, 1, 10.0, 5)
    field.reset()
    assert field.total() == 0.0
    assert not field.cooldown.any()
    field.resize(40, 40)
    assert field.w.shape == (20, 20)
