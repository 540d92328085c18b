"""Test drip spawning, merging, integration and removal.

Spawning is driven directly through DripManager.try_spawn on a saturated
wetness grid, where the trigger score is at its ceiling and the spawn
probability is 1, so outcomes depend only on the gate and the speed cutoff.

Run:
    pytest tests/test_drips.py -v
"""

import math

import numpy as np
import pytest

from open_spray_sim.brush.drips import SPEED_CUTOFF, Drip, DripProfile, smooth_noise


def _profile(**overrides):
    values = dict(widen_k=1.1, wobble_amp=0.5, wobble_freq=1.0, taper_to=0.5, noise_freq=1.0,
                  seed=3.0, hook_dir=1, hook_j=1.0, bead=True, gravity_scale=1.0)
    values.update(overrides)
    return DripProfile(**values)


def _drip(x=100.0, y=50.0, vol=1.2, base_r=4.0, **kw):
    return Drip(drip_id=99, x=x, y=y, px=x, py=y, x0=x, vy=0.0, vol=vol, base_r=base_r,
                length=0.0, age=0.0, profile=_profile(**kw))


# ============================================================================
# Spawning
# ============================================================================

def test_saturated_pool_spawns_a_drip(engine, saturate):
    saturate(engine)
    drip = engine.drip_manager.try_spawn(100.0, 60.0, 0.0)
    assert drip is not None
    assert engine.stats.drips_spawned == 1
    assert 0.6 <= drip.vol <= 1.6
    assert 2.1 <= drip.base_r <= engine.p.base_radius_hard_max
    # drained around the origin
    assert engine.wetness.value_at(drip.x, drip.y) < engine.p.wet_cap


def test_dry_canvas_never_spawns(engine):
    for x in range(10, 230, 7):
        assert engine.drip_manager.try_spawn(float(x), 90.0, 0.0) is None
    assert engine.stats.drips_spawned == 0


def test_disabled_drips_never_spawn(engine, saturate):
    saturate(engine)
    assert engine.toggle_drips() is False
    assert engine.drip_manager.try_spawn(100.0, 60.0, 0.0) is None


def test_outside_canvas_is_noop(engine, saturate):
    saturate(engine)
    assert engine.drip_manager.try_spawn(-4.0, 60.0, 0.0) is None
    assert engine.drip_manager.try_spawn(100.0, 1e6, 0.0) is None


@pytest.mark.parametrize("factor", [1.0001, 1.5, 10.0, 1000.0])
def test_no_spawn_above_speed_cutoff(engine, saturate, factor):
    saturate(engine)
    speed = SPEED_CUTOFF * engine.p.v_slow * factor
    before = engine.wetness.value(50, 30)
    for i in range(200):
        assert engine.drip_manager.try_spawn(20.0 + i, 20.0 + 0.5 * i, speed) is None
    assert engine.stats.drips_spawned == 0
    # light passive decay on the touched cell instead
    assert engine.wetness.value(50, 30) < before


def test_immediate_respawn_is_gated(engine, saturate):
    saturate(engine)
    assert engine.drip_manager.try_spawn(100.0, 60.0, 0.0) is not None
    for _ in range(20):
        assert engine.drip_manager.try_spawn(100.0, 60.0, 0.0) is None
    assert len(engine.drips) == 1
    assert engine.stats.drips_merged == 0


def test_no_overlapping_spawns_within_interval(engine, clock, saturate):
    """Spawn neighbourhoods never overlap within min_spawn_interval_ms."""
    engine.update_params(spawn_cooldown_frames=0, min_spawn_interval_ms=1000.0)
    rn = engine.drip_manager.neighbourhood_radius
    rng = np.random.default_rng(5)
    spawns = []
    for _ in range(400):
        clock.advance(50.0)
        saturate(engine)
        for _ in range(4):
            d = engine.drip_manager.try_spawn(rng.uniform(0, 240), rng.uniform(0, 180), 0.0)
            if d is not None:
                spawns.append((clock.now_ms(), int(d.x0 // 2), int(d.y // 2)))
        engine.tick(0.05)

    assert len(spawns) > 10
    for i, (t1, x1, y1) in enumerate(spawns):
        for t2, x2, y2 in spawns[i + 1:]:
            if abs(t2 - t1) < 1000.0:
                assert abs(x2 - x1) > 2 * rn or abs(y2 - y1) > 2 * rn


def test_drip_count_never_exceeds_max(engine, clock, saturate):
    engine.update_params(max_drips=3, spawn_cooldown_frames=0, min_spawn_interval_ms=0.0)
    rng = np.random.default_rng(11)
    peak = 0
    for _ in range(120):
        clock.advance(16.0)
        saturate(engine)
        for _ in range(6):
            engine.drip_manager.try_spawn(rng.uniform(0, 240), rng.uniform(0, 120), 0.0)
            assert len(engine.drips) <= 3
        peak = max(peak, len(engine.drips))
        engine.tick(0.016)
        assert len(engine.drips) <= 3
    assert peak == 3


def test_lowering_max_drips_trims_oldest(engine, clock, saturate):
    engine.update_params(spawn_cooldown_frames=0, min_spawn_interval_ms=0.0)
    saturate(engine)
    first = engine.drip_manager.try_spawn(30.0, 40.0, 0.0)
    engine.drip_manager.try_spawn(120.0, 40.0, 0.0)
    engine.drip_manager.try_spawn(210.0, 40.0, 0.0)
    assert len(engine.drips) == 3
    engine.update_params(max_drips=1)
    assert len(engine.drips) == 1
    assert first.alive is False and first.end_reason == "limit"


def test_nearby_seed_merges_into_live_drip(engine, saturate):
    engine.update_params(spawn_cooldown_frames=0, min_spawn_interval_ms=0.0)
    saturate(engine)
    drip = engine.drip_manager.try_spawn(100.0, 60.0, 0.0)
    vol = drip.vol
    assert engine.drip_manager.try_spawn(drip.x + 2.0, drip.y + 1.0, 0.0) is None
    assert engine.stats.drips_merged == 1
    assert len(engine.drips) == 1
    assert drip.vol == vol
    assert drip.base_r <= engine.p.base_radius_hard_max


# ============================================================================
# Integration & removal
# ============================================================================

def test_volume_non_increasing_and_single_removal(engine, saturate):
    engine.update_params(spawn_cooldown_frames=0, min_spawn_interval_ms=0.0)
    saturate(engine)
    for x in (30.0, 90.0, 150.0, 210.0):
        assert engine.drip_manager.try_spawn(x, 30.0, 0.0) is not None
    engine.wetness.reset()

    history = {}
    seen = {}
    gone = set()
    for _ in range(400):
        engine.tick(0.016)
        live = {d.drip_id: d for d in engine.drips}
        assert not (gone & set(live)), "a removed drip came back"
        for did, d in live.items():
            history.setdefault(did, []).append(d.vol)
            seen[did] = d
        gone |= set(seen) - set(live)

    assert not engine.drips
    assert engine.stats.drips_removed == len(seen) == 4
    for did, vols in history.items():
        assert all(b <= a for a, b in zip(vols, vols[1:])), f"drip {did} gained volume"
    floor, cap = engine.p.drip_volume_floor, engine.p.drip_length_cap
    for d in seen.values():
        assert d.alive is False
        assert d.end_reason in ("volume", "length", "exit")
        if d.end_reason == "volume":
            assert d.vol <= floor
        elif d.end_reason == "length":
            assert d.length > cap
        else:
            assert d.y > 180 + 5


def test_drip_leaving_the_canvas_ends_with_exit(engine, saturate, monkeypatch):
    engine.update_params(drip_length_cap=1000.0, deposit_per_px=0.0)
    saturate(engine)
    drip = engine.drip_manager.try_spawn(100.0, 150.0, 0.0)
    assert drip is not None
    engine.wetness.reset()

    tips = []
    draw_tip = engine.drip_manager._draw_taper_tip

    def record_tip(d, *args):
        tips.append(d.drip_id)
        draw_tip(d, *args)

    monkeypatch.setattr(engine.drip_manager, "_draw_taper_tip", record_tip)
    for _ in range(200):
        engine.tick(0.016)

    assert drip.end_reason == "exit"
    assert drip.alive is False
    assert drip.y > 180 + 5
    assert drip.vol > engine.p.drip_volume_floor
    assert engine.stats.drips_removed == 1
    assert tips == [drip.drip_id]
    assert not engine.drips


def test_drips_fall_and_paint(engine, saturate):
    saturate(engine)
    drip = engine.drip_manager.try_spawn(100.0, 40.0, 0.0)
    y0 = drip.y
    engine.tick(0.05)
    engine.tick(0.05)
    assert drip.y > y0
    assert drip.vy > 0.0
    assert abs(drip.x - drip.x0) <= 2.0 + 0.35 * drip.length
    assert engine.canvas.coverage().max() > 0.0


def test_metallic_drips_use_normal_blending(engine, saturate):
    engine.set_color("#eac677")
    saturate(engine)
    engine.drip_manager.try_spawn(100.0, 40.0, 0.0)
    engine.tick(0.05)
    assert engine.drip_manager.tone_parity == pytest.approx(0.92)
    assert engine.canvas.coverage().max() > 0.0


def test_trail_and_head_radius_bounds(engine):
    dm = engine.drip_manager
    for vol in (0.0, 0.3, 1.6, 2.4):
        for base_r in (2.1, 6.0, 12.0, 40.0):
            d = _drip(vol=vol, base_r=base_r)
            cap = dm.trail_cap_for(d)
            head = dm.head_radius_for(d)
            assert cap <= engine.p.global_trail_cap
            assert cap <= base_r * 1.6 + 1e-9
            assert 1.0 <= head <= max(1.0, 0.9 * cap) + 1e-9


def test_long_drip_ends_at_length_cap(engine):
    d = _drip(vol=1.6, bead=True)
    d.length = engine.p.drip_length_cap + 1.0
    engine.drip_manager.drips.append(d)
    engine.tick(0.016)
    assert d.end_reason == "length"
    assert not engine.drips


def test_smooth_noise_is_bounded_and_continuous():
    ts = np.linspace(-50, 50, 5001)
    values = [smooth_noise(t) for t in ts]
    assert min(values) >= 0.0 and max(values) < 1.0
    assert max(abs(a - b) for a, b in zip(values, values[1:])) < 0.05
    assert smooth_noise(3.0) == pytest.approx(smooth_noise(3.0))
    assert math.isfinite(smooth_noise(1e6))
