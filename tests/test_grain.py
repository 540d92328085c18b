"""Test grain clouds, line dynamics and the overspray halo."""

import pytest


def test_thickness_scale_endpoints(engine):
    g = engine.grains
    p = engine.params
    assert g.thickness_scale(0.0) == pytest.approx(p.thick_slow_scale)
    assert g.thickness_scale(p.v_slow) == pytest.approx(p.thick_slow_scale)
    assert g.thickness_scale(p.v_fast) == pytest.approx(p.thin_fast_scale)
    assert g.thickness_scale(1e6) == pytest.approx(p.thin_fast_scale)
    mid = g.thickness_scale(0.5 * (p.v_slow + p.v_fast))
    assert p.thin_fast_scale < mid < p.thick_slow_scale


def test_grain_size_bounds(engine):
    for _ in range(500):
        s = engine.grains.grain_size(2.0)
        assert 0.5 <= s <= 2.0 * 2.2 + 1e-9


def test_grain_opacity_bounds(engine):
    for factor in (0.01, 1.0, 9.0):
        for scale in (0.0, 0.5, 3.0):
            a = engine.grains.grain_opacity(factor, scale)
            assert 0.05 <= a <= 1.0


def test_render_grains_counts_drawn_dots(engine):
    n = engine.grains.render_grains(100.0, 90.0, 30.0, 0.0)
    assert n > 0
    assert engine.grains.grains_drawn == n
    assert engine.wetness.total() > 0.0


def test_off_canvas_grains_draw_nothing(engine):
    assert engine.grains.render_grains(-500.0, -500.0, 30.0, 0.0) == 0
    assert engine.wetness.total() == 0.0


def test_overspray_halo(engine):
    dots = engine.grains.add_overspray(120.0, 90.0, 30.0, motion=(5.0, 0.0))
    assert dots >= 18
    assert engine.grains.overspray_dots == dots
    alpha = engine.canvas.coverage()
    assert 0.0 < alpha.max() <= 1.0


def test_overspray_disabled(engine):
    engine.set_overspray(0)
    assert engine.grains.add_overspray(120.0, 90.0, 30.0) == 0
