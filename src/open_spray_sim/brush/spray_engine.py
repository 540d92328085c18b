"""
Realtime airbrush / spray-paint engine with gravity-driven drips.

High-level approach:
- Each stamp is a cloud of tiny gradient dots (grains) placed on a jittered
  golden-angle spiral, plus a faint elliptical overspray halo
- Deposited paint pools on a coarse wetness grid that evaporates every tick
- Slow or dwelling strokes let the pool cross a probabilistic threshold and
  seed drips, which run down the canvas under gravity and viscous damping

All mutation happens on the caller's thread. The host pumps the stroke sampler
(`scheduler.run_pending()`) and calls `tick(dt)` once per frame.
"""
import logging
import math
from dataclasses import asdict, dataclass, fields
from typing import Optional, Tuple

import numpy as np

from .brush_cache import BrushCache
from .configs import Material, PaintColor, SprayParams, clamp_param, is_param
from .derived import DerivedParams, derive_spray_params, overspray_step
from .diagnostics import DiagnosticEvent, DiagnosticSink, LoggingDiagnosticSink
from .drips import DripManager
from .grain import GrainRenderer
from .scheduling import MonotonicClock, TaskScheduler
from .surface import RasterCanvas
from .wetness import WetnessField

logger = logging.getLogger(__name__)

# =============================================================================
# STROKE CONSTANTS
# =============================================================================
DEFAULT_COLOR = "#221f20"
SAMPLER_INTERVAL_MS = 16.0
PRESSURE_SMOOTHING = 0.2
SPEED_TIME_CONSTANT = 0.12   # seconds
STATIONARY_FRACTION = 0.3    # of v_slow
MAX_TICK_DT = 0.05
MAX_LINE_STAMPS = 400
V_FAST_MIN_RATIO = 1.2       # v_fast >= ratio * v_ref


@dataclass(frozen=True)
class EngineStats:
    stamps: int
    grains_drawn: int
    overspray_dots: int
    drips_spawned: int
    drips_merged: int
    drips_removed: int
    live_drips: int


class SprayEngine:
    """
    Spray-paint simulator over a numpy raster.

    Owns the parameters, render surface, wetness field, drip collection and
    brush cache; there is no process-wide state. Randomness comes from one
    injectable `numpy.random.Generator` and time from an injectable clock, so
    a seeded engine on a `VirtualClock` is fully reproducible.
    """

    def __init__(
        self,
        width: int = 800,
        height: int = 600,
        downsample: int = 2,
        pixel_density: float = 1.0,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
        clock=None,
        scheduler: Optional[TaskScheduler] = None,
        diagnostics: Optional[DiagnosticSink] = None,
    ):
        if clock is None:
            clock = scheduler.clock if scheduler is not None else MonotonicClock()
        self.clock = clock
        self.scheduler = scheduler if scheduler is not None else TaskScheduler(clock)
        self.report = diagnostics if diagnostics is not None else LoggingDiagnosticSink()
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.p = SprayParams()
        self.paint = PaintColor()
        self.paint.set(DEFAULT_COLOR)

        self.canvas = RasterCanvas(width, height, pixel_density)
        self.brushes = BrushCache(pixel_density, self.rng, self.report)
        self.brushes.highlight_gain = self.p.drip_highlight_gain
        self.wetness = WetnessField(width, height, self.p, downsample, self.report)
        self.drip_manager = DripManager(
            self.p, self.wetness, self.canvas, self.brushes, self.paint, self.rng, self.clock, self.report
        )
        self.grains = GrainRenderer(
            self.p, self.canvas, self.brushes, self.wetness, self.drip_manager, self.paint, self.rng, self.report
        )

        self._drawing = False
        self._sampler = None
        self._speed = 0.0
        self._sample_pos: Optional[Tuple[float, float]] = None
        self._sample_ms = self.clock.now_ms()
        self._last: Optional[Tuple[float, float]] = None
        self._current: Optional[Tuple[float, float]] = None
        self._motion = (0.0, 0.0)
        self._last_over_pos: Optional[Tuple[float, float]] = None
        self._dwell_over_at: Optional[float] = None
        self._overspray_step = overspray_step(self.p)
        self._stamps = 0
        logger.debug("SprayEngine %dx%d (downsample=%d, density=%.2f)", width, height, self.wetness.downsample, self.canvas.scale)

    def _emit(self, kind, value=None, original=None, detail="", severity="warning"):
        self.report(DiagnosticEvent(kind, value=value, original=original, detail=detail, severity=severity))

    # ------------------------------------------------------------------
    # read-only state
    # ------------------------------------------------------------------
    @property
    def params(self) -> SprayParams:
        return self.p

    @property
    def derived(self) -> DerivedParams:
        return derive_spray_params(self.p)

    @property
    def color(self) -> str:
        return self.paint.hex

    @property
    def material(self) -> Material:
        return self.paint.material

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def drips(self):
        return tuple(self.drip_manager.drips)

    @property
    def drips_enabled(self) -> bool:
        return self.drip_manager.enabled

    @property
    def sampler(self):
        return self._sampler

    @property
    def stats(self) -> EngineStats:
        dm = self.drip_manager
        return EngineStats(
            stamps=self._stamps,
            grains_drawn=self.grains.grains_drawn,
            overspray_dots=self.grains.overspray_dots,
            drips_spawned=dm.spawned,
            drips_merged=dm.merged,
            drips_removed=dm.removed,
            live_drips=len(dm),
        )

    # ------------------------------------------------------------------
    # parameters
    # ------------------------------------------------------------------
    def set_params(self, params: SprayParams):
        self.update_params(**asdict(params))

    def update_params(self, **kwargs):
        """Applies parameter changes, clamping every value into its range."""
        prev_step_inputs = (self.p.nozzle_size, self.p.distance, self.p.overspray_mult)
        prev_overspray = self.p.overspray_mult
        prev_gain = self.p.drip_highlight_gain
        for k, v in kwargs.items():
            if not is_param(k):
                self._emit("unknown_param", value=None, original=v, detail=k)
                continue
            self._set(k, v)

        self._clamp_v_fast()
        self.wetness.enforce_cap()
        self.drip_manager.enforce_limit()
        if (self.p.nozzle_size, self.p.distance, self.p.overspray_mult) != prev_step_inputs:
            self._overspray_step = overspray_step(self.p)
        if self.p.overspray_mult != prev_overspray:
            self._last_over_pos = None
        if self.p.drip_highlight_gain != prev_gain:
            self.brushes.highlight_gain = self.p.drip_highlight_gain
            self.brushes.clear()

    def _set(self, name, value):
        current = getattr(self.p, name)
        try:
            clamped = clamp_param(name, value, current)
        except (TypeError, ValueError):
            self._emit("param_rejected", value=current, original=value, detail=name)
            return current
        if not isinstance(clamped, bool) and isinstance(value, (int, float)) and not isinstance(value, bool):
            if clamped != value:
                self._emit("param_clamped", value=clamped, original=value, detail=name, severity="info")
        setattr(self.p, name, clamped)
        return clamped

    def _clamp_v_fast(self):
        floor = V_FAST_MIN_RATIO * self.p.v_ref
        if self.p.v_fast < floor:
            self._emit("param_clamped", value=floor, original=self.p.v_fast, detail="v_fast", severity="info")
            self.p.v_fast = floor

    @property
    def overspray_step(self) -> float:
        return self._overspray_step

    def set_color(self, color: str) -> bool:
        """Sets the paint colour; invalid strings leave it unchanged."""
        prev = self.paint.material
        if not self.paint.set(color):
            self._emit("invalid_color", value=self.paint.hex, original=color)
            return False
        if self.paint.material is not prev:
            logger.debug("paint material is now %s", self.paint.material.value)
        return True

    def set_nozzle_size(self, px):
        self.update_params(nozzle_size=px)

    def set_softness(self, percent):
        self.update_params(softness=_percent(percent))

    def set_opacity(self, percent):
        self.update_params(opacity=_percent(percent))

    def set_flow(self, percent):
        self.update_params(flow=_percent(percent))

    def set_scatter_radius(self, percent):
        self.update_params(scatter_radius_mult=_percent(percent))

    def set_scatter_amount(self, percent):
        self.update_params(scatter_amount_mult=_percent(percent))

    def set_scatter_size(self, percent):
        self.update_params(scatter_size_mult=_percent(percent))

    def set_overspray(self, percent):
        self.update_params(overspray_mult=_percent(percent))

    def set_distance(self, px):
        v = _number(px)
        if math.isfinite(v):
            v = round(v)
        self.update_params(distance=v)

    def set_drip_threshold(self, percent):
        self.update_params(drip_threshold=_percent(percent))

    def set_drip_gravity(self, value):
        self.update_params(gravity=value)

    def set_drip_viscosity(self, value):
        self.update_params(viscosity=value)

    def set_drip_evaporation(self, percent):
        self.update_params(wet_evaporation=_percent(percent))

    def set_line_dynamics_enabled(self, enabled: bool):
        self.update_params(line_dynamics_enabled=bool(enabled))

    def set_line_dynamics_range(self, thin_fast, thick_slow):
        self.update_params(thin_fast_scale=thin_fast, thick_slow_scale=thick_slow)

    def set_line_dynamics_curve(self, curve):
        self.update_params(speed_curve=curve)

    def set_line_dynamics_fast_speed(self, v_fast):
        self.update_params(v_fast=v_fast)

    def toggle_drips(self) -> bool:
        self.drip_manager.enabled = not self.drip_manager.enabled
        logger.debug("drips %s", "enabled" if self.drip_manager.enabled else "disabled")
        return self.drip_manager.enabled

    # ------------------------------------------------------------------
    # stroke lifecycle
    # ------------------------------------------------------------------
    def start_drawing(self, x: float, y: float, pressure: float = 1.0):
        if not self._valid_position(x, y):
            return
        self._drawing = True
        self._set("pressure", pressure)
        self._last = (x, y)
        self._current = (x, y)
        self._motion = (0.0, 0.0)
        self._last_over_pos = None
        self._dwell_over_at = None
        self._sample_pos = (x, y)
        self._sample_ms = self.clock.now_ms()
        if self._sampler is None or not self._sampler.active:
            self._sampler = self.scheduler.call_every(SAMPLER_INTERVAL_MS, self._sample)

    def draw(self, x: float, y: float, pressure: float = 1.0):
        """Extends the current stroke to (x, y); no-op while idle."""
        if not self._drawing:
            return
        if not self._valid_position(x, y):
            return
        self._current = (x, y)
        target = clamp_param("pressure", pressure, self.p.pressure)
        self.p.pressure += (target - self.p.pressure) * PRESSURE_SMOOTHING

        speed = self._update_speed(x, y)
        lx, ly = self._last
        self._motion = (x - lx, y - ly)
        self._draw_line(lx, ly, x, y, speed)
        self._last = (x, y)

        if self.rng.random() < 0.01:
            self.brushes.cleanup()

    def stop_drawing(self):
        """Ends the stroke; the sampler never fires again after this returns."""
        if self._sampler is not None:
            self._sampler.cancel()
            self._sampler = None
        self._drawing = False
        self._last = None
        self._current = None
        self._motion = (0.0, 0.0)
        self._last_over_pos = None
        self._dwell_over_at = None

    def _valid_position(self, x, y) -> bool:
        if math.isfinite(_number(x)) and math.isfinite(_number(y)):
            return True
        self._emit("invalid_position", original=(x, y))
        return False

    def _sample(self):
        if self._drawing and self._current is not None:
            self.stamp(*self._current)

    def _draw_line(self, x0, y0, x1, y1, speed):
        size = self.p.nozzle_size * (0.8 + 0.4 * self.p.pressure)
        spacing = max(0.2, 0.05 * size)
        dist = math.hypot(x1 - x0, y1 - y0)
        n = min(MAX_LINE_STAMPS, max(1, int(dist / spacing)))
        for i in range(n + 1):
            t = i / n
            jx = self.rng.uniform(-1.0, 1.0)
            jy = self.rng.uniform(-1.0, 1.0)
            self._stamp_at(x0 + (x1 - x0) * t + jx, y0 + (y1 - y0) * t + jy, speed)

    # ------------------------------------------------------------------
    # stamping
    # ------------------------------------------------------------------
    def _update_speed(self, x, y) -> float:
        now = self.clock.now_ms()
        dt = max(1.0, now - self._sample_ms) / 1000.0
        if self._sample_pos is None:
            dist = 0.0
        else:
            dist = math.hypot(x - self._sample_pos[0], y - self._sample_pos[1])
        k = math.exp(-dt / SPEED_TIME_CONSTANT)
        self._speed = k * self._speed + (1.0 - k) * dist / dt
        self._sample_pos = (x, y)
        self._sample_ms = now
        return self._speed

    def stamp(self, x: float, y: float):
        """Draws one spray stamp at (x, y)."""
        if not self._valid_position(x, y):
            return
        self._stamp_at(x, y, self._update_speed(x, y))

    def _stamp_at(self, x, y, speed):
        p = self.p
        now = self.clock.now_ms()
        size = p.nozzle_size * (0.8 + 0.4 * p.pressure)
        self._stamps += 1

        if speed < STATIONARY_FRACTION * p.v_slow:
            if self._dwell_over_at is None or now - self._dwell_over_at >= p.overspray_time_step_ms:
                self.grains.add_overspray(x, y, size, self._motion)
                self._dwell_over_at = now
            dwell_wet = 0.1 * p.flow * (0.85 + 0.5 * p.pressure)
            self.wetness.accumulate(x, y, dwell_wet, p.v_slow, centre_bias=True)
            self.drip_manager.try_spawn(x, y, p.v_slow)
        else:
            self._dwell_over_at = None

        self.grains.render_grains(x, y, size, speed)

        if self._last_over_pos is None:
            self._last_over_pos = (x, y)
            return
        d = math.hypot(x - self._last_over_pos[0], y - self._last_over_pos[1])
        step = self._overspray_step
        if d >= step:
            if d < step * 1.2:
                self.grains.add_overspray(x, y, size, self._motion)
            self._last_over_pos = (x, y)

    # ------------------------------------------------------------------
    # per-frame update
    # ------------------------------------------------------------------
    def tick(self, dt: float):
        """Advances evaporation and drip physics by `dt` seconds."""
        try:
            dt = float(dt)
        except (TypeError, ValueError):
            return
        if not math.isfinite(dt) or dt <= 0.0:
            return
        dt = min(dt, MAX_TICK_DT)
        self.wetness.decay_tick(dt)
        self.drip_manager.advance(dt)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    def clear(self):
        """Clears paint, wetness and live drips."""
        self.canvas.clear()
        self.wetness.reset()
        self.drip_manager.clear()

    def reset(self):
        """Clears everything and restores default parameters and colour."""
        self.stop_drawing()
        self.clear()
        defaults = SprayParams()
        for f in fields(SprayParams):
            setattr(self.p, f.name, getattr(defaults, f.name))
        self.paint.set(DEFAULT_COLOR)
        self.drip_manager.enabled = True
        self.brushes.highlight_gain = self.p.drip_highlight_gain
        self.brushes.clear()
        self._speed = 0.0
        self._sample_pos = None
        self._overspray_step = overspray_step(self.p)

    def resize(self, width: int, height: int):
        """Reallocates the canvas and wetness grid; painted content is lost."""
        self.canvas.resize(width, height)
        self.wetness.resize(width, height)
        self.drip_manager.clear()
        logger.debug("resized to %dx%d", width, height)

    def check_integrity(self) -> bool:
        """Verifies the simulation invariants; logs and returns False on violation."""
        w = self.wetness.w
        ok = True
        if not np.all(np.isfinite(w)):
            logger.warning("integrity: non-finite wetness")
            ok = False
        elif w.size and (w.min() < 0.0 or w.max() > self.p.wet_cap + 1e-6):
            logger.warning("integrity: wetness out of range [%f, %f]", w.min(), w.max())
            ok = False
        if len(self.drip_manager) > self.p.max_drips:
            logger.warning("integrity: %d drips exceed max_drips=%d", len(self.drip_manager), self.p.max_drips)
            ok = False
        if not np.all(np.isfinite(self.canvas.pixels)):
            logger.warning("integrity: non-finite pixels")
            ok = False
        return ok


def _number(value) -> float:
    """float(value), or NaN for anything unparsable (setters then keep the current value)."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def _percent(value) -> float:
    return _number(value) / 100.0
