"""
Gravity-driven drips seeded from pooled paint.

High-level approach:
- Spawning is probabilistic: centre and 3x3 pooled wetness are combined into a
  trigger score, and the acceptance probability rises cubically above a knee
- A per-neighbourhood gate (frame cooldown + wall-clock interval) stops a
  single pool from producing a burst of drips
- Live drips are integrated with gravity and exponential viscous damping, and
  painted as a trail of overlapping stamps between the previous and current
  head position
- A drip ends with a quadratically eased taper tip (and sometimes a bead)
"""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .brush_cache import DRIP, BrushCache
from .configs import D_REF, PaintColor, SprayParams
from .diagnostics import DiagnosticEvent, DiagnosticSink, safe_radius
from .surface import MULTIPLY, SCREEN, SOURCE_OVER, RasterCanvas
from .wetness import WetnessField

logger = logging.getLogger(__name__)

# =============================================================================
# SPAWN & SHAPE CONSTANTS
# =============================================================================
SPEED_CUTOFF = 1.2          # no drips above SPEED_CUTOFF * v_slow
TRIGGER_KNEE = 1.0
SPAWN_GAIN = 4.0
TRIGGER_RATIO_CAP = 2.0
MERGE_VOLUME_CAP = 2.4
HOOK_PX = 26.0
EASE_LENGTH = 28.0
NOISE_FREQ_RANGE = (0.7, 1.6)
METALLIC_TONE = 0.92
MAX_TRAIL_STEPS = 256


@dataclass(frozen=True)
class DripProfile:
    """Per-drip randomized shape parameters."""

    widen_k: float
    wobble_amp: float
    wobble_freq: float
    taper_to: float
    noise_freq: float
    seed: float
    hook_dir: int
    hook_j: float
    bead: bool
    gravity_scale: float


@dataclass
class Drip:
    drip_id: int
    x: float
    y: float
    px: float
    py: float
    x0: float
    vy: float
    vol: float
    base_r: float
    length: float
    age: float
    profile: DripProfile
    alive: bool = True
    end_reason: Optional[str] = None


def _hash1(t: float) -> float:
    s = math.sin(t * 12.9898) * 43758.5453
    return s - math.floor(s)


def smooth_noise(t: float) -> float:
    """Smoothstep-interpolated 1D value noise in [0, 1)."""
    i = math.floor(t)
    f = t - i
    a = _hash1(i)
    b = _hash1(i + 1)
    u = f * f * (3.0 - 2.0 * f)
    return a + (b - a) * u


class DripManager:
    """Owns the live drip collection: spawning, integration and rendering."""

    def __init__(
        self,
        params: SprayParams,
        field: WetnessField,
        canvas: RasterCanvas,
        brushes: BrushCache,
        paint: PaintColor,
        rng: np.random.Generator,
        clock,
        report: Optional[DiagnosticSink] = None,
    ):
        self.p = params
        self.field = field
        self.canvas = canvas
        self.brushes = brushes
        self.paint = paint
        self.rng = rng
        self.clock = clock
        self.report = report

        self.enabled = True
        self.drips: List[Drip] = []
        self._next_id = 1
        self.spawned = 0
        self.merged = 0
        self.removed = 0

    def __len__(self):
        return len(self.drips)

    def clear(self):
        self.drips.clear()

    def enforce_limit(self):
        """Drops the oldest drips after max_drips has been lowered."""
        excess = len(self.drips) - self.p.max_drips
        if excess <= 0:
            return
        for d in self.drips[:excess]:
            d.alive = False
            d.end_reason = "limit"
        self.removed += excess
        self.drips = self.drips[excess:]
        self._emit("drips_trimmed", value=self.p.max_drips, original=self.p.max_drips + excess, severity="info")

    def _emit(self, kind, value=None, original=None, detail="", severity="warning"):
        if self.report is not None:
            self.report(DiagnosticEvent(kind, value=value, original=original, detail=detail, severity=severity))

    # ------------------------------------------------------------------
    # geometry helpers
    # ------------------------------------------------------------------
    @property
    def neighbourhood_radius(self) -> int:
        """Spawn-gate half size in cells."""
        return max(1, int(math.ceil(self.p.min_drip_spacing / (2.0 * self.field.downsample))))

    @property
    def composite_mode(self) -> str:
        return SOURCE_OVER if self.paint.is_metallic else MULTIPLY

    @property
    def tone_parity(self) -> float:
        return METALLIC_TONE if self.paint.is_metallic else 1.0

    def trail_cap_for(self, d: Drip) -> float:
        """Largest trail radius allowed for this drip."""
        by_base = d.base_r * 1.6
        by_vol = 6.0 + 7.5 * math.sqrt(max(0.0, d.vol))
        return min(by_base, by_vol, self.p.global_trail_cap)

    def head_radius_for(self, d: Drip, cap: Optional[float] = None) -> float:
        if cap is None:
            cap = self.trail_cap_for(d)
        raw = d.base_r * (1.15 + 0.45 * d.vol)
        limit = min(cap * 0.9, self.p.global_trail_cap * 0.9)
        return max(1.0, min(raw, limit))

    def _draw(self, x, y, radius, alpha, mode=None):
        r = safe_radius(radius, self.report)
        brush = self.brushes.get(r, self.paint.hex, self.p.softness, self.paint.material, DRIP)
        self.canvas.stamp(brush.image, x, y, brush.radius, min(1.0, alpha), mode or self.composite_mode)

    # ------------------------------------------------------------------
    # spawning
    # ------------------------------------------------------------------
    def thresholds(self, speed: float):
        """Centre and pool wetness needed at `speed`."""
        p = self.p
        speed_adj = 0.7 + 0.3 * min(1.0, max(0.0, speed) / p.v_slow)
        nozzle_adj = min(1.25, max(0.75, 0.75 + 0.25 * p.nozzle_size / D_REF))
        return p.drip_threshold * speed_adj * nozzle_adj, p.pool_threshold * speed_adj * nozzle_adj

    def try_spawn(self, x: float, y: float, speed: float) -> Optional[Drip]:
        """Seeds a drip at (x, y) if the local pool is wet enough.

        Returns the new drip, or None when nothing was spawned (including
        when the seed merged into a nearby drip).
        """
        if not self.enabled:
            return None
        cell = self.field.cell_of(x, y)
        if cell is None:
            return None
        cx, cy = cell
        p = self.p

        if not math.isfinite(speed):
            speed = 0.0
        if speed > SPEED_CUTOFF * p.v_slow:
            self.field.passive_decay(cx, cy)
            return None

        need_center, need_pool = self.thresholds(speed)
        centre = self.field.value(cx, cy)
        pool, weight_sum = self.field.pool_at(cx, cy)
        trigger = (0.55 * min(TRIGGER_RATIO_CAP, centre / need_center)
                   + 0.45 * min(TRIGGER_RATIO_CAP, pool / need_pool))
        if trigger < TRIGGER_KNEE:
            return None
        prob = min(1.0, SPAWN_GAIN * (trigger - TRIGGER_KNEE) ** 3)
        if self.rng.random() >= prob:
            return None

        now = self.clock.now_ms()
        rn = self.neighbourhood_radius
        spacing = p.min_drip_spacing
        for d in reversed(self.drips):
            if abs(d.x - x) < spacing and abs(d.y - y) < spacing * 0.8:
                if self.field.gate_open(cx, cy, rn, now, p.min_spawn_interval_ms):
                    self._merge_into(d, pool)
                    self.field.mark_spawn(cx, cy, rn, now, p.spawn_cooldown_frames)
                return None

        origin = self._find_origin(cx, cy, now)
        if origin is None:
            return None
        bx, by = origin

        if len(self.drips) >= p.max_drips:
            self.field.drain(cx, cy, p.drip_hysteresis, 0)
            return None

        excess = max(0.0, pool / weight_sum - need_center)
        vol = min(1.6, 0.6 + 1.2 * excess * 4.0)
        base_r = 1.6 + 0.9 * math.sqrt(excess + 0.01) + 0.7 * p.nozzle_size / 48.0
        base_r = min(p.base_radius_hard_max, max(2.1, base_r))

        ds = self.field.downsample
        ox = (bx + 0.5) * ds
        oy = (by + 0.5) * ds
        drip = Drip(
            drip_id=self._next_id,
            x=ox, y=oy, px=ox, py=oy, x0=ox,
            vy=0.0, vol=vol, base_r=base_r, length=0.0, age=0.0,
            profile=self._random_profile(),
        )
        self._next_id += 1
        self.drips.append(drip)
        self.spawned += 1

        self.field.drain(bx, by, p.drip_hysteresis, rn)
        self.field.mark_spawn(bx, by, rn, now, p.spawn_cooldown_frames)
        logger.debug("drip %d spawned at (%.1f, %.1f) vol=%.2f base_r=%.2f", drip.drip_id, ox, oy, vol, base_r)
        return drip

    def _find_origin(self, cx, cy, now):
        """Best gated cell in the region below and around (cx, cy)."""
        p = self.p
        field = self.field
        rs = min(6, max(1, int(round(0.5 * p.nozzle_size / field.downsample))))
        y0, y1 = max(0, cy - 1), min(field.rows, cy + rs + 1)
        x0, x1 = max(0, cx - rs), min(field.cols, cx + rs + 1)
        if y0 >= y1 or x0 >= x1:
            return None

        region = field.w[y0:y1, x0:x1].astype(np.float64)
        oy, ox = np.mgrid[y0 - cy:y1 - cy, x0 - cx:x1 - cx]
        dist = np.hypot(ox, oy)
        score = region * np.exp(-dist / rs) * (1.0 + 0.6 * np.maximum(0, oy) / rs)
        score[region <= 0.0] = 0.0

        rn = self.neighbourhood_radius
        order = np.argsort(score, axis=None)[::-1]
        for flat in order:
            if score.flat[flat] <= 0.0:
                break
            ry, rx = divmod(int(flat), score.shape[1])
            if field.gate_open(x0 + rx, y0 + ry, rn, now, p.min_spawn_interval_ms):
                return x0 + rx, y0 + ry
        return None

    def _random_profile(self) -> DripProfile:
        p = self.p
        u = self.rng.random
        lo, hi = sorted((p.tail_taper_min, p.tail_taper_max))
        return DripProfile(
            widen_k=1.02 + u() * 0.2,
            wobble_amp=p.lateral_spread * (0.4 + u()),
            wobble_freq=0.5 + u() * 1.2,
            taper_to=lo + u() * (hi - lo),
            noise_freq=NOISE_FREQ_RANGE[0] + u() * (NOISE_FREQ_RANGE[1] - NOISE_FREQ_RANGE[0]),
            seed=u() * 1000.0,
            hook_dir=-1 if u() < 0.5 else 1,
            hook_j=0.65 + u() * 0.7,
            bead=bool(u() < p.tail_bead_chance),
            gravity_scale=0.85 + u() * 0.3,
        )

    def _merge_into(self, d: Drip, pool: float):
        """Widens `d` as if a seed of paint joined it. Volume is left alone."""
        p = self.p
        add_r = max(1.6, d.base_r * (0.9 + self.rng.random() * 0.2))
        add_vol = min(0.6 * (1.0 + (pool - p.drip_threshold)), 1.2)
        add_vol = max(0.0, add_vol)

        total = min(d.vol + add_vol, MERGE_VOLUME_CAP)
        area_mass = d.base_r * d.base_r * d.vol + add_r * add_r * add_vol
        r_eff = math.sqrt(max(1e-6, area_mass / max(1e-6, total)))
        r_avg = 0.5 * (d.base_r + add_r)
        new_base = r_avg + p.merge_damp * (r_eff - r_avg)
        if new_base > p.base_radius_hard_max:
            self._emit("merge_radius_clamped", value=p.base_radius_hard_max, original=new_base)
            new_base = p.base_radius_hard_max
        d.base_r = new_base
        self.merged += 1
        logger.debug("seed merged into drip %d, base_r=%.2f", d.drip_id, new_base)

    # ------------------------------------------------------------------
    # per-tick update
    # ------------------------------------------------------------------
    def advance(self, dt: float):
        """Integrates and paints every live drip; removes the finished ones."""
        if not self.drips:
            return
        survivors = []
        for d in self.drips:
            if self._advance_one(d, dt):
                d.alive = False
                self.removed += 1
            else:
                survivors.append(d)
        self.drips = survivors

    def _advance_one(self, d: Drip, dt: float) -> bool:
        p = self.p
        prof = d.profile
        tone = self.tone_parity
        d.age += dt

        d.vy += p.gravity * prof.gravity_scale * dt * (0.55 + 0.45 * d.vol)
        d.vy *= math.exp(-p.viscosity * dt)

        d.px, d.py = d.x, d.y
        d.y += d.vy * dt
        dy = d.y - d.py
        d.length += abs(dy)

        ease = d.length / (d.length + EASE_LENGTH)
        wobble = math.sin(d.age * 3.0 * prof.wobble_freq) * prof.wobble_amp * ease
        hook = prof.hook_dir * p.tail_hook_strength * prof.hook_j * (1.0 + 0.6 * ease * ease) * ease * HOOK_PX
        d.x += (wobble + hook) * dt
        limit = 2.0 + 0.35 * d.length
        if abs(d.x - d.x0) > limit:
            d.x = d.x0 + math.copysign(limit, d.x - d.x0)

        cap = self.trail_cap_for(d)
        if cap < d.base_r:
            self._emit("trail_cap_lowered", value=cap, original=d.base_r, severity="info")
        self._paint_trail(d, dy, cap, tone)

        r_head = self.head_radius_for(d, cap)
        self._draw(d.x, d.y, r_head, min(0.22, (0.16 + 0.1 * d.vol) * tone))
        if p.metallic_shimmer_drip and self.paint.is_metallic and self.rng.random() < 0.3:
            self._draw(d.x, d.y, r_head, 0.08, SCREEN)

        if self.rng.random() < 0.15:
            for _ in range(3):
                rr = 0.5 + self.rng.random()
                fx = d.x + (self.rng.random() - 0.5) * r_head * 2.0
                fy = d.y + (self.rng.random() + 0.2) * r_head * 3.0
                self._draw(fx, fy, rr, 0.05 * 0.9)

        loss = p.deposit_per_px * abs(dy) / 60.0 + p.wet_evaporation * dt * 0.45
        d.vol = max(0.0, d.vol - max(0.0, loss))

        if d.vol <= p.drip_volume_floor:
            d.end_reason = "volume"
        elif d.length > p.drip_length_cap:
            d.end_reason = "length"
        elif d.y > self.canvas.height + 5:
            d.end_reason = "exit"
        else:
            return False

        taper_to = max(0.8, d.base_r * prof.taper_to)
        self._draw_taper_tip(d, 1 if dy >= 0 else -1, max(1.0, r_head), taper_to, 0.14 * tone)
        logger.debug("drip %d ended (%s) after %.1f px", d.drip_id, d.end_reason, d.length)
        return True

    def _paint_trail(self, d: Drip, dy: float, cap: float, tone: float):
        p = self.p
        prof = d.profile
        steps = min(MAX_TRAIL_STEPS, max(1, int(abs(dy))))
        a_base = 0.22 * d.vol * tone
        widen = min(1.14, 1.0 + 0.0015 * d.length * prof.widen_k)
        elongate = 1.0 + min(0.4, d.length * 0.003)
        capped = False

        for s in range(1, steps + 1):
            t = s / steps
            yy = d.py + dy * t
            xl = d.px + (d.x - d.px) * t

            raw = d.base_r * elongate * (1.06 + 0.62 * d.vol) * widen * (1.0 + 0.12 * t)
            n = smooth_noise(prof.seed + d.length * 0.05 * prof.noise_freq)
            raw *= 1.0 + p.shape_noise_amp * (n - 0.5)

            r = raw
            if raw >= cap:
                over = min(1.0, (raw - cap) / max(1e-3, cap))
                r = cap - cap * 0.12 * over * over * (2.0 - over)
                r = min(r, cap - 0.25)
                capped = True
            r = safe_radius(r, self.report)

            xx = xl + (self.rng.random() - 0.5) * 0.4 * r
            near = r / max(1e-3, cap)
            falloff = max(0.35, 1.0 - 0.65 * near * near)
            alpha = max(0.05, min(0.2, a_base * (0.7 + 0.5 * t) * falloff))
            self._draw(xx, yy, r, alpha)

            if t < 0.25 and self.rng.random() < 0.05:
                self._draw(xx, yy, r * 1.2, alpha * 1.5)

            self.field.accumulate(xx, yy, alpha * 0.06)

        if capped:
            self._emit("trail_radius_capped", value=cap, original=d.base_r, detail=f"drip {d.drip_id}", severity="info")

    def _draw_taper_tip(self, d: Drip, direction: int, r_start: float, taper_to: float, alpha_base: float):
        steps = self.p.tail_cap_steps
        r = r_start
        for i in range(1, steps + 1):
            k = 1.0 - i / steps
            ri = safe_radius(taper_to + (r - taper_to) * k * k, self.report)
            yy = d.y + direction * i * max(0.5, ri * 0.7)
            self._draw(d.x, yy, ri, max(0.03, alpha_base * k * 0.9))
            r = ri

        if d.profile.bead:
            bead_r = max(0.8, r * (0.75 + self.rng.random() * 0.35))
            yy = d.y + direction * (steps * max(0.5, bead_r * 0.7) + bead_r * 0.4)
            self._draw(d.x, yy, bead_r, 0.12)
