import math
from typing import Optional, Tuple

import numpy as np

from .configs import SprayParams
from .diagnostics import DiagnosticEvent, DiagnosticSink

# 3x3 pooling weights: centre counts fully, neighbours partially.
_POOL_WEIGHTS = np.full((3, 3), 0.65, dtype=np.float32)
_POOL_WEIGHTS[1, 1] = 1.0


class WetnessField:
    """Coarse grid of pooled paint feeding the drip spawner.

    Each cell covers `downsample` x `downsample` canvas pixels and holds a
    wetness in [0, wet_cap]. Two parallel grids gate drip spawning: a frame
    counter (`cooldown`) and the time of the last spawn (`last_spawn_ms`).
    """

    def __init__(self, width: int, height: int, params: SprayParams, downsample: int = 2,
                 report: Optional[DiagnosticSink] = None):
        self.p = params
        self.downsample = max(1, int(downsample))
        self.report = report
        self.resize(width, height)

    # ------------------------------------------------------------------
    # allocation
    # ------------------------------------------------------------------
    def resize(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas size must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.cols = int(math.ceil(self.width / self.downsample))
        self.rows = int(math.ceil(self.height / self.downsample))
        self.w = np.zeros((self.rows, self.cols), dtype=np.float32)
        self.cooldown = np.zeros((self.rows, self.cols), dtype=np.uint16)
        self.last_spawn_ms = np.full((self.rows, self.cols), -np.inf, dtype=np.float64)

    def reset(self):
        self.w.fill(0.0)
        self.cooldown.fill(0)
        self.last_spawn_ms.fill(-np.inf)

    # ------------------------------------------------------------------
    # lookup
    # ------------------------------------------------------------------
    def cell_of(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        if not (math.isfinite(x) and math.isfinite(y)):
            return None
        cx = int(math.floor(x / self.downsample))
        cy = int(math.floor(y / self.downsample))
        if cx < 0 or cy < 0 or cx >= self.cols or cy >= self.rows:
            return None
        return cx, cy

    def in_bounds(self, cx: int, cy: int) -> bool:
        return 0 <= cx < self.cols and 0 <= cy < self.rows

    def value(self, cx: int, cy: int) -> float:
        return float(self.w[cy, cx])

    def value_at(self, x: float, y: float) -> float:
        cell = self.cell_of(x, y)
        return 0.0 if cell is None else self.value(*cell)

    def total(self) -> float:
        return float(self.w.sum())

    def max(self) -> float:
        return float(self.w.max()) if self.w.size else 0.0

    def _square(self, cx, cy, r):
        return (
            slice(max(0, cy - r), min(self.rows, cy + r + 1)),
            slice(max(0, cx - r), min(self.cols, cx + r + 1)),
        )

    def pool_at(self, cx: int, cy: int) -> Tuple[float, float]:
        """Weighted 3x3 sum around a cell and the sum of weights used."""
        ys, xs = self._square(cx, cy, 1)
        wy = slice(ys.start - (cy - 1), ys.stop - (cy - 1))
        wx = slice(xs.start - (cx - 1), xs.stop - (cx - 1))
        weights = _POOL_WEIGHTS[wy, wx]
        return float((self.w[ys, xs] * weights).sum()), float(weights.sum())

    # ------------------------------------------------------------------
    # deposits
    # ------------------------------------------------------------------
    def accumulate(self, x: float, y: float, amount: float, speed: Optional[float] = None,
                   centre_bias: bool = False) -> float:
        """Deposits paint at a canvas position; returns the amount stored.

        The deposit is scaled by flow/pressure gain and by the remaining
        headroom of the hit cell, so no cell ever exceeds `wet_cap`. Slow
        strokes bleed part of the deposit into the four orthogonal
        neighbours; centre-biased deposits (dwell pooling) do not.
        """
        cell = self.cell_of(x, y)
        if cell is None or not (amount > 0.0):
            return 0.0
        cx, cy = cell
        p = self.p
        cap = p.wet_cap

        gain = (0.85 + 0.45 * p.flow) * (0.75 + 0.55 * p.pressure)
        add = amount * gain * max(0.0, 1.0 - float(self.w[cy, cx]) / cap)
        if centre_bias:
            return self._add(cx, cy, add)

        if speed is None:
            speed = p.v_ref
        dwell = min(1.0, max(0.0, speed) / p.v_ref)
        stored = 0.0
        if dwell < 0.8:
            side = add * (0.55 * (1.0 - dwell))
            for nx, ny in ((cx - 1, cy), (cx + 1, cy), (cx, cy - 1), (cx, cy + 1)):
                if self.in_bounds(nx, ny):
                    room = max(0.0, 1.0 - float(self.w[ny, nx]) / cap)
                    stored += self._add(nx, ny, side * 0.5 * room)
            add *= 1.0 - 0.9 * (1.0 - dwell)
        return stored + self._add(cx, cy, add)

    def _add(self, cx, cy, add):
        if add <= 0.0:
            return 0.0
        cap = self.p.wet_cap
        old = float(self.w[cy, cx])
        new = old + add
        if new > cap:
            if self.report is not None:
                self.report(DiagnosticEvent("wetness_capped", value=cap, original=new, severity="info"))
            new = cap
        self.w[cy, cx] = new
        return new - old

    def enforce_cap(self):
        """Clips the grid after the cap has been lowered."""
        np.minimum(self.w, self.p.wet_cap, out=self.w)

    # ------------------------------------------------------------------
    # per-tick decay
    # ------------------------------------------------------------------
    def decay_tick(self, dt: float):
        """Exponential evaporation plus one frame of spawn cooldown."""
        if dt <= 0.0:
            return
        self.w *= np.float32(math.exp(-self.p.wet_evaporation * dt))
        active = self.cooldown > 0
        self.cooldown[active] -= 1

    def passive_decay(self, cx: int, cy: int, factor: float = 0.98):
        self.w[cy, cx] *= factor

    def drain(self, cx: int, cy: int, amount: float, radius: int):
        """Removes `amount` at the centre with a Gaussian radial falloff."""
        ys, xs = self._square(cx, cy, radius)
        gy, gx = np.mgrid[ys, xs]
        d2 = (gx - cx) ** 2 + (gy - cy) ** 2
        sigma = max(1.0, radius * 0.6)
        falloff = np.exp(-d2 / (2.0 * sigma * sigma)).astype(np.float32)
        region = self.w[ys, xs]
        np.maximum(region - amount * falloff, 0.0, out=region)

    # ------------------------------------------------------------------
    # spawn gate
    # ------------------------------------------------------------------
    def gate_open(self, cx: int, cy: int, radius: int, now_ms: float, interval_ms: float) -> bool:
        """True when no spawn marker is active anywhere in the neighbourhood."""
        ys, xs = self._square(cx, cy, radius)
        if self.cooldown[ys, xs].any():
            return False
        return bool((now_ms - self.last_spawn_ms[ys, xs]).min() >= interval_ms)

    def mark_spawn(self, cx: int, cy: int, radius: int, now_ms: float, frames: int):
        ys, xs = self._square(cx, cy, radius)
        self.cooldown[ys, xs] = frames
        self.last_spawn_ms[ys, xs] = now_ms
