import math
from typing import Optional, Tuple

import numpy as np

from .brush_cache import SPRAY, BrushCache
from .configs import D_REF, PaintColor, SprayParams
from .derived import derive_spray_params
from .diagnostics import DiagnosticSink, safe_radius
from .drips import DripManager
from .surface import SCREEN, SOURCE_OVER, RasterCanvas
from .wetness import WetnessField

GOLDEN_ANGLE = math.pi * (3.0 - math.sqrt(5.0))
MAX_DOTS = 1400
GRAIN_SIGMA = 0.35
HALO_SPACING = 16.0
SMALL_NOZZLE = 10.0


class GrainRenderer:
    """Draws one spray stamp as a cloud of small translucent dots.

    Grains are placed on a jittered golden-angle spiral so the disc fills
    evenly without clumping. Every fourth grain also deposits paint into the
    wetness field and gives the drip manager a chance to seed a drip.
    """

    def __init__(
        self,
        params: SprayParams,
        canvas: RasterCanvas,
        brushes: BrushCache,
        field: WetnessField,
        drips: DripManager,
        paint: PaintColor,
        rng: np.random.Generator,
        report: Optional[DiagnosticSink] = None,
    ):
        self.p = params
        self.canvas = canvas
        self.brushes = brushes
        self.field = field
        self.drips = drips
        self.paint = paint
        self.rng = rng
        self.report = report
        self.grains_drawn = 0
        self.overspray_dots = 0

    def _brush(self, r):
        return self.brushes.get(r, self.paint.hex, self.p.softness, self.paint.material, SPRAY)

    def thickness_scale(self, speed: float) -> float:
        """Slow strokes read thicker, fast strokes thinner."""
        p = self.p
        if not p.line_dynamics_enabled:
            return 1.0
        n = (speed - p.v_slow) / max(1.0, p.v_fast - p.v_slow)
        n = min(1.0, max(0.0, n))
        eased = n ** p.speed_curve
        return p.thick_slow_scale + (p.thin_fast_scale - p.thick_slow_scale) * eased

    def grain_size(self, base_r: float) -> float:
        p = self.p
        pressure = p.pressure if p.pressure > 0.0 else 0.7
        factor = math.exp(GRAIN_SIGMA * self.rng.standard_normal())
        if self.rng.random() < 0.02:
            factor *= 1.8 + self.rng.random() * 1.2
        factor *= (max(2.0, p.distance) / 15.0) / math.sqrt(pressure + 0.2)
        factor = min(2.2, max(0.35, factor))
        return max(0.5, base_r * factor)

    def grain_opacity(self, size_factor: float, alpha_scale: float) -> float:
        boost = min(1.25, max(0.5, 0.6 + 0.5 * math.sqrt(size_factor)))
        jitter = 0.85 + self.rng.random() * 0.25
        return min(1.0, max(0.05, self.p.opacity * boost * jitter * alpha_scale))

    def render_grains(self, x: float, y: float, size: float, speed: float) -> int:
        """Renders the grain cloud of one stamp; returns the number of dots drawn."""
        p = self.p
        derived = derive_spray_params(p)
        speed = max(0.0, speed)
        k = self.thickness_scale(speed)
        small = p.nozzle_size < SMALL_NOZZLE

        dwell = min(1.0, speed / p.v_ref)
        spread = 1.0 + 0.35 * (1.0 - dwell)
        display_r = max(derived.scatter_radius, size * (0.45 if small else 0.55)) * spread * k

        density_comp = 1.0 / min(1.6, max(0.6, k))
        area = (p.nozzle_size * p.nozzle_size) / (D_REF * D_REF)
        n = int(min(MAX_DOTS, math.floor(display_r * 6.0 * area * p.flow * p.scatter_amount_mult * density_comp)))
        if n <= 0:
            return 0

        jitter_scale = 0.5 if small else 1.0
        dot_base_r = max(0.6, size * 0.005 * p.scatter_size_mult)
        tone_comp = math.sqrt(density_comp)
        shimmer = self.paint.is_metallic and p.metallic_shimmer_spray
        wet_norm = max(64.0, p.nozzle_size * p.nozzle_size)
        drawn = 0

        for i in range(n):
            u = (i + 0.5) / n
            jr = (self.rng.random() * 2.0 - 1.0) * 0.12 * (0.6 + 0.4 * (1.0 - u)) * display_r * jitter_scale
            jt = (self.rng.random() * 2.0 - 1.0) * 0.35 * (0.35 + 0.65 * (1.0 - u)) * jitter_scale
            r = max(0.0, math.sqrt(u) * display_r + jr)
            theta = i * GOLDEN_ANGLE + jt
            dx = x + math.cos(theta) * r
            dy = y + math.sin(theta) * r

            gr = max(0.6, self.grain_size(dot_base_r))
            alpha = self.grain_opacity(gr / dot_base_r, derived.alpha_scale)
            alpha *= (0.35 + 0.65 * dwell) * tone_comp

            brush = self._brush(safe_radius(gr, self.report))
            if shimmer and self.rng.random() < 0.3:
                self.canvas.stamp(brush.image, dx, dy, brush.radius, alpha, SCREEN)
            if self.canvas.stamp(brush.image, dx, dy, brush.radius, alpha, SOURCE_OVER):
                drawn += 1

            if i % 4 == 0:
                wet = 100.0 * alpha * gr * gr / wet_norm * (0.8 + 0.6 * p.pressure) * p.flow
                self.field.accumulate(dx, dy, wet, speed)
                self.drips.try_spawn(dx, dy, speed)

        self.grains_drawn += drawn
        return drawn

    def add_overspray(self, x: float, y: float, size: float, motion: Tuple[float, float] = (0.0, 0.0)) -> int:
        """Scatters the faint elliptical mist around a stamp.

        The ellipse is oriented along `motion` (a displacement vector) and
        dots are biased toward its centre, getting smaller and fainter with
        distance.
        """
        p = self.p
        o = p.overspray_mult
        if o <= 0.0:
            return 0
        derived = derive_spray_params(p)
        halo = min(max(size * 1.05, 2.0 * derived.projected_radius), size * 2.1)

        mx, my = motion
        angle = math.atan2(my or 0.0001, mx or 0.0001)
        cos_a, sin_a = math.cos(angle), math.sin(angle)
        a = halo * (1.08 + 0.08 * o)
        b = halo * (0.82 + 0.05 * o)

        # Ramanujan's perimeter approximation
        h = (a - b) ** 2 / (a + b) ** 2
        perimeter = math.pi * (a + b) * (1.0 + 3.0 * h / (10.0 + math.sqrt(4.0 - 3.0 * h)))
        count = (perimeter / HALO_SPACING
                 * math.sqrt(max(0.5, p.nozzle_size / D_REF))
                 * (0.55 + 0.85 * o)
                 * (0.75 + 0.55 * p.pressure)
                 * (0.6 + 0.8 * derived.alpha_scale))
        count = max(18, min(240, int(math.floor(count))))

        near = max(1.4, halo * 0.05)
        far = max(0.6, halo * 0.008)
        drawn = 0
        for i in range(count):
            r_norm = (self.rng.random() * 0.999 + 0.0005) ** 1.6
            theta = i * GOLDEN_ANGLE + (self.rng.random() - 0.5) * 0.35
            ex = math.cos(theta) * r_norm * a
            ey = math.sin(theta) * r_norm * b
            ox = x + cos_a * ey - sin_a * ex
            oy = y + sin_a * ey + cos_a * ex

            base_r = far + (near - far) * (1.0 - r_norm) ** 1.1
            r = safe_radius(base_r * (0.85 + self.rng.random() * 0.3), self.report)

            alpha = (0.1 + 0.55 * o) * (0.7 + 0.45 * (1.0 - r_norm)) * derived.alpha_scale
            m = self.rng.random()
            if m < 0.65:
                mult = 0.35 + self.rng.random() * 0.35
            elif m < 0.93:
                mult = 0.85 + self.rng.random() * 0.4
            elif m < 0.99:
                mult = 1.4 + self.rng.random() * 0.45
            else:
                mult = 2.0 + self.rng.random() * 0.7
            alpha = min(0.75, max(0.02, alpha * mult * (0.9 + 0.22 * r / near)))

            drawn += self._draw_dot_cluster(ox, oy, r, theta + math.pi * 0.5, alpha)

        self.overspray_dots += drawn
        return drawn

    def _draw_dot_cluster(self, cx, cy, base_r, tangent, alpha) -> int:
        """A slightly lumpy dot made of 1-4 overlapping sub-dots."""
        m = self.rng.random()
        if m < 0.65:
            sub = 1
        elif m < 0.85:
            sub = 2
        elif m < 0.95:
            sub = 3
        else:
            sub = 4
        cluster = base_r * (0.15 + self.rng.random() * 0.15)
        bias = tangent + (self.rng.random() - 0.5) * (math.pi / 10.0)

        drawn = 0
        for _ in range(sub):
            rr = cluster * math.sqrt(self.rng.random())
            ang = bias + (self.rng.random() - 0.5) * (math.pi / 3.0)
            ri = safe_radius(base_r * (0.8 + self.rng.random() * 0.4), self.report)
            brush = self._brush(ri)
            if self.canvas.stamp(brush.image, cx + math.cos(ang) * rr, cy + math.sin(ang) * rr,
                                 brush.radius, alpha, SOURCE_OVER):
                drawn += 1
        return drawn
