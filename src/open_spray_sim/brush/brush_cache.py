import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .configs import Material
from .diagnostics import DiagnosticSink, safe_radius
from .surface import composite_over, hex_to_rgb, radial_gradient

logger = logging.getLogger(__name__)

SPRAY = "spray"
DRIP = "drip"

# Metallic gold palette.
_GOLD_CORE = (1.0, 215 / 255, 0.0)            # #FFD700
_GOLD_BODY = (234 / 255, 198 / 255, 119 / 255)  # #EAC677
_GOLD_MID = (212 / 255, 175 / 255, 55 / 255)    # #D4AF37
_GOLD_RIM = (184 / 255, 134 / 255, 11 / 255)    # #B8860B
_CORNSILK = (1.0, 248 / 255, 220 / 255)         # #FFF8DC
_WHITE = (1.0, 1.0, 1.0)


@dataclass(frozen=True)
class BrushImage:
    image: np.ndarray
    radius: float


BrushKey = Tuple[float, float, str, float, str, str]


def radius_bucket(r: float) -> float:
    return max(1.0, round(r * 4.0) / 4.0)


class BrushCache:
    """Memo table of pre-rendered circular gradient brushes.

    Entries are immutable once created. When the table grows beyond
    `max_entries`, only the `keep_entries` most recently created survive.
    """

    def __init__(
        self,
        pixel_density: float = 1.0,
        rng: Optional[np.random.Generator] = None,
        report: Optional[DiagnosticSink] = None,
        max_entries: int = 50,
        keep_entries: int = 20,
    ):
        self.pixel_density = max(1.0, float(pixel_density))
        self.rng = rng if rng is not None else np.random.default_rng()
        self.report = report
        self.max_entries = int(max_entries)
        self.keep_entries = int(keep_entries)
        self.highlight_gain = 0.6
        self._entries: Dict[BrushKey, BrushImage] = {}
        self.builds = 0

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return key in self._entries

    def clear(self):
        self._entries.clear()

    def key_for(self, radius, color, softness, material=Material.STANDARD, variant=SPRAY) -> BrushKey:
        r = radius_bucket(safe_radius(radius, self.report))
        return (r, self.pixel_density, color, round(float(softness), 4), material.value, variant)

    def get(self, radius, color: str, softness: float, material: Material = Material.STANDARD, variant: str = SPRAY) -> BrushImage:
        key = self.key_for(radius, color, softness, material, variant)
        hit = self._entries.get(key)
        if hit is not None:
            return hit

        r = key[0]
        if material is Material.METALLIC:
            image = self._build_metallic(r, softness, variant)
        else:
            image = self._build_standard(r, color, softness)
        brush = BrushImage(image=image, radius=r)
        self._entries[key] = brush
        self.builds += 1
        if len(self._entries) > self.max_entries:
            self.cleanup()
        return brush

    def cleanup(self):
        """Keeps only the most recently created entries."""
        if len(self._entries) <= self.keep_entries:
            return
        recent = list(self._entries.items())[-self.keep_entries:]
        self._entries = dict(recent)
        logger.debug("brush cache trimmed to %d entries", len(self._entries))

    def _canvas_size(self, r):
        px = max(2, int(math.ceil(r * 2.0 * self.pixel_density)))
        return px, r * self.pixel_density

    def _build_standard(self, r, color, softness):
        px, rr = self._canvas_size(r)
        rgb = hex_to_rgb(color)
        return radial_gradient(
            (px, px), (rr, rr), rr,
            [(0.0, (*rgb, 1.0)), (softness, (*rgb, 1.0)), (1.0, (*rgb, 0.0))],
        )

    def _build_metallic(self, r, softness, variant):
        """Warm gold body, specular bands and a faint per-pixel grain."""
        px, rr = self._canvas_size(r)
        gain = self.highlight_gain if variant == DRIP else 1.0
        cx = cy = rr

        img = radial_gradient(
            (px, px), (cx, cy), rr,
            [
                (0.0, (*_GOLD_CORE, 0.85 * gain)),
                (0.3, (*_GOLD_BODY, 1.0)),
                (0.7, (*_GOLD_MID, 1.0)),
                (1.0, (*_GOLD_RIM, 1.0)),
            ],
        )
        highlight = radial_gradient(
            (px, px), (cx * 0.72, cy * 0.72), rr * 0.62,
            [
                (0.0, (*_CORNSILK, 0.55 * gain)),
                (0.4, (*_GOLD_CORE, 0.45 * gain)),
                (1.0, (*_GOLD_CORE, 0.0)),
            ],
        )
        composite_over(img, highlight)
        reflection = radial_gradient(
            (px, px), (cx * 1.2, cy * 0.8), rr * 0.4,
            [
                (0.0, (*_WHITE, 0.2 * gain)),
                (0.3, (*_GOLD_CORE, 0.15 * gain)),
                (1.0, (*_GOLD_CORE, 0.0)),
            ],
        )
        composite_over(img, reflection)

        ys, xs = np.mgrid[0:px, 0:px].astype(np.float32)
        dist = np.hypot(xs + 0.5 - cx, ys + 0.5 - cy)
        inside = dist <= rr
        noise = self.rng.uniform(-10.0, 10.0, size=(px, px)).astype(np.float32) / 255.0
        img[..., :3] = np.where(inside[..., None], np.clip(img[..., :3] + noise[..., None], 0.0, 1.0), img[..., :3])

        # Disc mask with the same soft edge as the plain recipe.
        t = np.clip(dist / max(rr, 1e-6), 0.0, 1.0)
        edge = np.interp(t, [0.0, softness, 1.0], [1.0, 1.0, 0.0]).astype(np.float32)
        img[..., 3] *= edge
        return img
