"""Numpy raster sink used as the render surface.

Pixels are stored premultiplied (RGBA float32, rows first). Stamped images are
straight-alpha RGBA float32 arrays, as produced by :func:`radial_gradient`.
"""
from typing import Sequence, Tuple

import numpy as np

SOURCE_OVER = "source-over"
MULTIPLY = "multiply"
SCREEN = "screen"
BLEND_MODES = (SOURCE_OVER, MULTIPLY, SCREEN)

_EPS = 1e-6


def hex_to_rgb(hex_color: str) -> Tuple[float, float, float]:
    """'#rrggbb' or '#rgb' -> normalized RGB. Raises ValueError on bad input."""
    c = hex_color.strip().lstrip("#")
    if len(c) == 3:
        c = "".join(ch * 2 for ch in c)
    if len(c) != 6:
        raise ValueError(f"not a hex colour: {hex_color!r}")
    return tuple(int(c[i:i + 2], 16) / 255.0 for i in (0, 2, 4))


def radial_gradient(
    size: Tuple[int, int],
    center: Tuple[float, float],
    radius: float,
    stops: Sequence[Tuple[float, Sequence[float]]],
) -> np.ndarray:
    """Fills an (h, w) RGBA image with a radial gradient.

    `stops` are (offset, rgba) pairs with offsets in [0, 1]; pixels beyond the
    last stop take its colour.
    """
    h, w = size
    ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
    t = np.hypot(xs + 0.5 - center[0], ys + 0.5 - center[1]) / max(radius, _EPS)
    t = np.clip(t, 0.0, 1.0)

    offsets = np.array([s[0] for s in stops], dtype=np.float32)
    colors = np.array([tuple(s[1]) for s in stops], dtype=np.float32)
    out = np.empty((h, w, 4), dtype=np.float32)
    for ch in range(4):
        out[..., ch] = np.interp(t, offsets, colors[:, ch])
    return out


def composite_over(dst: np.ndarray, src: np.ndarray) -> np.ndarray:
    """Source-over of two straight-alpha images of equal shape; returns dst."""
    sa = src[..., 3:4]
    da = dst[..., 3:4]
    out_a = sa + da * (1.0 - sa)
    rgb = src[..., :3] * sa + dst[..., :3] * da * (1.0 - sa)
    dst[..., :3] = np.where(out_a > _EPS, rgb / np.maximum(out_a, _EPS), 0.0)
    dst[..., 3:4] = out_a
    return dst


class RasterCanvas:
    """2D raster with alpha-blended image stamping.

    `scale` is the pixel density: logical coordinates are multiplied by it to
    address device pixels.
    """

    def __init__(self, width: int, height: int, scale: float = 1.0):
        self.scale = max(1.0, float(scale))
        self.draw_calls = 0
        self.resize(width, height)

    @property
    def shape(self):
        return self.pixels.shape[:2]

    def clear(self):
        self.pixels.fill(0.0)

    def resize(self, width: int, height: int):
        """Reallocates the pixel buffer; painted content is discarded."""
        if width <= 0 or height <= 0:
            raise ValueError(f"canvas size must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.pixels = np.zeros(
            (int(np.ceil(self.height * self.scale)), int(np.ceil(self.width * self.scale)), 4),
            dtype=np.float32,
        )

    def draw_image(self, image: np.ndarray, x: float, y: float, alpha: float = 1.0, mode: str = SOURCE_OVER) -> bool:
        """Draws `image` with its top-left corner at logical (x, y).

        Returns False when the image lies entirely off the canvas.
        """
        if mode not in BLEND_MODES:
            raise ValueError(f"unsupported composite mode {mode!r}")
        alpha = float(alpha)
        if alpha <= 0.0:
            return False

        H, W = self.pixels.shape[:2]
        ih, iw = image.shape[:2]
        ox = int(round(x * self.scale))
        oy = int(round(y * self.scale))
        x0, y0 = max(0, ox), max(0, oy)
        x1, y1 = min(W, ox + iw), min(H, oy + ih)
        if x0 >= x1 or y0 >= y1:
            return False

        src = image[y0 - oy:y1 - oy, x0 - ox:x1 - ox]
        dst = self.pixels[y0:y1, x0:x1]
        sa = src[..., 3:4] * min(1.0, alpha)
        sc = src[..., :3]
        da = dst[..., 3:4]

        if mode != SOURCE_OVER:
            dc = np.where(da > _EPS, dst[..., :3] / np.maximum(da, _EPS), 0.0)
            if mode == MULTIPLY:
                blended = dc * sc
            else:
                blended = dc + sc - dc * sc
            sc = (1.0 - da) * sc + da * blended

        dst[..., :3] = sc * sa + dst[..., :3] * (1.0 - sa)
        dst[..., 3:4] = sa + da * (1.0 - sa)
        self.draw_calls += 1
        return True

    def stamp(self, image: np.ndarray, cx: float, cy: float, radius: float, alpha: float, mode: str = SOURCE_OVER) -> bool:
        """Draws a brush image of logical `radius` centred on (cx, cy)."""
        return self.draw_image(image, cx - radius, cy - radius, alpha, mode)

    def coverage(self) -> np.ndarray:
        """Alpha channel (device resolution)."""
        return self.pixels[..., 3]

    def to_rgb8(self, background=(1.0, 1.0, 1.0)) -> np.ndarray:
        """Flattens onto `background` and returns an (h, w, 3) uint8 image."""
        bg = np.asarray(background, dtype=np.float32)
        rgb = self.pixels[..., :3] + bg * (1.0 - self.pixels[..., 3:4])
        return (np.clip(rgb, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)
