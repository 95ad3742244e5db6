"""Image differ — perceptual per-pixel comparison of a capture against its baseline.

Pixels are compared in YIQ colour space after blending over white, the same
metric pixelmatch uses: a pixel differs when its weighted squared YIQ
distance exceeds ``MAX_YIQ_DELTA * threshold ** 2``. Masked pixels are
removed from both the numerator and the denominator of the difference ratio.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from PIL import Image

from visreg.errors import DimensionMismatchError
from visreg.models.config import MaskRect

logger = logging.getLogger(__name__)

# Largest possible YIQ delta (black vs white); threshold 1.0 tolerates everything.
MAX_YIQ_DELTA = 35215.0

HIGHLIGHT_COLOR = np.array([255, 0, 0], dtype=np.float32)
MASK_TINT = np.array([96, 140, 255], dtype=np.float32)
FADE_ALPHA = 0.1


@dataclass(frozen=True)
class DiffResult:
    width: int
    height: int
    differing_pixels: int
    masked_pixels: int
    diff_image: Optional[Image.Image] = None

    @property
    def comparable_pixels(self) -> int:
        return self.width * self.height - self.masked_pixels

    @property
    def difference_ratio(self) -> float:
        if self.comparable_pixels <= 0:
            return 0.0
        return self.differing_pixels / self.comparable_pixels

    @property
    def identical(self) -> bool:
        return self.differing_pixels == 0


def compare(
    baseline: Image.Image,
    capture: Image.Image,
    mask_rects: Sequence[MaskRect] = (),
    threshold: float = 0.2,
    render_diff: bool = True,
) -> DiffResult:
    """Count perceptually different pixels between two equally sized images.

    Raises DimensionMismatchError instead of attempting a partial comparison
    when the sizes differ.
    """
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be within [0, 1], got {threshold}")
    if baseline.size != capture.size:
        raise DimensionMismatchError(baseline.size, capture.size)

    width, height = baseline.size
    mask = build_mask(width, height, mask_rects)
    masked_pixels = int(mask.sum())

    base_rgb = _blend_over_white(baseline)
    cap_rgb = _blend_over_white(capture)
    delta = _yiq_delta(base_rgb, cap_rgb)

    max_delta = MAX_YIQ_DELTA * threshold * threshold
    differing = (delta > max_delta) & ~mask
    differing_pixels = int(differing.sum())

    diff_image = None
    if differing_pixels > 0 and render_diff:
        diff_image = _render_diff(base_rgb, differing, mask)

    logger.debug(
        "Compared %dx%d: %d differing, %d masked (threshold=%.3f)",
        width, height, differing_pixels, masked_pixels, threshold,
    )
    return DiffResult(
        width=width,
        height=height,
        differing_pixels=differing_pixels,
        masked_pixels=masked_pixels,
        diff_image=diff_image,
    )


def build_mask(width: int, height: int, rects: Sequence[MaskRect]) -> np.ndarray:
    """Boolean array, True where a pixel is excluded from comparison."""
    mask = np.zeros((height, width), dtype=bool)
    for rect in rects:
        clipped = rect.clipped(width, height)
        if clipped is None:
            continue
        mask[clipped.y:clipped.y + clipped.height, clipped.x:clipped.x + clipped.width] = True
    return mask


def _blend_over_white(image: Image.Image) -> np.ndarray:
    arr = np.asarray(image.convert("RGBA"), dtype=np.float32)
    rgb = arr[..., :3]
    alpha = arr[..., 3:4] / 255.0
    return 255.0 + (rgb - 255.0) * alpha


def _yiq(rgb: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    y = r * 0.29889531 + g * 0.58662247 + b * 0.11448223
    i = r * 0.59597799 - g * 0.27417610 - b * 0.32180189
    q = r * 0.21147017 - g * 0.52261711 + b * 0.31114694
    return y, i, q


def _yiq_delta(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ya, ia, qa = _yiq(a)
    yb, ib, qb = _yiq(b)
    delta = 0.5053 * (ya - yb) ** 2 + 0.299 * (ia - ib) ** 2 + 0.1957 * (qa - qb) ** 2
    # Bit-identical pixels must never count, whatever float rounding does.
    delta[np.all(a == b, axis=-1)] = 0.0
    return delta


def _render_diff(base_rgb: np.ndarray, differing: np.ndarray, mask: np.ndarray) -> Image.Image:
    """Differing pixels in red over a faded grayscale copy of the baseline."""
    luma, _, _ = _yiq(base_rgb)
    faded = 255.0 + (luma - 255.0) * FADE_ALPHA
    out = np.repeat(faded[..., np.newaxis], 3, axis=-1)
    out[mask] = out[mask] * 0.5 + MASK_TINT * 0.5
    out[differing] = HIGHLIGHT_COLOR
    return Image.fromarray(np.clip(out, 0, 255).astype(np.uint8))
