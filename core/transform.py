from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Tuple

from core.errors import InvalidScale
from core.raster import RasterImage


@dataclass(frozen=True)
class Transform:
    # Replacement placement in mask-canvas coords.
    # Offsets are relative to the centered position.
    scale: float = 1.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def with_scale(self, scale: float) -> "Transform":
        return replace(self, scale=float(scale))

    def moved_by(self, dx: float, dy: float) -> "Transform":
        return replace(self, offset_x=self.offset_x + float(dx), offset_y=self.offset_y + float(dy))

    def moved_to(self, offset_x: float, offset_y: float) -> "Transform":
        return replace(self, offset_x=float(offset_x), offset_y=float(offset_y))

    def centered(self) -> "Transform":
        return self.moved_to(0.0, 0.0)


DEFAULT_TRANSFORM = Transform()


def check_scale(scale: float) -> float:
    s = float(scale)
    if not math.isfinite(s) or s <= 0.0:
        raise InvalidScale(f"scale must be a positive finite number, got {scale!r}")
    return s


def fit_scale(mask: RasterImage, replacement: RasterImage) -> float:
    """
    Largest uniform scale at which the replacement fits inside the mask
    canvas ("contain", not "cover").
    """
    return min(mask.width / float(replacement.width), mask.height / float(replacement.height))


def scaled_size(image_size: Tuple[int, int], scale: float) -> Tuple[int, int]:
    w, h = image_size
    s = check_scale(scale)
    sw, sh = w * s, h * s
    if not (math.isfinite(sw) and math.isfinite(sh)):
        raise InvalidScale(f"scale {scale!r} overflows a {w}x{h} image")
    return (max(1, int(round(sw))), max(1, int(round(sh))))


def placement_rect(
    canvas_size: Tuple[int, int],
    image_size: Tuple[int, int],
    transform: Transform,
) -> Tuple[int, int, int, int]:
    """Returns (x, y, w, h) of the scaled image in canvas pixels (may lie partly outside)."""
    out_w, out_h = canvas_size
    new_w, new_h = scaled_size(image_size, transform.scale)
    cx = out_w * 0.5
    cy = out_h * 0.5
    x = int(round(cx - new_w * 0.5 + transform.offset_x))
    y = int(round(cy - new_h * 0.5 + transform.offset_y))
    return (x, y, new_w, new_h)
