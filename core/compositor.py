from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

import numpy as np
from PIL import Image

from core.errors import MissingAsset
from core.raster import RasterImage, np_rgba_to_pil, pil_to_np_rgba
from core.transform import Transform, check_scale, placement_rect

logger = logging.getLogger(__name__)

DEFAULT_GHOST_OPACITY = 0.3


class CompositeMode(str, Enum):
    PREVIEW = "preview"
    FINAL = "final"


@dataclass(frozen=True)
class CompositeResult:
    mode: CompositeMode
    pixels: np.ndarray

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def to_pil(self) -> Image.Image:
        return np_rgba_to_pil(self.pixels)


def _resample_filter(high_quality: bool, nearest_neighbor: bool) -> int:
    if nearest_neighbor:
        return Image.Resampling.NEAREST
    return Image.Resampling.LANCZOS if high_quality else Image.Resampling.BILINEAR


def place_on_canvas(
    image: RasterImage,
    out_size: Tuple[int, int],
    transform: Transform,
    high_quality: bool = True,
    nearest_neighbor: bool = False,
) -> np.ndarray:
    """
    Paint the scaled, centered and offset image onto a transparent canvas of
    out_size. Anything falling outside the canvas is clipped.
    """
    out_w, out_h = out_size
    tile = np.zeros((out_h, out_w, 4), dtype=np.uint8)

    x, y, new_w, new_h = placement_rect(out_size, image.size, transform)
    x0 = max(0, x)
    y0 = max(0, y)
    x1 = min(out_w, x + new_w)
    y1 = min(out_h, y + new_h)
    if x1 <= x0 or y1 <= y0:
        return tile

    src = image.to_pil()
    if (new_w, new_h) == src.size:
        arr = pil_to_np_rgba(src)
        tile[y0:y1, x0:x1] = arr[y0 - y:y1 - y, x0 - x:x1 - x]
        return tile

    # Resample only the visible window so huge scales stay canvas-bounded.
    fx = image.width / float(new_w)
    fy = image.height / float(new_h)
    box = (
        (x0 - x) * fx,
        (y0 - y) * fy,
        min(float(image.width), (x1 - x) * fx),
        min(float(image.height), (y1 - y) * fy),
    )
    window = src.resize(
        (x1 - x0, y1 - y0),
        resample=_resample_filter(high_quality, nearest_neighbor),
        box=box,
    )
    tile[y0:y1, x0:x1] = pil_to_np_rgba(window)
    return tile


def _apply_mask_stencil(placed: np.ndarray, mask_alpha: np.ndarray) -> np.ndarray:
    # out.a = placed.a * mask.a, all channels zero where the mask is empty
    ma = mask_alpha.astype(np.uint32)
    out = placed.copy()
    out[..., 3] = ((placed[..., 3].astype(np.uint32) * ma + 127) // 255).astype(np.uint8)
    out[mask_alpha == 0] = 0
    return out


def _apply_ghost(placed: np.ndarray, final: np.ndarray, mask_alpha: np.ndarray, ghost_opacity: float) -> np.ndarray:
    m = mask_alpha.astype(np.float64) / 255.0
    weight = ghost_opacity + (1.0 - ghost_opacity) * m
    out = placed.copy()
    out[..., 3] = np.clip(np.rint(placed[..., 3].astype(np.float64) * weight), 0, 255).astype(np.uint8)
    inside = mask_alpha == 255
    out[inside] = final[inside]
    return out


def composite(
    mask: Optional[RasterImage],
    replacement: Optional[RasterImage],
    transform: Transform,
    mode: Union[CompositeMode, str] = CompositeMode.FINAL,
    ghost_opacity: float = DEFAULT_GHOST_OPACITY,
    high_quality: bool = True,
    nearest_neighbor: bool = False,
) -> CompositeResult:
    """
    Fill the mask's silhouette with the transformed replacement.

    FINAL: replacement alpha multiplied by mask alpha; fully transparent
    wherever the mask alpha is zero.

    PREVIEW: same placement, but the replacement also shows outside the
    silhouette at ghost_opacity. Partially transparent mask pixels blend
    linearly between the ghost and the full-opacity fill; fully opaque mask
    pixels are identical to the FINAL result.

    The output is always mask-sized.
    """
    if mask is None or replacement is None:
        raise MissingAsset("composite needs both a mask and a replacement image")
    check_scale(transform.scale)
    mode = CompositeMode(mode)
    if not 0.0 <= float(ghost_opacity) <= 1.0:
        raise ValueError(f"ghost_opacity must be within [0, 1], got {ghost_opacity!r}")

    placed = place_on_canvas(
        replacement,
        mask.size,
        transform,
        high_quality=high_quality,
        nearest_neighbor=nearest_neighbor,
    )
    final = _apply_mask_stencil(placed, mask.alpha)
    if mode is CompositeMode.FINAL:
        pixels = final
    else:
        pixels = _apply_ghost(placed, final, mask.alpha, float(ghost_opacity))

    logger.debug(
        "Composite %s %dx%d scale=%.4f offset=(%.1f, %.1f)",
        mode.value, mask.width, mask.height, transform.scale, transform.offset_x, transform.offset_y,
    )
    return CompositeResult(mode=mode, pixels=pixels)


def make_thumbnail(image: Union[RasterImage, CompositeResult, Image.Image], size: int = 150) -> Image.Image:
    """Fit the image inside a transparent size x size square, centered."""
    src = image if isinstance(image, Image.Image) else image.to_pil()
    src = src.convert("RGBA")
    scale = min(size / float(src.width), size / float(src.height))
    new_w = max(1, int(round(src.width * scale)))
    new_h = max(1, int(round(src.height * scale)))
    scaled = src.resize((new_w, new_h), resample=Image.Resampling.LANCZOS)
    thumb = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    thumb.paste(scaled, ((size - new_w) // 2, (size - new_h) // 2))
    return thumb
