from __future__ import annotations

from typing import Optional, Protocol, Tuple, Union, runtime_checkable

from PIL import Image

from core.compositor import CompositeResult
from core.raster import RasterImage

Pixels = Union[RasterImage, CompositeResult, Image.Image]


@runtime_checkable
class RenderSurface(Protocol):
    """Anything the workflow can draw into: the Qt canvas, or memory."""

    def paint(self, pixels: Optional[Image.Image]) -> None:
        ...

    def dimensions(self) -> Tuple[int, int]:
        ...


def to_pil(pixels: Pixels) -> Image.Image:
    if isinstance(pixels, Image.Image):
        return pixels.convert("RGBA")
    return pixels.to_pil()


def paint(surface: RenderSurface, pixels: Optional[Pixels]) -> None:
    # None clears the surface
    surface.paint(None if pixels is None else to_pil(pixels))


def surface_dimensions(surface: RenderSurface) -> Tuple[int, int]:
    return surface.dimensions()


class MemorySurface:
    """Keeps the last painted frame; used headless and in tests."""

    def __init__(self) -> None:
        self.frame: Optional[Image.Image] = None
        self.paint_count = 0

    def paint(self, pixels: Optional[Image.Image]) -> None:
        self.frame = None if pixels is None else pixels.copy()
        self.paint_count += 1

    def dimensions(self) -> Tuple[int, int]:
        if self.frame is None:
            return (0, 0)
        return self.frame.size
