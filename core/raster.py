from __future__ import annotations

from typing import Tuple

import numpy as np
from PIL import Image


def pil_to_np_rgba(img: Image.Image) -> np.ndarray:
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise ValueError("Expected RGBA image")
    return arr


def np_rgba_to_pil(arr: np.ndarray) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(arr, dtype=np.uint8), mode="RGBA")


class RasterImage:
    """
    Read-only RGBA pixel handle (H x W x 4, uint8).
    The backing array is copied on construction and flagged non-writeable.
    """

    __slots__ = ("_pixels",)

    def __init__(self, pixels: np.ndarray):
        if pixels.dtype != np.uint8 or pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError("pixels must be HxWx4 uint8")
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise ValueError("image must be at least 1x1")
        arr = pixels.copy()
        arr.setflags(write=False)
        self._pixels = arr

    @classmethod
    def from_pil(cls, img: Image.Image) -> "RasterImage":
        return cls(pil_to_np_rgba(img))

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def width(self) -> int:
        return int(self._pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self._pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @property
    def alpha(self) -> np.ndarray:
        return self._pixels[..., 3]

    def to_pil(self) -> Image.Image:
        return np_rgba_to_pil(self._pixels)

    def __repr__(self) -> str:
        return f"RasterImage({self.width}x{self.height})"
