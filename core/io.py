from __future__ import annotations

import io
import logging
import time
from pathlib import Path
from typing import Iterable, Optional, Union

from PIL import Image, UnidentifiedImageError

from core.compositor import CompositeResult
from core.config import AppConfig
from core.errors import DecodeError, ValidationError
from core.raster import RasterImage

logger = logging.getLogger(__name__)

EXPORT_PREFIX = "shape-mask-result"


def format_file_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(num_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def _open(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"could not decode image: {e}") from e
    return img


def decode_image(data: bytes) -> RasterImage:
    img = _open(data)
    # Convert to RGBA for consistent alpha work
    return RasterImage.from_pil(img.convert("RGBA"))


def validate_asset(
    name: str,
    data: bytes,
    allowed_formats: Iterable[str],
    max_bytes: int,
) -> Image.Image:
    """
    Size and format policy check. Returns the opened image so callers do
    not decode twice.
    """
    allowed = {f.upper() for f in allowed_formats}
    if len(data) > max_bytes:
        raise ValidationError(
            f"{name} is {format_file_size(len(data))}, the limit is {format_file_size(max_bytes)}"
        )
    img = _open(data)
    fmt = (img.format or "").upper()
    if fmt not in allowed:
        raise ValidationError(f"{name} is {fmt or 'unknown'}; expected one of {', '.join(sorted(allowed))}")
    return img


def _load_validated(path: Union[str, Path], allowed_formats: Iterable[str], max_bytes: int) -> RasterImage:
    p = Path(path)
    data = p.read_bytes()
    img = validate_asset(p.name, data, allowed_formats, max_bytes)
    raster = RasterImage.from_pil(img.convert("RGBA"))
    logger.info("Loaded %s (%dx%d, %s)", p.name, raster.width, raster.height, format_file_size(len(data)))
    return raster


def load_mask_file(path: Union[str, Path], config: Optional[AppConfig] = None) -> RasterImage:
    cfg = config or AppConfig()
    return _load_validated(path, cfg.mask_formats, cfg.mask_max_bytes)


def load_replacement_file(path: Union[str, Path], config: Optional[AppConfig] = None) -> RasterImage:
    cfg = config or AppConfig()
    return _load_validated(path, cfg.replacement_formats, cfg.replacement_max_bytes)


def _as_pil(image: Union[RasterImage, CompositeResult, Image.Image]) -> Image.Image:
    if isinstance(image, Image.Image):
        return image.convert("RGBA")
    return image.to_pil()


def export_png_bytes(image: Union[RasterImage, CompositeResult, Image.Image]) -> bytes:
    buf = io.BytesIO()
    _as_pil(image).save(buf, format="PNG")
    return buf.getvalue()


def default_export_name(now: Optional[float] = None) -> str:
    ts = time.time() if now is None else now
    return f"{EXPORT_PREFIX}-{int(ts * 1000)}.png"


def save_export(path: Union[str, Path], image: Union[RasterImage, CompositeResult, Image.Image]) -> None:
    out = _as_pil(image)
    ext = Path(path).suffix.lower()
    if ext in {".jpg", ".jpeg"}:
        # JPG has no alpha, so flatten onto white.
        flat = Image.new("RGB", out.size, (255, 255, 255))
        flat.paste(out, mask=out.split()[3])
        flat.save(str(path), quality=95)
    else:
        # Saving as PNG preserves alpha
        out.save(str(path))
    logger.info("Exported %dx%d image to %s", out.width, out.height, path)
