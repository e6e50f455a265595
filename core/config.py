from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Tuple

from core.compositor import DEFAULT_GHOST_OPACITY
from core.errors import ValidationError

logger = logging.getLogger(__name__)

MB = 1024 * 1024
ENV_PREFIX = "SHAPEMASK_"


@dataclass(frozen=True)
class AppConfig:
    # Preview
    ghost_opacity: float = DEFAULT_GHOST_OPACITY
    high_quality_resample: bool = True
    nearest_neighbor: bool = False
    thumbnail_size: int = 150

    # Scale limits for interactive edits
    min_scale: float = 0.01
    max_scale: float = 50.0

    # Asset policy
    mask_max_bytes: int = 10 * MB
    replacement_max_bytes: int = 20 * MB
    mask_formats: Tuple[str, ...] = ("PNG",)
    replacement_formats: Tuple[str, ...] = ("JPEG", "PNG", "GIF", "WEBP")

    def validate(self) -> "AppConfig":
        if not 0.0 <= self.ghost_opacity <= 1.0:
            raise ValidationError(f"ghost_opacity must be within [0, 1], got {self.ghost_opacity}")
        if self.min_scale <= 0.0 or self.max_scale < self.min_scale:
            raise ValidationError(f"invalid scale limits: [{self.min_scale}, {self.max_scale}]")
        if self.mask_max_bytes <= 0 or self.replacement_max_bytes <= 0:
            raise ValidationError("size limits must be positive")
        if self.thumbnail_size < 1:
            raise ValidationError("thumbnail_size must be at least 1")
        if not self.mask_formats or not self.replacement_formats:
            raise ValidationError("format allow-lists must not be empty")
        return self


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_formats(value: object, fallback: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return fallback
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        return fallback
    return tuple(i.strip().upper() for i in items if i.strip())


def _config_from_raw(raw: dict, base: AppConfig) -> AppConfig:
    try:
        return replace(
            base,
            ghost_opacity=float(raw.get("ghost_opacity", base.ghost_opacity)),
            high_quality_resample=_as_bool(raw.get("high_quality_resample", base.high_quality_resample)),
            nearest_neighbor=_as_bool(raw.get("nearest_neighbor", base.nearest_neighbor)),
            thumbnail_size=int(raw.get("thumbnail_size", base.thumbnail_size)),
            min_scale=float(raw.get("min_scale", base.min_scale)),
            max_scale=float(raw.get("max_scale", base.max_scale)),
            mask_max_bytes=int(raw.get("mask_max_bytes", base.mask_max_bytes)),
            replacement_max_bytes=int(raw.get("replacement_max_bytes", base.replacement_max_bytes)),
            mask_formats=_as_formats(raw.get("mask_formats"), base.mask_formats),
            replacement_formats=_as_formats(raw.get("replacement_formats"), base.replacement_formats),
        )
    except (TypeError, ValueError) as e:
        raise ValidationError(f"invalid configuration value: {e}") from e


def _env_overrides() -> dict:
    raw: dict = {}
    for name in (
        "ghost_opacity",
        "high_quality_resample",
        "nearest_neighbor",
        "thumbnail_size",
        "min_scale",
        "max_scale",
        "mask_max_bytes",
        "replacement_max_bytes",
        "mask_formats",
        "replacement_formats",
    ):
        value = os.getenv(ENV_PREFIX + name.upper())
        if value is not None:
            raw[name] = value
    return raw


def load_config(path: Optional[str] = None) -> AppConfig:
    """
    Defaults, then the optional JSON settings file, then SHAPEMASK_*
    environment variables.
    """
    cfg = AppConfig()
    if path:
        settings_file = Path(path)
        try:
            raw = json.loads(settings_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ValidationError(f"settings file {settings_file} is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ValidationError(f"settings file {settings_file} must hold a JSON object")
        cfg = _config_from_raw(raw, cfg)
        logger.info("Loaded settings from %s", settings_file)

    env = _env_overrides()
    if env:
        cfg = _config_from_raw(env, cfg)
        logger.debug("Applied environment overrides: %s", ", ".join(sorted(env)))
    return cfg.validate()
