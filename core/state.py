from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.compositor import CompositeResult
from core.raster import RasterImage
from core.transform import DEFAULT_TRANSFORM, Transform


class WorkflowState(str, Enum):
    INITIAL = "initial"
    MASK_LOADED = "mask_loaded"
    TOOL_ACTIVE = "tool_active"
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass
class Session:
    state: WorkflowState = WorkflowState.INITIAL

    # Canonical output frame; lives until a full reset
    mask: Optional[RasterImage] = None

    # Replacement session (cleared on cancel / commit / reset)
    replacement: Optional[RasterImage] = None
    transform: Transform = DEFAULT_TRANSFORM
    dragging: bool = False
    preview: Optional[CompositeResult] = None

    # Last committed result; survives new replacement sessions
    final_composite: Optional[CompositeResult] = None

    @property
    def output_size(self) -> Optional[Tuple[int, int]]:
        return None if self.mask is None else self.mask.size

    @property
    def has_replacement(self) -> bool:
        return self.replacement is not None

    def clear_replacement(self) -> None:
        self.replacement = None
        self.transform = DEFAULT_TRANSFORM
        self.dragging = False
        self.preview = None

    def clear_all(self) -> None:
        self.clear_replacement()
        self.mask = None
        self.final_composite = None
