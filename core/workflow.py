from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Union

from core.compositor import CompositeMode, CompositeResult, composite
from core.config import AppConfig
from core.errors import IllegalTransition, MissingAsset, NothingToExport
from core.raster import RasterImage
from core.state import Session, WorkflowState
from core.surface import Pixels, RenderSurface, paint
from core.transform import Transform, check_scale, fit_scale

logger = logging.getLogger(__name__)

StateListener = Callable[[WorkflowState], None]


class WorkflowStateMachine:
    """
    Owns the single editing session and is the only thing that mutates it.

    Lifecycle:
      INITIAL -> MASK_LOADED -> TOOL_ACTIVE -> PROCESSING -> COMPLETED
    with cancel (back to MASK_LOADED) and reset (back to INITIAL).

    Transitions that are not allowed from the current state raise
    IllegalTransition. Transform edits (scale, fit, drag) outside PROCESSING
    are ignored and return False. Every render reads the session at call time
    and is painted to the surface only after it succeeded, so a rejected
    operation never touches what is on screen.
    """

    def __init__(self, surface: Optional[RenderSurface] = None, config: Optional[AppConfig] = None):
        self.session = Session()
        self.surface = surface
        self.config = (config or AppConfig()).validate()
        self._listeners: List[StateListener] = []

    # ---------------------------
    # Accessors
    # ---------------------------
    @property
    def state(self) -> WorkflowState:
        return self.session.state

    @property
    def transform(self) -> Transform:
        return self.session.transform

    @property
    def mask(self) -> Optional[RasterImage]:
        return self.session.mask

    @property
    def replacement(self) -> Optional[RasterImage]:
        return self.session.replacement

    @property
    def preview(self) -> Optional[CompositeResult]:
        return self.session.preview

    @property
    def final_composite(self) -> Optional[CompositeResult]:
        return self.session.final_composite

    @property
    def can_edit(self) -> bool:
        return self.session.state is WorkflowState.PROCESSING and self.session.has_replacement

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ---------------------------
    # Internals
    # ---------------------------
    def _set_state(self, new_state: WorkflowState) -> None:
        old = self.session.state
        self.session.state = new_state
        logger.info("Workflow %s -> %s", old.value, new_state.value)
        for listener in list(self._listeners):
            listener(new_state)

    def _require(self, event: str, *allowed: WorkflowState) -> None:
        if self.session.state not in allowed:
            logger.warning("Rejected %s in state %s", event, self.session.state.value)
            raise IllegalTransition(event, self.session.state)

    def _paint(self, pixels: Optional[Pixels]) -> None:
        if self.surface is not None:
            paint(self.surface, pixels)

    def _render(self, transform: Transform, mode: CompositeMode) -> CompositeResult:
        return composite(
            self.session.mask,
            self.session.replacement,
            transform,
            mode,
            ghost_opacity=self.config.ghost_opacity,
            high_quality=self.config.high_quality_resample,
            nearest_neighbor=self.config.nearest_neighbor,
        )

    def _apply_transform(self, transform: Transform) -> bool:
        # Render first: a failing render must leave the session untouched.
        preview = self._render(transform, CompositeMode.PREVIEW)
        self.session.transform = transform
        self.session.preview = preview
        self._paint(preview)
        return True

    def _editable(self, event: str) -> bool:
        if not self.can_edit:
            logger.debug("Ignored %s in state %s", event, self.session.state.value)
            return False
        return True

    def _clamp_scale(self, scale: float) -> float:
        return max(self.config.min_scale, min(self.config.max_scale, scale))

    def _zoomed_scale(self, current: float, factor: float) -> float:
        # Clamp only in the zoom direction; a fit scale outside the limits is kept.
        target = current * factor
        if factor > 1.0:
            return max(current, min(self.config.max_scale, target))
        if factor < 1.0:
            return min(current, max(self.config.min_scale, target))
        return current

    # ---------------------------
    # Transitions
    # ---------------------------
    def load_mask(self, mask: RasterImage) -> None:
        self._require("load_mask", WorkflowState.INITIAL)
        if mask is None:
            raise MissingAsset("load_mask needs a decoded mask image")
        self.session.mask = mask
        self._paint(mask)
        logger.info("Mask loaded, output frame %dx%d", mask.width, mask.height)
        self._set_state(WorkflowState.MASK_LOADED)

    def activate_tool(self) -> None:
        self._require("activate_tool", WorkflowState.MASK_LOADED, WorkflowState.COMPLETED)
        self._set_state(WorkflowState.TOOL_ACTIVE)

    def load_replacement(self, replacement: RasterImage) -> CompositeResult:
        self._require("load_replacement", WorkflowState.TOOL_ACTIVE, WorkflowState.PROCESSING)
        mask = self.session.mask
        if mask is None or replacement is None:
            raise MissingAsset("load_replacement needs both a mask and a replacement image")

        transform = Transform(scale=fit_scale(mask, replacement))
        preview = composite(
            mask,
            replacement,
            transform,
            CompositeMode.PREVIEW,
            ghost_opacity=self.config.ghost_opacity,
            high_quality=self.config.high_quality_resample,
            nearest_neighbor=self.config.nearest_neighbor,
        )
        self.session.clear_replacement()
        self.session.replacement = replacement
        self.session.transform = transform
        self.session.preview = preview
        self._paint(preview)
        logger.info(
            "Replacement loaded (%dx%d), fit scale %.4f",
            replacement.width, replacement.height, transform.scale,
        )
        if self.session.state is not WorkflowState.PROCESSING:
            self._set_state(WorkflowState.PROCESSING)
        return preview

    def commit(self) -> CompositeResult:
        self._require("commit", WorkflowState.PROCESSING)
        if self.session.mask is None or self.session.replacement is None:
            raise MissingAsset("commit needs both a mask and a replacement image")
        final = self._render(self.session.transform, CompositeMode.FINAL)
        self.session.final_composite = final
        self.session.clear_replacement()
        self._paint(final)
        self._set_state(WorkflowState.COMPLETED)
        return final

    def cancel(self) -> None:
        self._require("cancel", WorkflowState.TOOL_ACTIVE, WorkflowState.PROCESSING)
        self.session.clear_replacement()
        self._paint(self.session.mask)
        self._set_state(WorkflowState.MASK_LOADED)

    def reset(self) -> None:
        if self.session.state is WorkflowState.INITIAL:
            return
        self.session.clear_all()
        self._paint(None)
        self._set_state(WorkflowState.INITIAL)

    # ---------------------------
    # Transform edits (PROCESSING only)
    # ---------------------------
    def set_scale(self, scale: float) -> bool:
        if not self._editable("set_scale"):
            return False
        s = self._clamp_scale(check_scale(scale))
        return self._apply_transform(self.session.transform.with_scale(s))

    def scale_by(self, factor: float) -> bool:
        if not self._editable("scale_by"):
            return False
        f = check_scale(factor)
        return self._apply_transform(self.session.transform.with_scale(self._zoomed_scale(self.session.transform.scale, f)))

    def fit(self) -> bool:
        if not self._editable("fit"):
            return False
        return self._apply_transform(Transform(scale=fit_scale(self.session.mask, self.session.replacement)))

    def center(self) -> bool:
        if not self._editable("center"):
            return False
        return self._apply_transform(self.session.transform.centered())

    def move_to(self, offset_x: float, offset_y: float) -> bool:
        if not self._editable("move_to"):
            return False
        return self._apply_transform(self.session.transform.moved_to(offset_x, offset_y))

    def begin_drag(self) -> bool:
        if not self._editable("begin_drag"):
            return False
        self.session.dragging = True
        return True

    def drag_by(self, dx: float, dy: float) -> bool:
        if not self.session.dragging or not self._editable("drag_by"):
            return False
        return self._apply_transform(self.session.transform.moved_by(dx, dy))

    def end_drag(self) -> None:
        self.session.dragging = False

    # ---------------------------
    # Rendering / export
    # ---------------------------
    def update_config(self, **changes) -> AppConfig:
        new_config = replace(self.config, **changes).validate()
        self.config = new_config
        if self.can_edit:
            self._apply_transform(self.session.transform)
        return new_config

    def export_image(self) -> Union[CompositeResult, RasterImage]:
        """Latest committed result, else the mask itself."""
        if self.session.final_composite is not None:
            return self.session.final_composite
        if self.session.mask is not None:
            return self.session.mask
        raise NothingToExport("nothing to export; load a mask first")
