from __future__ import annotations


class ShapeMaskError(Exception):
    """Base class for every error raised by the core."""


class DecodeError(ShapeMaskError):
    pass


class ValidationError(ShapeMaskError, ValueError):
    pass


class InvalidScale(ShapeMaskError, ValueError):
    pass


class MissingAsset(ShapeMaskError):
    pass


class IllegalTransition(ShapeMaskError):
    def __init__(self, event: str, state: object):
        super().__init__(f"'{event}' is not allowed while in state {state}")
        self.event = event
        self.state = state


class NothingToExport(ShapeMaskError):
    pass
