"""
Error taxonomy for infer_kit.

Every error is local to one image / one inference call: nothing is cached
between calls, so callers can report the failure and move on to the next image.
"""

from __future__ import annotations


class InferKitError(Exception):
    """Base class for all infer_kit errors."""


class ModelNotFoundError(InferKitError, FileNotFoundError):
    """The model path does not resolve to a readable file."""


class ImageDecodeError(InferKitError, ValueError):
    """The source bytes (or file) could not be decoded as a raster image."""


class ShapeMismatchError(InferKitError, ValueError):
    """A tensor does not have the shape or rank a stage expects."""


class EngineInvocationError(InferKitError, RuntimeError):
    """The execution engine failed (or produced output it should never produce)."""
