from __future__ import annotations

from typing import Optional


class ShelfKitError(Exception):
    """Base error for shelf_kit."""


class ShapeMismatch(ShelfKitError, ValueError):
    """
    Detector output does not match its declared `[channels, elements]` shape.

    Fatal to the call: the buffer is never truncated or padded to fit.
    """

    def __init__(
        self,
        message: str,
        *,
        channels: Optional[int] = None,
        elements: Optional[int] = None,
        length: Optional[int] = None,
    ):
        super().__init__(message)
        self.channels = channels
        self.elements = elements
        self.length = length


class LayoutError(ShelfKitError, ValueError):
    """Channel layout does not fit the tensor it is applied to."""
