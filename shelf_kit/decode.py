from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from .errors import LayoutError, ShapeMismatch

# Channels 0..3 hold cx, cy, w, h.
GEOMETRY_CHANNELS = 4
MIN_CHANNELS = GEOMETRY_CHANNELS + 1

ArrayLike = Union[np.ndarray, Sequence[float]]


@dataclass(frozen=True)
class ChannelLayout:
    """
    Where the score channels of a detector output live.

    Geometry is always channels 0..3. By default the product confidence is the
    last channel and every channel between geometry and confidence is an ROI
    channel, e.g. for 11 channels: confidence = 10, roi = 4..9.
    """

    channels: int
    confidence_channel: int
    roi_channels: Tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if self.channels < MIN_CHANNELS:
            raise LayoutError(f"Layout needs at least {MIN_CHANNELS} channels, got {self.channels}")
        if not GEOMETRY_CHANNELS <= self.confidence_channel < self.channels:
            raise LayoutError(
                f"confidence_channel must be in [{GEOMETRY_CHANNELS}, {self.channels}), "
                f"got {self.confidence_channel}"
            )
        if len(set(self.roi_channels)) != len(self.roi_channels):
            raise LayoutError(f"roi_channels must be unique, got {self.roi_channels}")
        for k in self.roi_channels:
            if not GEOMETRY_CHANNELS <= k < self.channels:
                raise LayoutError(f"roi channel {k} outside [{GEOMETRY_CHANNELS}, {self.channels})")
            if k == self.confidence_channel:
                raise LayoutError(f"roi channel {k} is also the confidence channel")

    @classmethod
    def for_channels(
        cls,
        channels: int,
        confidence_channel: Optional[int] = None,
        roi_channels: Optional[Sequence[int]] = None,
    ) -> "ChannelLayout":
        if confidence_channel is None:
            confidence_channel = channels - 1
        if roi_channels is None:
            roi_channels = [k for k in range(GEOMETRY_CHANNELS, channels) if k != confidence_channel]
        return cls(
            channels=int(channels),
            confidence_channel=int(confidence_channel),
            roi_channels=tuple(sorted(int(k) for k in roi_channels)),
        )


@dataclass(frozen=True)
class DecodedCandidates:
    """Per-candidate rows, all of shape (elements,) except `roi` (R, elements)."""

    cx: np.ndarray
    cy: np.ndarray
    w: np.ndarray
    h: np.ndarray
    confidence: np.ndarray
    roi: np.ndarray

    @property
    def elements(self) -> int:
        return int(self.cx.shape[0])


class DetectionTensor:
    """
    Read-only `[channels, elements]` view over a detector output.

    Channel `k` of candidate `c` sits at flat offset `c + elements * k`.
    """

    __slots__ = ("_data",)

    def __init__(self, data: np.ndarray):
        if data.ndim != 2:
            raise ShapeMismatch(f"Expected a 2D [channels, elements] array, got shape {data.shape}")
        self._data = data

    @classmethod
    def from_buffer(cls, buffer: ArrayLike, channels: int, elements: int) -> "DetectionTensor":
        channels = int(channels)
        elements = int(elements)
        if channels < MIN_CHANNELS:
            raise ShapeMismatch(
                f"Detection tensor needs at least {MIN_CHANNELS} channels, got {channels}",
                channels=channels,
                elements=elements,
            )
        if elements < 1:
            raise ShapeMismatch(
                f"Detection tensor needs at least 1 element, got {elements}",
                channels=channels,
                elements=elements,
            )

        arr = np.asarray(buffer, dtype=np.float32)
        # A shaped array must already be channel-major; (elements, channels) would flatten
        # to the right length but the wrong layout.
        if arr.ndim > 1 and arr.shape not in ((channels, elements), (1, channels, elements)):
            raise ShapeMismatch(
                f"Array of shape {arr.shape} is not laid out as [{channels}, {elements}]",
                channels=channels,
                elements=elements,
                length=int(arr.size),
            )

        flat = arr.reshape(-1)
        if flat.size != channels * elements:
            raise ShapeMismatch(
                f"Buffer of length {flat.size} does not match shape "
                f"[{channels}, {elements}] ({channels * elements} values)",
                channels=channels,
                elements=elements,
                length=int(flat.size),
            )

        view = flat.reshape(channels, elements)
        view.flags.writeable = False
        return cls(view)

    @classmethod
    def from_output(cls, preds: ArrayLike) -> "DetectionTensor":
        """
        Wrap a raw model output shaped (1, C, N) or (C, N).
        """

        p = np.asarray(preds, dtype=np.float32)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ShapeMismatch(f"Batch > 1 is not supported (got shape {p.shape}). Pass one frame at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ShapeMismatch(f"Unsupported detector output shape: {p.shape}")
        channels, elements = p.shape
        return cls.from_buffer(np.ascontiguousarray(p), channels, elements)

    @property
    def channels(self) -> int:
        return int(self._data.shape[0])

    @property
    def elements(self) -> int:
        return int(self._data.shape[1])

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def geometry(self) -> np.ndarray:
        """(4, elements) rows cx, cy, w, h."""
        return self._data[:GEOMETRY_CHANNELS]

    def channel(self, k: int) -> np.ndarray:
        if not 0 <= k < self.channels:
            raise IndexError(f"channel {k} out of range [0, {self.channels})")
        return self._data[k]

    def candidate(self, c: int) -> Tuple[Tuple[float, float, float, float], Tuple[float, ...]]:
        """Geometry and score channels of one candidate, as plain floats."""
        if not 0 <= c < self.elements:
            raise IndexError(f"candidate {c} out of range [0, {self.elements})")
        column = self._data[:, c]
        cx, cy, w, h = (float(v) for v in column[:GEOMETRY_CHANNELS])
        return (cx, cy, w, h), tuple(float(v) for v in column[GEOMETRY_CHANNELS:])

    def candidates(self, layout: Optional[ChannelLayout] = None) -> DecodedCandidates:
        if layout is None:
            layout = ChannelLayout.for_channels(self.channels)
        elif layout.channels != self.channels:
            raise LayoutError(f"Layout is for {layout.channels} channels, tensor has {self.channels}")

        cx, cy, w, h = self.geometry
        if layout.roi_channels:
            roi = self._data[list(layout.roi_channels)]
        else:
            roi = np.empty((0, self.elements), dtype=self._data.dtype)
        return DecodedCandidates(
            cx=cx,
            cy=cy,
            w=w,
            h=h,
            confidence=self._data[layout.confidence_channel],
            roi=roi,
        )


def decode_tensor(buffer: ArrayLike, channels: int, elements: int) -> DetectionTensor:
    """
    Validate a flat detector buffer against its declared shape and wrap it.

    Raises:
        ShapeMismatch: if `channels < 5`, `elements < 1` or the buffer length
            is not `channels * elements`.
    """

    return DetectionTensor.from_buffer(buffer, channels, elements)
