from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .decode import GEOMETRY_CHANNELS, ArrayLike, ChannelLayout, DecodedCandidates, DetectionTensor, decode_tensor
from .errors import LayoutError, ShelfKitError
from .nms import NMSConfig, nms
from .types import BoundingBox, ClassName

logger = logging.getLogger(__name__)

DEFAULT_DETECTION_THRESHOLD = 0.4
DEFAULT_IOU_THRESHOLD = 0.3


def _check_threshold(name: str, value: float) -> float:
    value = float(value)
    if not math.isfinite(value) or value < 0.0 or value > 1.0:
        raise ValueError(f"{name} must be a finite number in [0, 1], got {value}")
    return value


@dataclass(frozen=True)
class ShelfPostConfig:
    """
    Post-processing settings for the shelf detector.
    """

    detection_threshold: float = DEFAULT_DETECTION_THRESHOLD
    iou_threshold: float = DEFAULT_IOU_THRESHOLD
    max_detections: Optional[int] = None
    # If False, skip NMS and only cap at `max_detections` by confidence.
    apply_nms: bool = True
    # None keeps the default layout: confidence in the last channel, ROI in between.
    confidence_channel: Optional[int] = None
    roi_channels: Optional[Tuple[int, ...]] = None

    def __post_init__(self) -> None:
        _check_threshold("detection_threshold", self.detection_threshold)
        _check_threshold("iou_threshold", self.iou_threshold)
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 (or None for no limit)")
        if self.roi_channels is not None and not isinstance(self.roi_channels, tuple):
            object.__setattr__(self, "roi_channels", tuple(self.roi_channels))
        if self.confidence_channel is not None and self.confidence_channel < GEOMETRY_CHANNELS:
            raise LayoutError(f"confidence_channel must be >= {GEOMETRY_CHANNELS}, got {self.confidence_channel}")
        if self.roi_channels is not None:
            if len(set(self.roi_channels)) != len(self.roi_channels):
                raise LayoutError(f"roi_channels must be unique, got {self.roi_channels}")
            for k in self.roi_channels:
                if k < GEOMETRY_CHANNELS:
                    raise LayoutError(f"roi channel {k} overlaps the geometry channels 0..{GEOMETRY_CHANNELS - 1}")
                if k == self.confidence_channel:
                    raise LayoutError(f"roi channel {k} is also the confidence channel")

    def layout_for(self, channels: int) -> ChannelLayout:
        return ChannelLayout.for_channels(
            channels,
            confidence_channel=self.confidence_channel,
            roi_channels=self.roi_channels,
        )


@dataclass(frozen=True)
class CandidateClasses:
    """Classification of every candidate, each array of shape (elements,)."""

    max_conf: np.ndarray
    class_index: np.ndarray
    is_roi: np.ndarray
    include: np.ndarray


def classify_candidates(cands: DecodedCandidates, detection_threshold: float) -> CandidateClasses:
    """
    Apply the confidence threshold and the ROI override.

    - product confidence above the threshold wins with class index 0,
      otherwise the candidate keeps the threshold itself and index -1
    - any ROI channel above the threshold marks the candidate as ROI and
      overrides the reported confidence (last such channel wins)
    - only non-ROI candidates above the threshold are included
    """

    t = np.float32(detection_threshold)
    n = cands.elements

    product = cands.confidence > t
    max_conf = np.where(product, cands.confidence, t).astype(np.float32)
    class_index = np.where(product, 0, -1).astype(np.int32)

    roi_hits = cands.roi > t
    is_roi = roi_hits.any(axis=0) if roi_hits.shape[0] else np.zeros(n, dtype=bool)
    if is_roi.any():
        last_hit = roi_hits.shape[0] - 1 - np.argmax(roi_hits[::-1], axis=0)
        roi_conf = cands.roi[last_hit, np.arange(n)]
        max_conf = np.where(is_roi, roi_conf, max_conf).astype(np.float32)

    include = (max_conf > t) & ~is_roi
    return CandidateClasses(max_conf=max_conf, class_index=class_index, is_roi=is_roi, include=include)


def filter_candidates(
    tensor: DetectionTensor,
    detection_threshold: float = DEFAULT_DETECTION_THRESHOLD,
    layout: Optional[ChannelLayout] = None,
) -> List[BoundingBox]:
    """
    Turn included candidates into PRODUCT boxes, in candidate order.

    Candidates whose corners leave [0, 1], or whose geometry or confidence is
    not finite, are dropped.
    """

    cands = tensor.candidates(layout)
    classes = classify_candidates(cands, detection_threshold)
    if not classes.include.any():
        return []

    with np.errstate(invalid="ignore", over="ignore"):
        x1 = cands.cx - cands.w / 2
        y1 = cands.cy - cands.h / 2
        x2 = cands.cx + cands.w / 2
        y2 = cands.cy + cands.h / 2

    # NaN corners fail both comparisons.
    corners = np.stack([x1, y1, x2, y2])
    in_range = np.all((corners >= 0.0) & (corners <= 1.0), axis=0)
    keep = classes.include & in_range & np.isfinite(classes.max_conf)

    boxes = [
        BoundingBox(
            x1=float(x1[c]),
            y1=float(y1[c]),
            x2=float(x2[c]),
            y2=float(y2[c]),
            cx=float(cands.cx[c]),
            cy=float(cands.cy[c]),
            w=float(cands.w[c]),
            h=float(cands.h[c]),
            confidence=float(classes.max_conf[c]),
            class_index=int(classes.class_index[c]),
            class_name=ClassName.ROI if classes.is_roi[c] else ClassName.PRODUCT,
        )
        for c in np.flatnonzero(keep)
    ]
    logger.debug(
        "filter: %d candidates, %d included, %d in range",
        cands.elements,
        int(np.count_nonzero(classes.include)),
        len(boxes),
    )
    return boxes


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of one post-processing call.

    An empty `boxes` with `error is None` means nothing was detected; a shape
    or layout failure is carried in `error` instead of being raised.
    """

    boxes: Tuple[BoundingBox, ...] = ()
    error: Optional[ShelfKitError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[BoundingBox]:
        if self.error is not None:
            raise self.error
        return list(self.boxes)


class ShelfPostprocessor:
    """
    Detector output -> de-duplicated PRODUCT boxes.

    Holds only its immutable config, so one instance can serve concurrent
    frames as long as each call gets its own buffer.
    """

    def __init__(self, cfg: ShelfPostConfig = ShelfPostConfig()):
        self.cfg = cfg

    def process(
        self,
        buffer: ArrayLike,
        channels: int,
        elements: int,
        *,
        detection_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[BoundingBox]:
        """
        Post-process a flat channel-major buffer.

        Raises:
            ShapeMismatch: if the buffer does not hold `channels * elements` values.
            LayoutError: if the configured score channels do not fit `channels`.
        """

        tensor = decode_tensor(buffer, channels, elements)
        return self.process_tensor(tensor, detection_threshold=detection_threshold, iou_threshold=iou_threshold)

    def process_output(
        self,
        preds: ArrayLike,
        *,
        detection_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[BoundingBox]:
        """Same as `process` for a model output shaped (1, C, N) or (C, N)."""
        tensor = DetectionTensor.from_output(preds)
        return self.process_tensor(tensor, detection_threshold=detection_threshold, iou_threshold=iou_threshold)

    def process_tensor(
        self,
        tensor: DetectionTensor,
        *,
        detection_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> List[BoundingBox]:
        det_t = self.cfg.detection_threshold
        if detection_threshold is not None:
            det_t = _check_threshold("detection_threshold", detection_threshold)
        iou_t = self.cfg.iou_threshold
        if iou_threshold is not None:
            iou_t = _check_threshold("iou_threshold", iou_threshold)

        boxes = filter_candidates(tensor, det_t, self.cfg.layout_for(tensor.channels))
        if not boxes:
            return []

        if self.cfg.apply_nms:
            return nms(boxes, NMSConfig(iou_threshold=iou_t, max_detections=self.cfg.max_detections))
        return self._select_topk(boxes)

    def run(
        self,
        buffer: ArrayLike,
        channels: int,
        elements: int,
        *,
        detection_threshold: Optional[float] = None,
        iou_threshold: Optional[float] = None,
    ) -> DetectionResult:
        """Like `process`, but shape and layout failures come back in the result."""
        try:
            boxes = self.process(
                buffer,
                channels,
                elements,
                detection_threshold=detection_threshold,
                iou_threshold=iou_threshold,
            )
        except ShelfKitError as exc:
            logger.warning("Detector output rejected: %s", exc)
            return DetectionResult(error=exc)
        return DetectionResult(boxes=tuple(boxes))

    def _select_topk(self, boxes: Sequence[BoundingBox]) -> List[BoundingBox]:
        boxes = list(boxes)
        if self.cfg.max_detections is None or len(boxes) <= self.cfg.max_detections:
            return boxes
        order = np.argsort(-np.array([b.confidence for b in boxes], dtype=np.float64), kind="stable")
        return [boxes[i] for i in order[: self.cfg.max_detections]]
