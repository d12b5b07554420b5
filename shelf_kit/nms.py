from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .types import BoundingBox

logger = logging.getLogger(__name__)


@dataclass
class NMSConfig:
    iou_threshold: float = 0.3
    # None keeps every box that survives suppression.
    max_detections: Optional[int] = None


def _iou_one_to_many(
    box: np.ndarray, area: float, boxes: np.ndarray, areas: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    IoU between one xyxy box and an (N, 4) array of xyxy boxes.

    Areas come from the decoded w*h, not from the corners. Returns the IoU
    values and a mask of non-degenerate pairs; pairs with a zero/negative
    area or union get IoU 0 and are masked out.
    """

    xx1 = np.maximum(box[0], boxes[:, 0])
    yy1 = np.maximum(box[1], boxes[:, 1])
    xx2 = np.minimum(box[2], boxes[:, 2])
    yy2 = np.minimum(box[3], boxes[:, 3])

    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
        union = area + areas - inter
        valid = (area > 0) & (areas > 0) & (union > 0)
        out = np.where(valid, inter / np.where(valid, union, 1.0), 0.0)
    finite = np.isfinite(out)
    valid = valid & finite
    out = np.where(finite, out, 0.0)

    degenerate = int(np.count_nonzero(~valid))
    if degenerate:
        logger.debug("IoU: %d degenerate pair(s) treated as non-overlapping", degenerate)

    return np.clip(out, 0.0, 1.0), valid


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two boxes, always in [0, 1].
    """

    value, _ = _iou_one_to_many(
        np.array(a.as_xyxy(), dtype=np.float64),
        a.area,
        np.array([b.as_xyxy()], dtype=np.float64),
        np.array([b.area], dtype=np.float64),
    )
    return float(value[0])


def nms_indices(
    xyxy: np.ndarray,
    areas: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float,
    max_detections: Optional[int] = None,
) -> np.ndarray:
    """
    Greedy NMS over (N, 4) xyxy boxes. Returns kept indices in selection order.

    Boxes are visited by descending score; equal scores keep their input
    order. A box is dropped when its IoU with a selected box is >= threshold;
    degenerate pairs never suppress.
    """

    xyxy = np.asarray(xyxy, dtype=np.float64).reshape(-1, 4)
    areas = np.asarray(areas, dtype=np.float64).reshape(-1)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if xyxy.shape[0] == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        if max_detections is not None and len(keep) >= max_detections:
            break
        i = int(order[0])
        keep.append(i)

        rest = order[1:]
        overlaps, valid = _iou_one_to_many(xyxy[i], areas[i], xyxy[rest], areas[rest])
        order = rest[~(valid & (overlaps >= iou_threshold))]

    return np.array(keep, dtype=np.int64)


def nms(boxes: Sequence[BoundingBox], cfg: Union[NMSConfig, float, None] = None) -> List[BoundingBox]:
    """
    Remove overlapping duplicates, highest confidence first.

    `cfg` may be an NMSConfig or a bare IoU threshold (default 0.3).
    """

    if cfg is None:
        cfg = NMSConfig()
    elif not isinstance(cfg, NMSConfig):
        cfg = NMSConfig(iou_threshold=float(cfg))

    boxes = list(boxes)
    if not boxes:
        return []

    xyxy = np.array([b.as_xyxy() for b in boxes], dtype=np.float64)
    areas = np.array([b.area for b in boxes], dtype=np.float64)
    scores = np.array([b.confidence for b in boxes], dtype=np.float64)

    keep = nms_indices(xyxy, areas, scores, cfg.iou_threshold, cfg.max_detections)
    logger.debug("NMS kept %d of %d boxes (iou_threshold=%.3f)", keep.size, len(boxes), cfg.iou_threshold)
    return [boxes[i] for i in keep]
