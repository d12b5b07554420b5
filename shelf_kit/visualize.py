from __future__ import annotations

import logging
from typing import Iterable, Tuple

import numpy as np

from .types import BoundingBox, ClassName

logger = logging.getLogger(__name__)

# OpenCV colors are BGR.
PRODUCT_COLOR: Tuple[int, int, int] = (0, 0, 255)
OTHER_COLOR: Tuple[int, int, int] = (0, 255, 0)


def _color_for_box(box: BoundingBox) -> Tuple[int, int, int]:
    return PRODUCT_COLOR if box.class_name == ClassName.PRODUCT else OTHER_COLOR


def draw_boxes(
    image_bgr: np.ndarray,
    boxes: Iterable[BoundingBox],
    *,
    box_thickness: int = 2,
) -> np.ndarray:
    """
    Draw normalized boxes on an OpenCV BGR image and return a copy.

    Corners are scaled to the image size; a box that lands outside the image
    after scaling is skipped rather than clipped.
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_boxes(). Install with `pip install opencv-python`.") from e

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    skipped = 0
    for box in boxes:
        x1, y1, x2, y2 = box.to_pixels(w, h)
        if x1 < 0 or y1 < 0 or x2 > w or y2 > h:
            skipped += 1
            continue
        cv2.rectangle(
            out,
            (int(round(x1)), int(round(y1))),
            (int(round(x2)), int(round(y2))),
            _color_for_box(box),
            thickness=box_thickness,
        )

    if skipped:
        logger.debug("draw_boxes: skipped %d box(es) outside a %dx%d image", skipped, w, h)
    return out
