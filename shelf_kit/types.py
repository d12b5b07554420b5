from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class ClassName(str, Enum):
    PRODUCT = "PRODUCT"
    ROI = "ROI"


@dataclass(frozen=True)
class BoundingBox:
    """
    One detection in normalized image coordinates.

    Corners are derived from the decoded center/size; `w` and `h` are kept as
    separate fields because IoU areas are computed from them.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    cx: float
    cy: float
    w: float
    h: float
    confidence: float
    class_index: int = -1
    class_name: ClassName = ClassName.PRODUCT

    @property
    def area(self) -> float:
        return self.w * self.h

    @property
    def center(self) -> Tuple[float, float]:
        return self.cx, self.cy

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x1, self.y1, self.x2, self.y2

    def to_pixels(self, width: int, height: int) -> Tuple[float, float, float, float]:
        """Corners scaled to an image of `width` x `height` pixels."""
        return self.x1 * width, self.y1 * height, self.x2 * width, self.y2 * height
