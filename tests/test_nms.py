import unittest

import numpy as np

from shelf_kit.nms import NMSConfig, iou, nms, nms_indices
from shelf_kit.types import BoundingBox


def box(x1: float, y1: float, x2: float, y2: float, confidence: float) -> BoundingBox:
    return BoundingBox(
        x1=x1,
        y1=y1,
        x2=x2,
        y2=y2,
        cx=(x1 + x2) / 2,
        cy=(y1 + y2) / 2,
        w=x2 - x1,
        h=y2 - y1,
        confidence=confidence,
        class_index=0,
    )


def random_boxes(n: int, seed: int) -> list:
    rng = np.random.default_rng(seed)
    out = []
    for _ in range(n):
        x1, y1 = rng.uniform(0.0, 0.7, size=2)
        w, h = rng.uniform(0.05, 0.3, size=2)
        out.append(box(float(x1), float(y1), float(x1 + w), float(y1 + h), float(rng.uniform(0.4, 1.0))))
    return out


class TestIoU(unittest.TestCase):
    def test_identical_boxes(self) -> None:
        a = box(0.4, 0.4, 0.6, 0.6, 0.9)
        self.assertAlmostEqual(iou(a, a), 1.0, places=9)

    def test_disjoint_boxes(self) -> None:
        self.assertEqual(iou(box(0.0, 0.0, 0.2, 0.2, 0.9), box(0.5, 0.5, 0.7, 0.7, 0.8)), 0.0)

    def test_partial_overlap(self) -> None:
        a = box(0.0, 0.0, 0.5, 0.5, 0.9)
        b = box(0.25, 0.0, 0.75, 0.5, 0.8)
        self.assertAlmostEqual(iou(a, b), 1.0 / 3.0, places=9)
        self.assertAlmostEqual(iou(a, b), iou(b, a), places=12)

    def test_area_uses_w_and_h_fields(self) -> None:
        a = box(0.0, 0.0, 0.5, 0.5, 0.9)
        # Same corners, but a declared size twice as wide.
        b = BoundingBox(x1=0.0, y1=0.0, x2=0.5, y2=0.5, cx=0.25, cy=0.25, w=1.0, h=0.5, confidence=0.8)
        # inter = 0.25, union = 0.25 + 0.5 - 0.25
        self.assertAlmostEqual(iou(a, b), 0.5, places=9)

    def test_zero_area_is_not_overlap(self) -> None:
        flat = BoundingBox(x1=0.5, y1=0.5, x2=0.5, y2=0.5, cx=0.5, cy=0.5, w=0.0, h=0.0, confidence=0.9)
        self.assertEqual(iou(flat, flat), 0.0)
        self.assertEqual(iou(flat, box(0.4, 0.4, 0.6, 0.6, 0.8)), 0.0)

    def test_negative_area_is_not_overlap(self) -> None:
        inverted = BoundingBox(x1=0.6, y1=0.4, x2=0.4, y2=0.6, cx=0.5, cy=0.5, w=-0.2, h=0.2, confidence=0.9)
        self.assertEqual(iou(inverted, box(0.4, 0.4, 0.6, 0.6, 0.8)), 0.0)

    def test_bounds(self) -> None:
        boxes = random_boxes(40, seed=1)
        for a in boxes:
            for b in boxes:
                value = iou(a, b)
                self.assertGreaterEqual(value, 0.0)
                self.assertLessEqual(value, 1.0)


class TestNMS(unittest.TestCase):
    def test_empty(self) -> None:
        self.assertEqual(nms([]), [])
        self.assertEqual(nms_indices(np.zeros((0, 4)), np.zeros(0), np.zeros(0), 0.3).size, 0)

    def test_identical_boxes_keep_highest(self) -> None:
        low = box(0.4, 0.4, 0.6, 0.6, 0.5)
        high = box(0.4, 0.4, 0.6, 0.6, 0.9)
        self.assertEqual(nms([low, high], 0.3), [high])

    def test_output_in_descending_confidence(self) -> None:
        boxes = [
            box(0.0, 0.0, 0.1, 0.1, 0.5),
            box(0.3, 0.3, 0.4, 0.4, 0.9),
            box(0.6, 0.6, 0.7, 0.7, 0.7),
        ]
        kept = nms(boxes, 0.3)
        self.assertEqual([b.confidence for b in kept], [0.9, 0.7, 0.5])

    def test_threshold_is_inclusive(self) -> None:
        high = box(0.0, 0.0, 0.5, 0.5, 0.9)
        low = box(0.25, 0.0, 0.75, 0.5, 0.6)
        threshold = iou(high, low)
        self.assertEqual(nms([low, high], threshold), [high])
        self.assertEqual(nms([low, high], float(np.nextafter(threshold, 1.0))), [high, low])

    def test_iou_exactly_at_default_threshold(self) -> None:
        # Contained box: inter = 0.75 * 0.25, union = 1.0 * 0.625, IoU = 0.3.
        high = box(0.0, 0.0, 1.0, 0.625, 0.9)
        low = box(0.125, 0.25, 0.875, 0.5, 0.6)
        self.assertEqual(iou(high, low), 0.3)
        self.assertEqual(nms([low, high], 0.3), [high])
        self.assertEqual(nms([low, high], NMSConfig(iou_threshold=0.31)), [high, low])

    def test_ties_keep_input_order(self) -> None:
        first = box(0.0, 0.0, 0.2, 0.2, 0.8)
        second = box(0.05, 0.0, 0.25, 0.2, 0.8)
        self.assertEqual(nms([first, second], 0.3), [first])
        self.assertEqual(nms([second, first], 0.3), [second])

    def test_suppression_only_by_selected_boxes(self) -> None:
        # b overlaps a and c, but a and c do not overlap; once b is dropped c survives.
        a = box(0.0, 0.0, 0.4, 0.4, 0.9)
        b = box(0.2, 0.0, 0.6, 0.4, 0.8)
        c = box(0.4, 0.0, 0.8, 0.4, 0.7)
        self.assertEqual(nms([a, b, c], 0.3), [a, c])

    def test_degenerate_boxes_never_suppress(self) -> None:
        flat_a = BoundingBox(x1=0.5, y1=0.5, x2=0.5, y2=0.5, cx=0.5, cy=0.5, w=0.0, h=0.0, confidence=0.9)
        flat_b = BoundingBox(x1=0.5, y1=0.5, x2=0.5, y2=0.5, cx=0.5, cy=0.5, w=0.0, h=0.0, confidence=0.8)
        self.assertEqual(nms([flat_a, flat_b], 0.0), [flat_a, flat_b])

    def test_max_detections(self) -> None:
        boxes = random_boxes(30, seed=2)
        kept = nms(boxes, NMSConfig(iou_threshold=0.3, max_detections=3))
        self.assertEqual(len(kept), 3)
        self.assertEqual(kept, nms(boxes, 0.3)[:3])

    def test_idempotent(self) -> None:
        boxes = random_boxes(60, seed=4)
        once = nms(boxes, 0.3)
        self.assertEqual(nms(once, 0.3), once)

    def test_deterministic(self) -> None:
        boxes = random_boxes(60, seed=6)
        self.assertEqual(nms(boxes, 0.3), nms(list(boxes), 0.3))

    def test_does_not_mutate_input(self) -> None:
        boxes = random_boxes(10, seed=7)
        snapshot = list(boxes)
        nms(boxes, 0.3)
        self.assertEqual(boxes, snapshot)


if __name__ == "__main__":
    unittest.main()
