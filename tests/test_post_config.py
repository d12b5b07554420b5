import json
import tempfile
import unittest
from pathlib import Path

from shelf_kit.config import load_post_config
from shelf_kit.postprocess import ShelfPostConfig


class TestPostConfig(unittest.TestCase):
    def _write_config(self, payload) -> Path:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "postprocess.json"
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_load_ok(self) -> None:
        path = self._write_config(
            {
                "schema_version": 1,
                "detection_threshold": 0.5,
                "iou_threshold": 0.45,
                "max_detections": 20,
                "apply_nms": True,
                "confidence_channel": 10,
                "roi_channels": [4, 5, 6],
            }
        )
        cfg = load_post_config(path)
        self.assertIsInstance(cfg, ShelfPostConfig)
        self.assertEqual(cfg.detection_threshold, 0.5)
        self.assertEqual(cfg.iou_threshold, 0.45)
        self.assertEqual(cfg.max_detections, 20)
        self.assertEqual(cfg.confidence_channel, 10)
        self.assertEqual(cfg.roi_channels, (4, 5, 6))

    def test_missing_keys_use_defaults(self) -> None:
        cfg = load_post_config(self._write_config({"schema_version": 1}))
        self.assertEqual(cfg, ShelfPostConfig())

    def test_unknown_keys_rejected(self) -> None:
        with self.assertRaises(ValueError):
            load_post_config(self._write_config({"schema_version": 1, "extra": 123}))

    def test_schema_version_required(self) -> None:
        with self.assertRaises(ValueError):
            load_post_config(self._write_config({"detection_threshold": 0.4}))
        with self.assertRaises(ValueError):
            load_post_config(self._write_config({"schema_version": 2}))

    def test_invalid_values_rejected(self) -> None:
        for payload in (
            {"schema_version": 1, "detection_threshold": "high"},
            {"schema_version": 1, "iou_threshold": True},
            {"schema_version": 1, "iou_threshold": 1.5},
            {"schema_version": 1, "max_detections": 2.5},
            {"schema_version": 1, "apply_nms": "yes"},
            {"schema_version": 1, "roi_channels": [4, "5"]},
        ):
            with self.subTest(payload=payload):
                with self.assertRaises(ValueError):
                    load_post_config(self._write_config(payload))

    def test_not_an_object(self) -> None:
        with self.assertRaises(ValueError):
            load_post_config(self._write_config([1, 2, 3]))

    def test_invalid_json(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        path = Path(tmpdir.name) / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_post_config(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_post_config(Path("/nonexistent/postprocess.json"))


if __name__ == "__main__":
    unittest.main()
