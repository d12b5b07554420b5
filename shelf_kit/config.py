from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .postprocess import ShelfPostConfig


def _require_number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_int_tuple(payload: Dict[str, Any], key: str) -> Optional[Tuple[int, ...]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise ValueError(f"{key} must be a list of integers")
    return tuple(int(v) for v in value)


def load_post_config(path: Path) -> ShelfPostConfig:
    """
    Load post-processing settings from a JSON profile, e.g.

        {"schema_version": 1, "detection_threshold": 0.4, "iou_threshold": 0.3}

    Missing keys fall back to the ShelfPostConfig defaults.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Post-process config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid post-process config JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Post-process config must be a JSON object")

    allowed = {
        "schema_version",
        "detection_threshold",
        "iou_threshold",
        "max_detections",
        "apply_nms",
        "confidence_channel",
        "roi_channels",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown post-process config keys: {unknown}")

    schema_version = payload.get("schema_version")
    if schema_version != 1 or isinstance(schema_version, bool):
        raise ValueError("post-process config schema_version must be 1")

    defaults = ShelfPostConfig()
    apply_nms = payload.get("apply_nms", defaults.apply_nms)
    if not isinstance(apply_nms, bool):
        raise ValueError("apply_nms must be a boolean")

    return ShelfPostConfig(
        detection_threshold=_require_number(payload, "detection_threshold", defaults.detection_threshold),
        iou_threshold=_require_number(payload, "iou_threshold", defaults.iou_threshold),
        max_detections=_optional_int(payload, "max_detections"),
        apply_nms=apply_nms,
        confidence_channel=_optional_int(payload, "confidence_channel"),
        roi_channels=_optional_int_tuple(payload, "roi_channels"),
    )
