from __future__ import annotations

import argparse
import time
from typing import List, Sequence

import numpy as np

from shelf_kit import ShelfPostConfig, ShelfPostprocessor, load_post_config


def _latency_line(label: str, seconds: Sequence[float]) -> str:
    ms = np.asarray(seconds, dtype=np.float64) * 1000.0
    p50, p90, p95 = np.percentile(ms, [50, 90, 95])
    return f"{label}: n={ms.size} mean={ms.mean():.3f}ms p50={p50:.3f}ms p90={p90:.3f}ms p95={p95:.3f}ms"



def _synthetic_tensor(channels: int, elements: int, roi_rate: float, seed: int) -> np.ndarray:
    """Flat channel-major buffer with plausible in-range geometry."""
    rng = np.random.default_rng(seed)
    data = np.zeros((channels, elements), dtype=np.float32)
    data[2] = rng.uniform(0.02, 0.2, size=elements)  # w
    data[3] = rng.uniform(0.02, 0.2, size=elements)  # h
    data[0] = rng.uniform(data[2] / 2, 1.0 - data[2] / 2)  # cx
    data[1] = rng.uniform(data[3] / 2, 1.0 - data[3] / 2)  # cy
    data[channels - 1] = rng.uniform(0.0, 1.0, size=elements)
    if channels > 5:
        roi = rng.uniform(0.0, 0.3, size=(channels - 5, elements))
        fired = rng.uniform(0.0, 1.0, size=elements) < roi_rate
        roi[0, fired] = 0.9
        data[4 : channels - 1] = roi
    return data.reshape(-1)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Benchmark shelf detector post-processing latency with NMS vs without NMS."
    )
    parser.add_argument("--config", default=None, help="Optional post-process config JSON.")
    parser.add_argument("--channels", type=int, default=11, help="Detector output channels (>= 5).")
    parser.add_argument("--elements", type=int, default=8400, help="Candidates per frame.")
    parser.add_argument("--roi-rate", type=float, default=0.05, help="Fraction of candidates with an ROI hit.")
    parser.add_argument("--conf", type=float, default=None, help="Override detection threshold.")
    parser.add_argument("--iou", type=float, default=None, help="Override IoU threshold for NMS.")
    parser.add_argument("--warmup", type=int, default=10, help="Warmup iterations to run but not record.")
    parser.add_argument("--repeats", type=int, default=200, help="Recorded iterations.")
    parser.add_argument("--seed", type=int, default=0, help="RNG seed for the synthetic tensor.")
    args = parser.parse_args()

    if args.channels < 5:
        raise ValueError("--channels must be >= 5")
    if args.elements < 1:
        raise ValueError("--elements must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    base = load_post_config(args.config) if args.config else ShelfPostConfig()
    post_with_nms = ShelfPostprocessor(base)
    post_no_nms = ShelfPostprocessor(
        ShelfPostConfig(
            detection_threshold=base.detection_threshold,
            iou_threshold=base.iou_threshold,
            max_detections=base.max_detections,
            apply_nms=False,
            confidence_channel=base.confidence_channel,
            roi_channels=base.roi_channels,
        )
    )

    buffer = _synthetic_tensor(args.channels, args.elements, float(args.roi_rate), int(args.seed))
    overrides = {"detection_threshold": args.conf, "iou_threshold": args.iou}

    t_nms: List[float] = []
    t_no: List[float] = []
    kept_nms = kept_no = 0
    for i in range(int(args.warmup) + int(args.repeats)):
        t0 = time.perf_counter()
        kept_nms = len(post_with_nms.process(buffer, args.channels, args.elements, **overrides))
        t1 = time.perf_counter()
        kept_no = len(post_no_nms.process(buffer, args.channels, args.elements, **overrides))
        t2 = time.perf_counter()
        if i >= int(args.warmup):
            t_nms.append(t1 - t0)
            t_no.append(t2 - t1)

    print(_latency_line("postprocess_with_nms", t_nms))
    print(_latency_line("postprocess_no_nms", t_no))
    print(f"channels={args.channels} elements={args.elements} boxes_nms={kept_nms} boxes_no_nms={kept_no}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
