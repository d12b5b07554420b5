from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

import numpy as np

from .postprocess import ShelfPostConfig, ShelfPostprocessor
from .types import BoundingBox


@dataclass(frozen=True)
class PreprocessConfig:
    # (width, height) of the square detector input.
    input_size: Tuple[int, int] = (640, 640)
    # NHWC (TFLite-style) when True, NCHW otherwise.
    channels_last: bool = True
    input_mean: float = 0.0
    input_std: float = 255.0

    def __post_init__(self) -> None:
        w, h = self.input_size
        if w < 1 or h < 1:
            raise ValueError(f"input_size must be positive, got {self.input_size}")
        if self.input_std <= 0:
            raise ValueError("input_std must be > 0")


class ShelfPipeline:
    """
    Frame -> detector input -> injected inference -> post-processed boxes.

    The pipeline expects BGR images (OpenCV-style) as `np.ndarray`. Model
    loading stays with the caller: `infer_fn` takes the preprocessed batch and
    returns the raw (1, C, N) detector output.
    """

    def __init__(
        self,
        infer_fn: Callable[[np.ndarray], np.ndarray],
        *,
        preprocess_cfg: PreprocessConfig = PreprocessConfig(),
        post_cfg: ShelfPostConfig = ShelfPostConfig(),
    ):
        self._infer_fn = infer_fn
        self.preprocess_cfg = preprocess_cfg
        self.post = ShelfPostprocessor(post_cfg)

    def preprocess(self, image_bgr: np.ndarray) -> np.ndarray:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for preprocess(). Install with `pip install opencv-python`.") from e

        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        cfg = self.preprocess_cfg
        img = image_bgr
        if (img.shape[1], img.shape[0]) != tuple(cfg.input_size):
            img = cv2.resize(img, tuple(cfg.input_size), interpolation=cv2.INTER_LINEAR)

        # BGR -> RGB, normalize, add batch
        blob = (img[:, :, ::-1].astype(np.float32) - cfg.input_mean) / cfg.input_std
        if not cfg.channels_last:
            blob = np.transpose(blob, (2, 0, 1))
        return np.ascontiguousarray(blob[None, ...])

    def __call__(self, image_bgr: np.ndarray) -> List[BoundingBox]:
        blob = self.preprocess(image_bgr)
        preds = self._infer_fn(blob)
        return self.post.process_output(preds)
