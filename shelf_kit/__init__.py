"""
Post-processing for the shelf-audit product detector.

Turns the raw channel-major detector output into de-duplicated PRODUCT boxes
in normalized image coordinates. Pure NumPy; OpenCV is only needed for
preprocessing frames and drawing boxes.
"""

from .types import BoundingBox, ClassName
from .errors import LayoutError, ShapeMismatch, ShelfKitError
from .decode import ChannelLayout, DecodedCandidates, DetectionTensor, decode_tensor
from .nms import NMSConfig, iou, nms, nms_indices
from .postprocess import (
    CandidateClasses,
    DetectionResult,
    ShelfPostConfig,
    ShelfPostprocessor,
    classify_candidates,
    filter_candidates,
)
from .config import load_post_config
from .runtime import PreprocessConfig, ShelfPipeline
from .visualize import draw_boxes

__all__ = [
    "BoundingBox",
    "ClassName",
    "LayoutError",
    "ShapeMismatch",
    "ShelfKitError",
    "ChannelLayout",
    "DecodedCandidates",
    "DetectionTensor",
    "decode_tensor",
    "NMSConfig",
    "iou",
    "nms",
    "nms_indices",
    "CandidateClasses",
    "DetectionResult",
    "ShelfPostConfig",
    "ShelfPostprocessor",
    "classify_candidates",
    "filter_candidates",
    "load_post_config",
    "PreprocessConfig",
    "ShelfPipeline",
    "draw_boxes",
]
