import argparse

import cv2
import numpy as np

from shelf_kit import ShelfPostConfig, ShelfPostprocessor, draw_boxes, load_post_config


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Post-process a saved detector output (.npy) and draw the boxes on its frame."
    )
    parser.add_argument("--image", required=True, help="Path to the frame the detector ran on.")
    parser.add_argument("--tensor", required=True, help="Path to the raw detector output (.npy, shape (1, C, N) or (C, N)).")
    parser.add_argument("--config", default=None, help="Optional post-process config JSON.")
    parser.add_argument("--conf", type=float, default=None, help="Override detection threshold.")
    parser.add_argument("--iou", type=float, default=None, help="Override IoU threshold for NMS.")
    parser.add_argument("--show", action="store_true", help="Show a window with the annotated frame.")
    parser.add_argument("--out", default=None, help="Optional output image path.")
    args = parser.parse_args()

    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")
    preds = np.load(args.tensor)

    cfg = load_post_config(args.config) if args.config else ShelfPostConfig()
    post = ShelfPostprocessor(cfg)
    boxes = post.process_output(preds, detection_threshold=args.conf, iou_threshold=args.iou)

    vis = draw_boxes(img, boxes)
    if args.out:
        ok = cv2.imwrite(args.out, vis)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")

    if args.show:
        cv2.imshow("detections", vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    for box in boxes:
        print(box.class_name.value, f"{box.confidence:.3f}", box.as_xyxy())

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
