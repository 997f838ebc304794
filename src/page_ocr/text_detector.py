"""
Text Detection Module - Stage 1 of OCR Pipeline

Detects text regions in images using DBNet architecture.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from .config import DetectorConfig
from .errors import InferenceError
from .geometry import clip_det_res, order_points_clockwise, reading_order
from .onnx_base import InferenceSession, as_session
from .output import TextDetOutput
from .postprocess import DBPostProcess
from .preprocess import create_operators, transform

logger = logging.getLogger(__name__)


class TextDetector:
    """Text detection module.

    Takes one image and returns quadrilateral text boxes in reading order,
    on the pixel grid of that image.
    """

    def __init__(
        self,
        model: Union[str, Path, InferenceSession],
        config: Optional[DetectorConfig] = None,
    ):
        """Initialize text detector.

        Args:
            model: Path to detection ONNX model (det.onnx) or a session
            config: Detector configuration (uses defaults if None)
        """
        if config is None:
            config = DetectorConfig()

        self.config = config
        self.session = as_session(
            model,
            use_gpu=config.use_gpu,
            use_tensorrt=config.use_tensorrt,
        )

        self.preprocess_ops = create_operators([
            {
                "DetResizeForTest": {
                    "limit_side_len": config.limit_side_len,
                    "limit_type": config.limit_type,
                }
            },
            {
                "NormalizeImage": {
                    "std": config.std,
                    "mean": config.mean,
                    "scale": 1.0 / 255.0,
                    "order": "hwc",
                }
            },
            {"ToCHWImage": None},
            {"KeepKeys": {"keep_keys": ["image", "shape"]}},
        ])

        self.postprocess_op = DBPostProcess(
            thresh=config.thresh,
            box_thresh=config.box_thresh,
            max_candidates=config.max_candidates,
            unclip_ratio=config.unclip_ratio,
            use_dilation=config.use_dilation,
            score_mode=config.score_mode,
        )

    def preprocess(self, image: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Resize and normalize; None when the image resizes to nothing."""
        data = {"image": image}
        return transform(data, self.preprocess_ops)

    def __call__(self, image: np.ndarray) -> TextDetOutput:
        """Detect text in a single BGR image.

        Returns:
            TextDetOutput with (4, 2) float32 boxes and their scores. An
            image with no text gives an output with empty lists.
        """
        start = time.perf_counter()

        result = self.preprocess(image)
        if result is None:
            logger.debug("Detection input resized to zero size, skipping")
            return TextDetOutput(img=image, elapse=time.perf_counter() - start)

        img, shape_info = result
        img = np.expand_dims(img, axis=0).astype(np.float32)
        shape_list = np.expand_dims(shape_info, axis=0)

        try:
            outputs = self.session.run(img)
        except Exception as e:
            raise InferenceError("detection", str(e)) from e

        boxes, scores = self.postprocess_op(outputs[0], shape_list)[0]
        boxes, scores = self.filter_tag_det_res(boxes, scores, image.shape)

        order = reading_order(boxes)
        boxes = [boxes[i] for i in order]
        scores = [scores[i] for i in order]

        elapse = time.perf_counter() - start
        logger.debug("Detected %d boxes in %.3fs", len(boxes), elapse)
        return TextDetOutput(img=image, boxes=boxes, scores=scores, elapse=elapse)

    def filter_tag_det_res(
        self,
        dt_boxes: List[np.ndarray],
        dt_scores: List[float],
        image_shape,
    ) -> Tuple[List[np.ndarray], List[float]]:
        """Order corners, clip to image boundaries and drop tiny boxes."""
        img_height, img_width = image_shape[0:2]
        boxes_new, scores_new = [], []

        for box, score in zip(dt_boxes, dt_scores):
            box = order_points_clockwise(np.asarray(box))
            box = clip_det_res(box, img_height, img_width)

            rect_width = int(np.linalg.norm(box[0] - box[1]))
            rect_height = int(np.linalg.norm(box[0] - box[3]))
            if rect_width <= 3 or rect_height <= 3:
                continue

            boxes_new.append(box)
            scores_new.append(score)

        return boxes_new, scores_new
