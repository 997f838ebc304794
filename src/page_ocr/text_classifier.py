"""
Text Orientation Classification Module - Stage 2 of OCR Pipeline

Detects and corrects text orientation (0 or 180 degrees).
"""

import logging
import math
import time
from pathlib import Path
from typing import List, Optional, Union

import cv2
import numpy as np

from .config import ClassifierConfig
from .errors import InferenceError
from .onnx_base import InferenceSession, as_session
from .output import TextClsOutput
from .postprocess import ClsPostProcess

logger = logging.getLogger(__name__)


class TextClassifier:
    """Text orientation classification module with batch processing.

    Takes a list of text crops and returns them, upside-down ones rotated,
    in the order they were given.
    """

    def __init__(
        self,
        model: Union[str, Path, InferenceSession],
        config: Optional[ClassifierConfig] = None,
    ):
        """Initialize text classifier.

        Args:
            model: Path to classification ONNX model (cls.onnx) or a session
            config: Classifier configuration (uses defaults if None)
        """
        if config is None:
            config = ClassifierConfig()

        self.config = config
        self.cls_image_shape = config.cls_image_shape
        self.cls_batch_num = config.cls_batch_num
        self.cls_thresh = config.cls_thresh

        self.session = as_session(
            model,
            use_gpu=config.use_gpu,
            use_tensorrt=config.use_tensorrt,
        )

        self.postprocess_op = ClsPostProcess(label_list=config.label_list)

    def resize_norm_img(self, img: np.ndarray) -> np.ndarray:
        """Resize and normalize image for classification.

        Args:
            img: Input image (H, W, C)

        Returns:
            Processed image (C, H, W), right-padded with zeros
        """
        imgC, imgH, imgW = self.cls_image_shape
        h, w = img.shape[:2]
        ratio = w / float(h)

        if math.ceil(imgH * ratio) > imgW:
            resized_w = imgW
        else:
            resized_w = int(math.ceil(imgH * ratio))

        resized_image = cv2.resize(img, (resized_w, imgH))
        resized_image = resized_image.astype("float32")

        if self.cls_image_shape[0] == 1:
            resized_image = resized_image / 255
            resized_image = resized_image[np.newaxis, :]
        else:
            resized_image = resized_image.transpose((2, 0, 1)) / 255

        # Normalize: (x - 0.5) / 0.5
        resized_image -= 0.5
        resized_image /= 0.5

        padding_im = np.zeros((imgC, imgH, imgW), dtype=np.float32)
        padding_im[:, :, 0:resized_w] = resized_image

        return padding_im

    def __call__(self, img_list: List[np.ndarray]) -> TextClsOutput:
        """Classify and rotate a batch of text images.

        The input list and its arrays are left untouched; the output holds
        copies.
        """
        start = time.perf_counter()
        if not img_list:
            return TextClsOutput(elapse=time.perf_counter() - start)

        img_list = [img.copy() for img in img_list]
        img_num = len(img_list)

        # Similar aspect ratios batch together
        width_list = [img.shape[1] / float(img.shape[0]) for img in img_list]
        indices = np.argsort(np.array(width_list), kind="stable")

        cls_res = [("", 0.0)] * img_num

        for beg_img_no in range(0, img_num, self.cls_batch_num):
            end_img_no = min(img_num, beg_img_no + self.cls_batch_num)
            norm_img_batch = []

            for ino in range(beg_img_no, end_img_no):
                norm_img = self.resize_norm_img(img_list[indices[ino]])
                norm_img_batch.append(norm_img[np.newaxis, :])

            norm_img_batch = np.concatenate(norm_img_batch)

            try:
                outputs = self.session.run(norm_img_batch)
            except Exception as e:
                raise InferenceError("classification", str(e)) from e

            cls_result = self.postprocess_op(outputs[0])

            for rno, (label, score) in enumerate(cls_result):
                original_idx = indices[beg_img_no + rno]
                cls_res[original_idx] = (label, score)

                if "180" in label and score > self.cls_thresh:
                    img_list[original_idx] = cv2.rotate(
                        img_list[original_idx],
                        cv2.ROTATE_180
                    )

        elapse = time.perf_counter() - start
        logger.debug("Classified %d crops in %.3fs", img_num, elapse)
        return TextClsOutput(img_list=img_list, cls_res=cls_res, elapse=elapse)
