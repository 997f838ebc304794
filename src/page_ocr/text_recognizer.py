"""
Text Recognition Module - Stage 3 of OCR Pipeline

Recognizes text from oriented text image patches.
"""

import logging
import math
import time
from pathlib import Path
from typing import List, Optional, Union

import cv2
import numpy as np

from .config import RecognizerConfig
from .errors import InferenceError, OCRError
from .onnx_base import InferenceSession, as_session
from .output import TextRecOutput, WordInfo
from .postprocess import CTCLabelDecode

logger = logging.getLogger(__name__)

METADATA_CHARACTER_KEY = "character"


class TextRecognizer:
    """Text recognition module with batch processing.

    Takes a list of text crops and returns text, confidence and, on
    request, word segmentation for each, in input order.
    """

    def __init__(
        self,
        model: Union[str, Path, InferenceSession],
        char_dict_path: Optional[Union[str, Path]] = None,
        config: Optional[RecognizerConfig] = None,
    ):
        """Initialize text recognizer.

        Args:
            model: Path to recognition ONNX model (rec.onnx) or a session
            char_dict_path: Character dictionary file, used only when the
                model carries no ``character`` metadata
            config: Recognizer configuration (uses defaults if None)

        Raises:
            OCRError: if no character dictionary is available
        """
        if config is None:
            config = RecognizerConfig()

        self.config = config
        self.rec_image_shape = config.rec_image_shape
        self.rec_batch_num = config.rec_batch_num
        self.max_wh_ratio = config.max_wh_ratio

        self.session = as_session(
            model,
            use_gpu=config.use_gpu,
            use_tensorrt=config.use_tensorrt,
        )

        if self.session.has_metadata(METADATA_CHARACTER_KEY):
            character_list = self.session.get_metadata_list(METADATA_CHARACTER_KEY)
            self.postprocess_op = CTCLabelDecode(
                character_list=character_list,
                use_space_char=config.use_space_char,
            )
        elif char_dict_path is not None:
            if not Path(char_dict_path).exists():
                raise OCRError(f"Character dictionary not found: {char_dict_path}")
            logger.info("Model has no character metadata, using %s", char_dict_path)
            self.postprocess_op = CTCLabelDecode(
                character_dict_path=str(char_dict_path),
                use_space_char=config.use_space_char,
            )
        else:
            raise OCRError(
                "Recognition model has no character metadata and no "
                "char_dict_path was given"
            )

    @property
    def character(self) -> List[str]:
        return self.postprocess_op.character

    def resize_norm_img(self, img: np.ndarray, max_wh_ratio: float) -> np.ndarray:
        """Resize and normalize image for recognition.

        Args:
            img: Input image (H, W, C) in BGR
            max_wh_ratio: Maximum width/height ratio in batch

        Returns:
            Processed image (C, H, W)
        """
        imgC, imgH, imgW = self.rec_image_shape
        imgW = int(imgH * max_wh_ratio)

        h, w = img.shape[:2]
        ratio = w / float(h)

        if math.ceil(imgH * ratio) > imgW:
            resized_w = imgW
        else:
            resized_w = int(math.ceil(imgH * ratio))

        resized_image = cv2.resize(img, (resized_w, imgH))
        resized_image = resized_image.astype("float32")
        resized_image = resized_image.transpose((2, 0, 1)) / 255
        resized_image -= 0.5
        resized_image /= 0.5

        # Pad to fixed width
        padding_im = np.zeros((imgC, imgH, imgW), dtype=np.float32)
        padding_im[:, :, 0:resized_w] = resized_image

        return padding_im

    def __call__(
        self,
        img_list: List[np.ndarray],
        return_word_box: bool = False,
    ) -> TextRecOutput:
        """Recognize text in batch of images.

        Args:
            img_list: List of text image patches (BGR format)
            return_word_box: Also segment each line into words

        Returns:
            TextRecOutput; ``word_results`` is filled only when
            ``return_word_box`` is set
        """
        start = time.perf_counter()
        if not img_list:
            return TextRecOutput(elapse=time.perf_counter() - start)

        img_num = len(img_list)

        # Similar aspect ratios batch together
        width_list = [img.shape[1] / float(img.shape[0]) for img in img_list]
        indices = np.argsort(np.array(width_list), kind="stable")

        txts = [""] * img_num
        scores = [0.0] * img_num
        word_results: List[WordInfo] = [WordInfo() for _ in range(img_num)]

        imgC, imgH, imgW = self.rec_image_shape[:3]

        for beg_img_no in range(0, img_num, self.rec_batch_num):
            end_img_no = min(img_num, beg_img_no + self.rec_batch_num)

            max_wh_ratio = imgW / imgH
            wh_ratio_list = []
            for ino in range(beg_img_no, end_img_no):
                h, w = img_list[indices[ino]].shape[0:2]
                wh_ratio = w * 1.0 / h
                max_wh_ratio = max(max_wh_ratio, wh_ratio)
                wh_ratio_list.append(wh_ratio)

            # Wider crops are squeezed into the widest tensor the model takes
            max_wh_ratio = min(max_wh_ratio, self.max_wh_ratio)
            wh_ratio_list = [min(r, max_wh_ratio) for r in wh_ratio_list]

            norm_img_batch = []
            for ino in range(beg_img_no, end_img_no):
                norm_img = self.resize_norm_img(img_list[indices[ino]], max_wh_ratio)
                norm_img_batch.append(norm_img[np.newaxis, :])

            norm_img_batch = np.concatenate(norm_img_batch)

            try:
                outputs = self.session.run(norm_img_batch)
            except Exception as e:
                raise InferenceError("recognition", str(e)) from e

            rec_result, word_list = self.postprocess_op(
                outputs[0],
                return_word_box=return_word_box,
                wh_ratio_list=wh_ratio_list,
                max_wh_ratio=max_wh_ratio,
            )

            for rno, (text, score) in enumerate(rec_result):
                original_idx = indices[beg_img_no + rno]
                txts[original_idx] = text
                scores[original_idx] = score
                if return_word_box:
                    word_results[original_idx] = word_list[rno]

        elapse = time.perf_counter() - start
        logger.debug("Recognized %d crops in %.3fs", img_num, elapse)
        return TextRecOutput(
            imgs=list(img_list),
            txts=txts,
            scores=scores,
            word_results=word_results if return_word_box else [],
            elapse=elapse,
        )
