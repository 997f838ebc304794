"""
High-level OCR Pipeline

Runs detection, orientation classification and recognition on one image and
maps every box back onto the caller's pixel grid.
"""

import dataclasses
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import numpy as np

from .config import OCRConfig
from .geometry import (
    OpRecord,
    PaddingOp,
    ResizeOp,
    apply_vertical_padding,
    get_rotate_crop_image,
    map_boxes_to_original,
    resize_image_within_bounds,
)
from .load_image import InputType, LoadImage
from .models import ModelRegistry, registry
from .onnx_base import InferenceSession, as_session
from .output import OCROutput, WordInfo
from .text_classifier import TextClassifier
from .text_detector import TextDetector
from .text_recognizer import METADATA_CHARACTER_KEY, TextRecognizer
from .word_boxes import CalRecBoxes

logger = logging.getLogger(__name__)

ModelSource = Optional[Union[str, Path, InferenceSession]]


class OCRPipeline:
    """
    Complete OCR pipeline combining detection, classification, and recognition.

    Usage:
        ocr = OCRPipeline()
        result = ocr("page.png")
        for box, txt, score in zip(result.boxes, result.txts, result.scores):
            ...

    Models left as None are resolved through the model registry, so only the
    stages that are enabled trigger a download.
    """

    def __init__(
        self,
        config: Optional[OCRConfig] = None,
        det_model: ModelSource = None,
        cls_model: ModelSource = None,
        rec_model: ModelSource = None,
        char_dict_path: Optional[Union[str, Path]] = None,
        model_registry: Optional[ModelRegistry] = None,
    ):
        """
        Args:
            config: Pipeline options (uses defaults if None)
            det_model: Detection model path or session
            cls_model: Classification model path or session
            rec_model: Recognition model path or session
            char_dict_path: Character dictionary for a recognition model
                without ``character`` metadata
            model_registry: Where missing models come from
        """
        self.config = config if config is not None else OCRConfig()
        self._registry = model_registry if model_registry is not None else registry
        self._models = {"det": det_model, "cls": cls_model, "rec": rec_model}
        self._char_dict_path = char_dict_path

        self.load_img = LoadImage()
        self.cal_rec_boxes = CalRecBoxes()

        self.text_det: Optional[TextDetector] = None
        self.text_cls: Optional[TextClassifier] = None
        self.text_rec: Optional[TextRecognizer] = None
        self._init_stages()

    def _resolve(
        self, stage: str, file_key: str, use_gpu: bool, use_tensorrt: bool
    ) -> InferenceSession:
        model = self._models[stage]
        if model is None:
            model = self._registry.get("paddle_ocr", file_key)
        session = as_session(model, use_gpu=use_gpu, use_tensorrt=use_tensorrt)
        # Keep the session so re-creating a stage does not reload the model
        self._models[stage] = session
        return session

    def _init_stages(self):
        cfg = self.config

        if cfg.use_det and self.text_det is None:
            session = self._resolve("det", "detector", cfg.det.use_gpu, cfg.det.use_tensorrt)
            self.text_det = TextDetector(session, cfg.det)

        if cfg.use_cls and self.text_cls is None:
            session = self._resolve("cls", "classifier", cfg.cls.use_gpu, cfg.cls.use_tensorrt)
            self.text_cls = TextClassifier(session, cfg.cls)

        if cfg.use_rec and self.text_rec is None:
            session = self._resolve("rec", "recognizer", cfg.rec.use_gpu, cfg.rec.use_tensorrt)
            char_dict_path = self._char_dict_path
            if char_dict_path is None and not session.has_metadata(METADATA_CHARACTER_KEY):
                logger.warning(
                    "Recognition model has no character metadata, "
                    "using the registry dictionary"
                )
                char_dict_path = self._registry.get("paddle_ocr", "dictionary")
            self.text_rec = TextRecognizer(session, char_dict_path, cfg.rec)

    def update_params(
        self,
        use_det: Optional[bool] = None,
        use_cls: Optional[bool] = None,
        use_rec: Optional[bool] = None,
        return_word_box: Optional[bool] = None,
        return_single_char_box: Optional[bool] = None,
        text_score: Optional[float] = None,
        box_thresh: Optional[float] = None,
        unclip_ratio: Optional[float] = None,
    ) -> None:
        """Change switches and thresholds between calls.

        Arguments left as None keep their current value. Enabling a stage
        that was never loaded loads its model.

        Raises:
            ConfigError: if a new value is out of range
        """
        changes = {
            key: value for key, value in {
                "use_det": use_det,
                "use_cls": use_cls,
                "use_rec": use_rec,
                "return_word_box": return_word_box,
                "return_single_char_box": return_single_char_box,
                "text_score": text_score,
            }.items() if value is not None
        }
        det_changes = {
            key: value for key, value in {
                "box_thresh": box_thresh,
                "unclip_ratio": unclip_ratio,
            }.items() if value is not None
        }

        if det_changes:
            changes["det"] = dataclasses.replace(self.config.det, **det_changes)
        # replace() re-runs validation
        self.config = dataclasses.replace(self.config, **changes)

        if det_changes and self.text_det is not None:
            self.text_det = TextDetector(self.text_det.session, self.config.det)

        self._init_stages()
        logger.info("Updated pipeline parameters: %s", {**changes, **det_changes})

    def __call__(self, img: InputType) -> OCROutput:
        """Run OCR on one image.

        Args:
            img: Path, encoded bytes, PIL image or BGR array

        Returns:
            OCROutput; empty when no text survives

        Raises:
            LoadImageError: if the image cannot be read
            ResizeImgError: if the image cannot be brought into size limits
            InferenceError: if a model fails
        """
        cfg = self.config
        ori_img = self.load_img(img)
        ori_h, ori_w = ori_img.shape[:2]

        # Vertical padding is for the detector only
        img, op_record = self.preprocess_img(ori_img, pad=cfg.use_det)

        det_elapse = cls_elapse = rec_elapse = 0.0

        if not cfg.use_det and not cfg.use_rec:
            logger.debug("Detection and recognition are both disabled")
            return OCROutput(img=ori_img, elapse_list=(0.0, 0.0, 0.0))

        if cfg.use_det:
            det_res = self.text_det(img)
            det_elapse = det_res.elapse
            if len(det_res) == 0:
                logger.debug("No text regions detected")
                return OCROutput(img=ori_img, elapse_list=(det_elapse, 0.0, 0.0))
            dt_boxes = det_res.boxes
            det_scores = det_res.scores
        else:
            h, w = img.shape[:2]
            dt_boxes = [np.array([[0, 0], [w, 0], [w, h], [0, h]], dtype=np.float32)]
            det_scores = [1.0]

        img_crop_list = [get_rotate_crop_image(img, box) for box in dt_boxes]

        rotated = [False] * len(img_crop_list)
        if cfg.use_cls:
            cls_res = self.text_cls(img_crop_list)
            img_crop_list = cls_res.img_list
            cls_elapse = cls_res.elapse
            rotated = [
                "180" in label and score > cfg.cls.cls_thresh
                for label, score in cls_res.cls_res
            ]

        if not cfg.use_rec:
            boxes = map_boxes_to_original(np.array(dt_boxes), op_record, ori_h, ori_w)
            return OCROutput(
                img=ori_img,
                boxes=boxes,
                txts=None,
                scores=tuple(float(s) for s in det_scores),
                elapse_list=(det_elapse, cls_elapse, rec_elapse),
            )

        rec_res = self.text_rec(img_crop_list, return_word_box=cfg.return_word_box)
        rec_elapse = rec_res.elapse
        elapse_list = (det_elapse, cls_elapse, rec_elapse)

        keep = [i for i, txt in enumerate(rec_res.txts) if txt.strip()]
        if not keep:
            logger.debug("All recognized lines are empty")
            return OCROutput(img=ori_img, elapse_list=elapse_list)

        dt_boxes = [dt_boxes[i] for i in keep]
        txts = [rec_res.txts[i] for i in keep]
        scores = [rec_res.scores[i] for i in keep]

        word_results: List[WordInfo] = []
        if cfg.return_word_box:
            word_results = self.calc_word_boxes(
                [img_crop_list[i] for i in keep],
                dt_boxes,
                txts,
                [rec_res.word_results[i] for i in keep],
                [rotated[i] for i in keep],
                op_record, ori_h, ori_w,
            )

        boxes = map_boxes_to_original(np.array(dt_boxes), op_record, ori_h, ori_w)

        keep = [i for i, score in enumerate(scores) if score >= cfg.text_score]
        if not keep:
            logger.debug("No line reached text_score %.2f", cfg.text_score)
            return OCROutput(img=ori_img, elapse_list=elapse_list)

        logger.debug(
            "Recognized %d lines (det %.3fs, cls %.3fs, rec %.3fs)",
            len(keep), *elapse_list
        )
        return OCROutput(
            img=ori_img,
            boxes=boxes[keep],
            txts=tuple(txts[i] for i in keep),
            scores=tuple(float(scores[i]) for i in keep),
            word_results=tuple(word_results[i] for i in keep) if word_results else (),
            elapse_list=elapse_list,
        )

    recognize = __call__

    def preprocess_img(self, ori_img: np.ndarray, pad: bool = True):
        """Resize into side limits and, if ``pad``, pad for detection.

        Returns the working image and the record of what was applied.
        """
        cfg = self.config
        op_record = OpRecord()

        img, ratio_h, ratio_w = resize_image_within_bounds(
            ori_img, cfg.min_side_len, cfg.max_side_len
        )
        op_record.append(ResizeOp(ratio_h, ratio_w))

        if not pad:
            return img, op_record

        img, padding_top, padding_left = apply_vertical_padding(
            img, cfg.width_height_ratio, cfg.min_height
        )
        op_record.append(PaddingOp(padding_top, padding_left))
        return img, op_record

    def calc_word_boxes(
        self,
        img_crop_list: Sequence[np.ndarray],
        dt_boxes: Sequence[np.ndarray],
        txts: Sequence[str],
        word_results: Sequence[WordInfo],
        rotated: Sequence[bool],
        op_record: OpRecord,
        ori_h: int,
        ori_w: int,
    ) -> List[WordInfo]:
        """Word boxes in the working frame, then mapped to the original image."""
        word_results = self.cal_rec_boxes(
            img_crop_list,
            dt_boxes,
            txts,
            word_results,
            return_single_char_box=self.config.return_single_char_box,
            rotated_180=rotated,
        )

        for info in word_results:
            if not info.word_boxes:
                continue
            mapped = map_boxes_to_original(
                np.array(info.word_boxes), op_record, ori_h, ori_w
            )
            info.word_boxes = list(np.round(mapped))
        return word_results

    def __repr__(self):
        return (
            f"OCRPipeline(\n"
            f"  detector={self.text_det},\n"
            f"  classifier={self.text_cls},\n"
            f"  recognizer={self.text_rec}\n"
            f")"
        )
