"""Visualisation helpers for OCR results."""

import logging
from typing import Optional, Sequence

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from .output import OCROutput

logger = logging.getLogger(__name__)


def draw_ocr_boxes(
    image: np.ndarray,
    boxes: np.ndarray,
    texts: Optional[Sequence[str]] = None,
    scores: Optional[Sequence[float]] = None,
    drop_score: float = 0.5,
    font_path: Optional[str] = None,
    color=(0, 255, 0),
) -> np.ndarray:
    """Draw OCR results on image.

    Args:
        image: Source image (BGR)
        boxes: Quads, (N, 4, 2)
        texts: Recognized texts
        scores: Confidence scores
        drop_score: Boxes scoring below this are skipped
        font_path: Path to a TrueType font; Pillow's default font otherwise
        color: Outline color (RGB)

    Returns:
        New BGR image with drawn boxes and text
    """
    img = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    draw = ImageDraw.Draw(img)

    font = ImageFont.load_default()
    if font_path:
        try:
            font = ImageFont.truetype(font_path, 18)
        except OSError:
            logger.warning("Cannot load font %s, using the default font", font_path)

    if boxes is None:
        boxes = []

    for idx, box in enumerate(boxes):
        if scores is not None and idx < len(scores) and scores[idx] < drop_score:
            continue

        box = np.array(box).astype(np.int32).reshape(-1, 2)
        draw.polygon([tuple(int(v) for v in p) for p in box], outline=tuple(color))

        if texts and idx < len(texts):
            box_height = int(np.linalg.norm(box[0] - box[3]))
            box_width = int(np.linalg.norm(box[0] - box[1]))

            # Labels go above horizontal boxes only
            if box_height <= 2 * box_width:
                draw.text(
                    (int(box[0][0]), max(int(box[0][1]) - 20, 0)),
                    texts[idx], fill=(255, 0, 0), font=font
                )

    return cv2.cvtColor(np.array(img), cv2.COLOR_RGB2BGR)


def draw_ocr_output(
    image: np.ndarray,
    result: OCROutput,
    font_path: Optional[str] = None,
    draw_word_boxes: bool = True,
) -> np.ndarray:
    """Draw line boxes and, if present, word boxes of an ``OCROutput``."""
    vis = draw_ocr_boxes(
        image, result.boxes, result.txts, result.scores,
        drop_score=0.0, font_path=font_path,
    )
    if draw_word_boxes and result.word_results:
        word_boxes = [box for info in result.word_results for box in info.word_boxes]
        if word_boxes:
            vis = draw_ocr_boxes(vis, np.array(word_boxes), color=(0, 128, 255))
    return vis
