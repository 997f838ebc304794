"""Postprocessing modules for OCR outputs."""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
import pyclipper
from shapely.geometry import Polygon

from .output import WordInfo, WordType

# Han (incl. Ext-A and compatibility), Hiragana, Katakana, Hangul
CJK_RANGES = (
    (0x3400, 0x4DBF),
    (0x4E00, 0x9FFF),
    (0xF900, 0xFAFF),
    (0x3040, 0x309F),
    (0x30A0, 0x30FF),
    (0x31F0, 0x31FF),
    (0x1100, 0x11FF),
    (0x3130, 0x318F),
    (0xAC00, 0xD7AF),
)


def is_cjk_char(char: str) -> bool:
    if not char:
        return False
    code = ord(char[0])
    return any(low <= code <= high for low, high in CJK_RANGES)


class DBPostProcess:
    """Post-processing for DB (Differentiable Binarization) text detection.

    Converts probability maps to quadrilateral boxes.
    """

    def __init__(
        self,
        thresh=0.3,
        box_thresh=0.5,
        max_candidates=1000,
        unclip_ratio=1.6,
        use_dilation=True,
        score_mode="fast",
    ):
        """Initialize DB post-processor.

        Args:
            thresh: Binarization threshold for probability map
            box_thresh: Minimum confidence score for boxes
            max_candidates: Maximum number of contours examined
            unclip_ratio: Ratio for expanding text regions
            use_dilation: Apply 2x2 morphological dilation
            score_mode: 'fast' (box mask) or 'slow' (contour mask)
        """
        if score_mode not in ("fast", "slow"):
            raise ValueError(f"Unknown score_mode: {score_mode}")

        self.thresh = thresh
        self.box_thresh = box_thresh
        self.max_candidates = max_candidates
        self.unclip_ratio = unclip_ratio
        self.min_size = 3
        self.score_mode = score_mode

        self.dilation_kernel = (
            np.array([[1, 1], [1, 1]], dtype=np.uint8) if use_dilation else None
        )

    def __call__(self, pred: np.ndarray, shape_list: np.ndarray):
        """Convert prediction maps to bounding boxes.

        Args:
            pred: Probability maps, (N, 1, H, W) or (N, H, W)
            shape_list: Per image [src_h, src_w, ratio_h, ratio_w]

        Returns:
            List of (boxes, scores) tuples, one per image
        """
        if pred.ndim == 4:
            pred = pred[:, 0, :, :]
        segmentation = pred > self.thresh

        results = []
        for batch_index in range(pred.shape[0]):
            src_h, src_w = shape_list[batch_index][:2]
            mask = segmentation[batch_index].astype(np.uint8)
            if self.dilation_kernel is not None:
                mask = cv2.dilate(mask, self.dilation_kernel)

            boxes, scores = self.boxes_from_bitmap(
                pred[batch_index], mask, int(src_w), int(src_h)
            )
            results.append((boxes, scores))

        return results

    def boxes_from_bitmap(self, pred, bitmap, dest_width, dest_height):
        """Extract quad boxes from binary bitmap."""
        height, width = bitmap.shape

        outs = cv2.findContours(
            (bitmap * 255).astype(np.uint8),
            cv2.RETR_EXTERNAL,
            cv2.CHAIN_APPROX_SIMPLE
        )
        # OpenCV 3 returns (image, contours, hierarchy)
        contours = outs[1] if len(outs) == 3 else outs[0]

        num_contours = min(len(contours), self.max_candidates)

        boxes = []
        scores = []

        for index in range(num_contours):
            contour = contours[index]
            points, sside = self.get_mini_boxes(contour)

            if sside < self.min_size:
                continue

            points = np.array(points)
            if self.score_mode == "fast":
                score = self.box_score_fast(pred, points.reshape(-1, 2))
            else:
                score = self.box_score_slow(pred, contour)

            if score < self.box_thresh:
                continue

            box = self.unclip(points, self.unclip_ratio).reshape(-1, 1, 2)
            box, sside = self.get_mini_boxes(box)

            if sside < self.min_size + 2:
                continue

            box = np.array(box)
            box[:, 0] = np.clip(np.round(box[:, 0] / width * dest_width), 0, dest_width - 1)
            box[:, 1] = np.clip(np.round(box[:, 1] / height * dest_height), 0, dest_height - 1)
            boxes.append(box.astype("float32"))
            scores.append(float(score))

        return boxes, scores

    def unclip(self, box: np.ndarray, unclip_ratio: float) -> np.ndarray:
        """Expand box by area * ratio / perimeter with round joints."""
        poly = Polygon(box)
        if poly.length < 1e-6:
            return box

        distance = poly.area * unclip_ratio / poly.length

        # Clipper works on integers; scale up to keep sub-pixel precision
        scale = 1000.0
        path = (np.asarray(box, dtype=np.float64) * scale).astype(np.int64).tolist()

        offset = pyclipper.PyclipperOffset()
        offset.AddPath(path, pyclipper.JT_ROUND, pyclipper.ET_CLOSEDPOLYGON)
        solution = offset.Execute(distance * scale)

        if not solution or not solution[0]:
            return box
        return np.array(solution[0], dtype=np.float64) / scale

    def get_mini_boxes(self, contour):
        """Get minimum area rectangle, ordered clockwise from top-left."""
        contour = np.asarray(contour, dtype=np.float32)
        bounding_box = cv2.minAreaRect(contour)
        points = sorted(list(cv2.boxPoints(bounding_box)), key=lambda x: x[0])

        if points[1][1] > points[0][1]:
            index_1, index_4 = 0, 1
        else:
            index_1, index_4 = 1, 0

        if points[3][1] > points[2][1]:
            index_2, index_3 = 2, 3
        else:
            index_2, index_3 = 3, 2

        box = [points[index_1], points[index_2], points[index_3], points[index_4]]
        return box, min(bounding_box[1])

    def box_score_fast(self, bitmap, box):
        """Mean probability inside the box polygon."""
        h, w = bitmap.shape[:2]
        box = box.copy()

        xmin = np.clip(np.floor(box[:, 0].min()).astype("int32"), 0, w - 1)
        xmax = np.clip(np.ceil(box[:, 0].max()).astype("int32"), 0, w - 1)
        ymin = np.clip(np.floor(box[:, 1].min()).astype("int32"), 0, h - 1)
        ymax = np.clip(np.ceil(box[:, 1].max()).astype("int32"), 0, h - 1)

        mask = np.zeros((ymax - ymin + 1, xmax - xmin + 1), dtype=np.uint8)
        box[:, 0] = box[:, 0] - xmin
        box[:, 1] = box[:, 1] - ymin
        cv2.fillPoly(mask, box.reshape(1, -1, 2).astype("int32"), 1)
        return cv2.mean(bitmap[ymin:ymax + 1, xmin:xmax + 1], mask)[0]

    def box_score_slow(self, bitmap, contour):
        """Mean probability inside the original contour."""
        h, w = bitmap.shape[:2]
        contour = np.reshape(contour.copy(), (-1, 2)).astype(np.float32)

        xmin = np.clip(np.min(contour[:, 0]), 0, w - 1).astype("int32")
        xmax = np.clip(np.max(contour[:, 0]), 0, w - 1).astype("int32")
        ymin = np.clip(np.min(contour[:, 1]), 0, h - 1).astype("int32")
        ymax = np.clip(np.max(contour[:, 1]), 0, h - 1).astype("int32")

        mask = np.zeros((ymax - ymin + 1, xmax - xmin + 1), dtype=np.uint8)
        contour[:, 0] = contour[:, 0] - xmin
        contour[:, 1] = contour[:, 1] - ymin
        cv2.fillPoly(mask, contour.reshape(1, -1, 2).astype("int32"), 1)
        return cv2.mean(bitmap[ymin:ymax + 1, xmin:xmax + 1], mask)[0]


class ClsPostProcess:
    """Post-processing for text orientation classification."""

    def __init__(self, label_list=None):
        self.label_list = label_list if label_list else ['0', '180']

    def __call__(self, preds: np.ndarray) -> List[Tuple[str, float]]:
        """Convert probabilities (N, num_classes) to (label, score) pairs."""
        pred_idxs = preds.argmax(axis=1)
        decode_out = []
        for i, idx in enumerate(pred_idxs):
            label = self.label_list[idx] if idx < len(self.label_list) else str(idx)
            decode_out.append((label, float(preds[i, idx])))
        return decode_out


class CTCLabelDecode:
    """CTC decoding for text recognition."""

    def __init__(self, character_list: Optional[Sequence[str]] = None,
                 character_dict_path=None, use_space_char=True):
        """Initialize CTC decoder.

        Args:
            character_list: Dictionary entries, e.g. from model metadata
            character_dict_path: Path to character dictionary file, used
                when ``character_list`` is None
            use_space_char: Append the space character to the vocabulary
        """
        if character_list is not None:
            character_str = list(character_list)
        elif character_dict_path is not None:
            character_str = self.read_character_file(character_dict_path)
        else:
            character_str = list("0123456789abcdefghijklmnopqrstuvwxyz")

        if use_space_char:
            character_str.append(" ")

        # Index 0 is the CTC blank
        dict_character = ["blank"] + character_str

        self.dict = {char: i for i, char in enumerate(dict_character)}
        self.character = dict_character

    @staticmethod
    def read_character_file(path) -> List[str]:
        character_str = []
        with open(path, "rb") as fin:
            for line in fin.readlines():
                line = line.decode("utf-8").rstrip("\r\n")
                if line:
                    character_str.append(line)
        return character_str

    def get_ignored_tokens(self) -> List[int]:
        return [0]

    def __call__(self, preds, return_word_box=False, wh_ratio_list=None, max_wh_ratio=1.0):
        """Decode CTC predictions to text.

        Args:
            preds: Prediction array [batch, time, num_classes]
            return_word_box: Also build per-line ``WordInfo``
            wh_ratio_list: Width/height ratio of each input image
            max_wh_ratio: Ratio the batch was padded to

        Returns:
            (list of (text, confidence), list of WordInfo or empty list)
        """
        if isinstance(preds, (tuple, list)):
            preds = preds[-1]

        preds_idx = preds.argmax(axis=2)
        preds_prob = preds.max(axis=2)
        return self.decode(
            preds_idx, preds_prob,
            return_word_box=return_word_box,
            wh_ratio_list=wh_ratio_list,
            max_wh_ratio=max_wh_ratio,
            is_remove_duplicate=True,
        )

    def decode(self, text_index, text_prob=None, return_word_box=False,
               wh_ratio_list=None, max_wh_ratio=1.0, is_remove_duplicate=False):
        """Convert text indices to strings."""
        result_list = []
        word_list = []
        ignored_tokens = self.get_ignored_tokens()
        batch_size = len(text_index)

        for batch_idx in range(batch_size):
            token_indices = np.asarray(text_index[batch_idx])
            selection = np.ones(len(token_indices), dtype=bool)

            if is_remove_duplicate:
                selection[1:] = token_indices[1:] != token_indices[:-1]

            for ignored_token in ignored_tokens:
                selection &= token_indices != ignored_token

            char_list = [
                self.character[text_id]
                for text_id in token_indices[selection]
            ]

            if text_prob is not None:
                conf_list = np.round(np.asarray(text_prob[batch_idx])[selection], 5).tolist()
            else:
                conf_list = [1.0] * len(char_list)

            text = "".join(char_list)
            score = round(float(np.mean(conf_list)), 5) if conf_list else 0.0
            result_list.append((text, score))

            if return_word_box:
                word_info = self.get_word_info(char_list, selection, conf_list)
                wh_ratio = 1.0
                if wh_ratio_list is not None and batch_idx < len(wh_ratio_list):
                    wh_ratio = wh_ratio_list[batch_idx]
                word_info.line_txt_len = len(token_indices) * wh_ratio / max_wh_ratio
                word_info.confs = conf_list
                word_list.append(word_info)

        return result_list, word_list

    @staticmethod
    def get_word_info(
        char_list: List[str],
        selection: np.ndarray,
        conf_list: Optional[List[float]] = None,
    ) -> WordInfo:
        """Group decoded characters into words.

        A word ends at whitespace, at a switch between CJK and other
        characters, or where the column gap to the previous character is
        more than 5. Every CJK character is a word of its own.
        """
        word_info = WordInfo()
        valid_col = np.where(selection)[0]
        if len(valid_col) == 0 or not char_list:
            return word_info

        col_width = np.zeros(len(valid_col))
        col_width[1:] = valid_col[1:] - valid_col[:-1]
        first_col_width = 3 if is_cjk_char(char_list[0]) else 2
        col_width[0] = min(first_col_width, valid_col[0])

        word_content: List[str] = []
        word_col_content: List[int] = []
        word_conf_content: List[float] = []
        state = None

        def flush():
            if word_content:
                word_info.words.append(list(word_content))
                word_info.word_cols.append(list(word_col_content))
                word_info.word_types.append(state)
                word_info.word_confs.append(list(word_conf_content))
                word_content.clear()
                word_col_content.clear()
                word_conf_content.clear()

        for c_i, char in enumerate(char_list):
            if char.isspace():
                flush()
                continue

            c_state = WordType.CN if is_cjk_char(char) else WordType.EN_NUM
            if state is None:
                state = c_state

            if state != c_state or col_width[c_i] > 5 or c_state == WordType.CN:
                flush()
                state = c_state

            word_content.append(char)
            word_col_content.append(int(valid_col[c_i]))
            word_conf_content.append(conf_list[c_i] if conf_list else 1.0)

        flush()
        return word_info
