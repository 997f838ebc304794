"""Word and character boxes for recognized lines.

Recognition works on a rectified crop of each detected quad. The CTC
column of every kept character gives its horizontal position inside that
crop; :class:`CalRecBoxes` turns those positions into boxes and warps them
back onto the image the crops were cut from.
"""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .geometry import (
    get_crop_size,
    is_vertical_crop,
    order_points_clockwise,
    quads_to_rect_bbox,
)
from .output import WordInfo, WordType

BBox = Tuple[float, float, float, float]


class CalRecBoxes:
    """Compute word or single-character boxes for each recognized line."""

    def __call__(
        self,
        imgs: Sequence[np.ndarray],
        dt_boxes: Sequence[np.ndarray],
        txts: Sequence[str],
        word_results: Sequence[WordInfo],
        return_single_char_box: bool = False,
        rotated_180: Optional[Sequence[bool]] = None,
    ) -> List[WordInfo]:
        """Fill ``word_boxes``, ``word_contents`` and ``word_scores``.

        Args:
            imgs: Crops given to the recognizer
            dt_boxes: Detection quads the crops were cut from
            txts: Recognized text per crop
            word_results: Word segmentation per crop
            return_single_char_box: Emit one box per character even for
                purely alphanumeric lines
            rotated_180: Per crop, whether the classifier turned it upside
                down after it was cut

        Returns:
            New ``WordInfo`` objects; boxes are on the grid of ``dt_boxes``
        """
        results = []
        if rotated_180 is None:
            rotated_180 = [False] * len(imgs)

        for img, box, txt, word_info, flipped in zip(
            imgs, dt_boxes, txts, word_results, rotated_180
        ):
            h, w = img.shape[:2]
            img_box = np.array([[0, 0], [w, 0], [w, h], [0, h]], dtype=np.float32)

            contents, word_box_list, scores = self.cal_ocr_word_box(
                txt, img_box, word_info, return_single_char_box
            )
            word_box_list = self.adjust_box_overlap(word_box_list)
            if flipped:
                # Undo the 180 degree turn; corners are reordered below
                size = np.array([w, h], dtype=np.float32)
                word_box_list = [size - b for b in word_box_list]
            word_box_list = self.reverse_rotate_crop_image(box, word_box_list)

            results.append(WordInfo(
                words=word_info.words,
                word_cols=word_info.word_cols,
                word_types=word_info.word_types,
                line_txt_len=word_info.line_txt_len,
                confs=word_info.confs,
                word_confs=word_info.word_confs,
                word_boxes=word_box_list,
                word_contents=contents,
                word_scores=scores,
            ))
        return results

    def cal_ocr_word_box(
        self,
        rec_txt: str,
        bbox: np.ndarray,
        word_info: WordInfo,
        return_single_char_box: bool = False,
    ) -> Tuple[List[str], List[np.ndarray], List[float]]:
        """Boxes in the crop frame, with their text and confidence."""
        if not rec_txt or word_info.line_txt_len == 0 or not word_info.words:
            return [], [], []

        bbox_points = quads_to_rect_bbox(bbox[None, ...])
        x0, _, x1, _ = bbox_points
        avg_col_width = (x1 - x0) / word_info.line_txt_len

        is_all_en_num = all(t == WordType.EN_NUM for t in word_info.word_types)
        merge_words = is_all_en_num and not return_single_char_box

        line_cols: List[List[int]] = []
        contents: List[str] = []
        scores: List[float] = []
        char_widths: List[float] = []

        for i, (word, word_col) in enumerate(zip(word_info.words, word_info.word_cols)):
            word_confs = word_info.word_confs[i] if i < len(word_info.word_confs) else []

            if merge_words:
                line_cols.append(list(word_col))
                contents.append("".join(word))
                scores.append(_mean(word_confs))
            else:
                for j, (char, col) in enumerate(zip(word, word_col)):
                    line_cols.append([col])
                    contents.append(char)
                    scores.append(float(word_confs[j]) if j < len(word_confs) else 0.0)

            if len(word_col) > 1:
                char_widths.append(self.calc_avg_char_width(word_col, avg_col_width))

        avg_char_width = self.calc_all_char_avg_width(char_widths, x0, x1, len(rec_txt))

        word_boxes = []
        for cols in line_cols:
            cells = self.calc_box(cols, avg_char_width, avg_col_width, bbox_points)
            if merge_words:
                word_boxes.append(_merge_cells(cells))
            else:
                word_boxes.append(cells[0])

        return contents, word_boxes, scores

    @staticmethod
    def calc_box(
        line_cols: List[int],
        avg_char_width: float,
        avg_col_width: float,
        bbox_points: BBox,
    ) -> List[np.ndarray]:
        """One cell per column, centered on the column, sorted by x."""
        x0, y0, x1, y1 = bbox_points

        results = []
        for col_idx in line_cols:
            center_x = (col_idx + 0.5) * avg_col_width

            char_x0 = max(int(center_x - avg_char_width / 2), 0) + int(x0)
            char_x1 = min(int(center_x + avg_char_width / 2), int(x1 - x0)) + int(x0)
            results.append(np.array([
                [char_x0, int(y0)],
                [char_x1, int(y0)],
                [char_x1, int(y1)],
                [char_x0, int(y1)],
            ], dtype=np.float32))

        results.sort(key=lambda cell: cell[0][0])
        return results

    @staticmethod
    def calc_avg_char_width(word_col: List[int], each_col_width: float) -> float:
        if len(word_col) <= 1:
            return each_col_width
        char_total_length = (word_col[-1] - word_col[0]) * each_col_width
        return char_total_length / (len(word_col) - 1)

    @staticmethod
    def calc_all_char_avg_width(
        width_list: List[float], bbox_x0: float, bbox_x1: float, txt_len: int
    ) -> float:
        if txt_len == 0:
            return 0.0
        if width_list:
            return sum(width_list) / len(width_list)
        return (bbox_x1 - bbox_x0) / txt_len

    @staticmethod
    def adjust_box_overlap(word_box_list: List[np.ndarray]) -> List[np.ndarray]:
        """Split the overlap of adjacent boxes evenly between them."""
        boxes = [np.array(box, dtype=np.float32) for box in word_box_list]
        for i in range(len(boxes) - 1):
            cur, nxt = boxes[i], boxes[i + 1]
            if cur[1][0] > nxt[0][0]:
                distance = abs(cur[1][0] - nxt[0][0])
                half = distance / 2
                cur[1][0] -= int(half)
                cur[2][0] -= int(half)
                nxt[0][0] += int(distance - half)
                nxt[3][0] += int(distance - half)
        return boxes

    @staticmethod
    def reverse_rotate_crop_image(
        bbox_points: np.ndarray, word_points_list: List[np.ndarray]
    ) -> List[np.ndarray]:
        """Map boxes from the crop frame back through the crop's warp."""
        if not word_points_list:
            return []

        bbox = np.array(bbox_points, dtype=np.float32).reshape(4, 2)
        left = float(bbox[:, 0].min())
        top = float(bbox[:, 1].min())
        bbox[:, 0] -= left
        bbox[:, 1] -= top

        img_crop_width, img_crop_height = get_crop_size(bbox)
        vertical = is_vertical_crop(img_crop_width, img_crop_height)

        pts_std = np.float32([
            [0, 0],
            [img_crop_width, 0],
            [img_crop_width, img_crop_height],
            [0, img_crop_height],
        ])
        M = cv2.getPerspectiveTransform(bbox, pts_std)
        IM = np.linalg.inv(M)

        new_word_points_list = []
        for word_points in word_points_list:
            points = np.array(word_points, dtype=np.float64).reshape(4, 2)
            if vertical:
                # Crop was turned 90 degrees counter-clockwise
                points = np.stack(
                    [img_crop_width - points[:, 1], points[:, 0]], axis=1
                )

            warped = cv2.perspectiveTransform(points.reshape(-1, 1, 2), IM)
            warped = warped.reshape(4, 2)
            warped[:, 0] += left
            warped[:, 1] += top
            new_word_points_list.append(order_points_clockwise(warped))

        return new_word_points_list


def _merge_cells(cells: List[np.ndarray]) -> np.ndarray:
    stacked = np.concatenate(cells, axis=0)
    min_x, min_y = stacked.min(axis=0)
    max_x, max_y = stacked.max(axis=0)
    return np.array([
        [min_x, min_y],
        [max_x, min_y],
        [max_x, max_y],
        [min_x, max_y],
    ], dtype=np.float32)


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return round(float(np.mean(values)), 5)
