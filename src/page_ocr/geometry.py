"""Geometry and resampling helpers shared by the OCR stages.

Every transform the pipeline applies to the working image before detection
is logged in an :class:`OpRecord`; :func:`map_boxes_to_original` replays the
record backwards to put boxes back on the caller's pixel grid.
"""

import functools
from dataclasses import dataclass
from typing import Iterator, List, Tuple, Union

import cv2
import numpy as np

from .errors import ResizeImgError


@dataclass(frozen=True)
class ResizeOp:
    """Resize with ratios original / resized, per axis."""
    ratio_h: float
    ratio_w: float


@dataclass(frozen=True)
class PaddingOp:
    """Constant border added on the top (and bottom) and left (and right)."""
    top: int
    left: int


Op = Union[ResizeOp, PaddingOp]


class OpRecord:
    """Ordered log of forward transforms applied to the working image."""

    def __init__(self):
        self._ops: List[Op] = []

    def append(self, op: Op) -> None:
        if not isinstance(op, (ResizeOp, PaddingOp)):
            raise TypeError(f"Unsupported operation: {op!r}")
        self._ops.append(op)

    def __iter__(self) -> Iterator[Op]:
        return iter(self._ops)

    def __reversed__(self) -> Iterator[Op]:
        return reversed(self._ops)

    def __len__(self):
        return len(self._ops)

    def __repr__(self):
        return f"OpRecord({self._ops!r})"


def _round_to_32(value: float) -> int:
    return int(round(value / 32) * 32)


def _resize(img: np.ndarray, ratio: float) -> np.ndarray:
    h, w = img.shape[:2]
    resize_h = _round_to_32(int(h * ratio))
    resize_w = _round_to_32(int(w * ratio))

    if resize_h <= 0 or resize_w <= 0:
        raise ResizeImgError("resize_w or resize_h is less than or equal to 0")

    try:
        return cv2.resize(img, (resize_w, resize_h))
    except cv2.error as e:
        raise ResizeImgError(str(e)) from e


def reduce_max_side(img: np.ndarray, max_side_len: float) -> np.ndarray:
    h, w = img.shape[:2]
    ratio = 1.0
    if max(h, w) > max_side_len:
        ratio = float(max_side_len) / (h if h > w else w)
    return _resize(img, ratio)


def increase_min_side(img: np.ndarray, min_side_len: float) -> np.ndarray:
    h, w = img.shape[:2]
    ratio = 1.0
    if min(h, w) < min_side_len:
        ratio = float(min_side_len) / (h if h < w else w)
    return _resize(img, ratio)


def resize_image_within_bounds(
    img: np.ndarray,
    min_side_len: float,
    max_side_len: float,
) -> Tuple[np.ndarray, float, float]:
    """Keep both sides of ``img`` within [min_side_len, max_side_len].

    Resized dimensions are multiples of 32. The returned ratios are
    original / resized for each axis and already account for both steps.

    Raises:
        ResizeImgError: if a target dimension rounds to zero
    """
    src_h, src_w = img.shape[:2]
    resized = img

    if max(src_h, src_w) > max_side_len:
        resized = reduce_max_side(resized, max_side_len)

    h, w = resized.shape[:2]
    if min(h, w) < min_side_len:
        resized = increase_min_side(resized, min_side_len)

    h, w = resized.shape[:2]
    return resized, src_h / float(h), src_w / float(w)


def get_padding_h(h: int, w: int, width_height_ratio: float, min_height: float) -> int:
    new_h = max(w / width_height_ratio, min_height) * 2
    return int(abs(new_h - h) / 2)


def apply_vertical_padding(
    img: np.ndarray,
    width_height_ratio: float,
    min_height: float,
) -> Tuple[np.ndarray, int, int]:
    """Pad short or very wide images top and bottom with black rows.

    Returns:
        (image, padding_top, padding_left). Images that need no padding are
        returned as a copy with zero offsets.
    """
    h, w = img.shape[:2]
    use_limit_ratio = width_height_ratio != -1 and w / h > width_height_ratio

    if h <= min_height or use_limit_ratio:
        padding_h = get_padding_h(h, w, width_height_ratio, min_height)
        padded = cv2.copyMakeBorder(
            img, padding_h, padding_h, 0, 0,
            cv2.BORDER_CONSTANT, value=(0, 0, 0)
        )
        return padded, padding_h, 0

    return img.copy(), 0, 0


def get_crop_size(points: np.ndarray) -> Tuple[int, int]:
    """Width and height of the rectangle a quad is warped onto."""
    img_crop_width = int(
        max(
            np.linalg.norm(points[0] - points[1]),
            np.linalg.norm(points[2] - points[3])
        )
    )
    img_crop_height = int(
        max(
            np.linalg.norm(points[0] - points[3]),
            np.linalg.norm(points[1] - points[2])
        )
    )
    return img_crop_width, img_crop_height


def is_vertical_crop(crop_width: int, crop_height: int) -> bool:
    return crop_height * 1.0 / crop_width >= 1.5


def get_rotate_crop_image(img: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Crop and rotate text region from image.

    Args:
        img: Source image
        points: Text region points (4x2 array), clockwise from top-left

    Returns:
        Cropped text image; tall crops are rotated 90 degrees
        counter-clockwise so the text runs horizontally.
    """
    points = np.asarray(points, dtype=np.float32)
    img_crop_width, img_crop_height = get_crop_size(points)
    if img_crop_width <= 0 or img_crop_height <= 0:
        raise ResizeImgError(
            f"Degenerate crop of size {img_crop_width}x{img_crop_height}"
        )

    pts_std = np.float32([
        [0, 0],
        [img_crop_width, 0],
        [img_crop_width, img_crop_height],
        [0, img_crop_height]
    ])

    M = cv2.getPerspectiveTransform(points, pts_std)
    dst_img = cv2.warpPerspective(
        img,
        M,
        (img_crop_width, img_crop_height),
        borderMode=cv2.BORDER_REPLICATE,
        flags=cv2.INTER_CUBIC
    )

    dst_img_height, dst_img_width = dst_img.shape[0:2]
    if is_vertical_crop(dst_img_width, dst_img_height):
        dst_img = np.rot90(dst_img)

    return np.ascontiguousarray(dst_img)


def map_boxes_to_original(
    boxes: np.ndarray,
    op_record: OpRecord,
    ori_h: int,
    ori_w: int,
) -> np.ndarray:
    """Undo the recorded transforms, last first, and clamp to the image.

    Args:
        boxes: Array of shape (N, 4, 2) in the working image frame
        op_record: Transforms applied to produce the working image
        ori_h, ori_w: Size of the caller's image

    Returns:
        Float32 array of shape (N, 4, 2) in the caller's frame
    """
    boxes = np.array(boxes, dtype=np.float32).reshape(-1, 4, 2)

    for op in reversed(op_record):
        if isinstance(op, PaddingOp):
            boxes[..., 0] -= op.left
            boxes[..., 1] -= op.top
        elif isinstance(op, ResizeOp):
            boxes[..., 0] *= op.ratio_w
            boxes[..., 1] *= op.ratio_h
        else:
            raise TypeError(f"No inverse for operation: {op!r}")

    boxes[..., 0] = np.clip(boxes[..., 0], 0, ori_w - 1)
    boxes[..., 1] = np.clip(boxes[..., 1], 0, ori_h - 1)
    return boxes


def order_points_clockwise(pts: np.ndarray) -> np.ndarray:
    """Order 4 points as top-left, top-right, bottom-right, bottom-left.

    The two smallest x form the left side and the two largest the right;
    within each side the smaller y is the top.
    """
    pts = np.asarray(pts, dtype=np.float32).reshape(4, 2)
    x_sorted = pts[np.argsort(pts[:, 0], kind="stable")]

    left_most = x_sorted[:2]
    right_most = x_sorted[2:]
    left_most = left_most[np.argsort(left_most[:, 1], kind="stable")]
    right_most = right_most[np.argsort(right_most[:, 1], kind="stable")]

    return np.array(
        [left_most[0], right_most[0], right_most[1], left_most[1]],
        dtype=np.float32
    )


def clip_det_res(points: np.ndarray, img_height: int, img_width: int) -> np.ndarray:
    """Clip points to image boundaries."""
    points = points.copy()
    points[:, 0] = np.clip(points[:, 0], 0, img_width - 1)
    points[:, 1] = np.clip(points[:, 1], 0, img_height - 1)
    return points


def _compare_reading_order(a: np.ndarray, b: np.ndarray) -> int:
    if abs(a[0][1] - b[0][1]) < 10:
        return int(np.sign(a[0][0] - b[0][0]))
    return int(np.sign(a[0][1] - b[0][1]))


def reading_order(dt_boxes: List[np.ndarray]) -> List[int]:
    """Indices of ``dt_boxes`` from top to bottom, left to right.

    Boxes whose top-left corners are less than 10 px apart vertically are
    treated as one row and ordered by x.
    """
    order = sorted(
        range(len(dt_boxes)),
        key=functools.cmp_to_key(
            lambda i, j: _compare_reading_order(dt_boxes[i], dt_boxes[j])
        )
    )

    for i in range(len(order) - 1):
        for j in range(i, -1, -1):
            upper, lower = dt_boxes[order[j]], dt_boxes[order[j + 1]]
            if abs(lower[0][1] - upper[0][1]) < 10 and lower[0][0] < upper[0][0]:
                order[j], order[j + 1] = order[j + 1], order[j]
            else:
                break

    return order


def sorted_boxes(dt_boxes: List[np.ndarray]) -> List[np.ndarray]:
    """Sort text boxes into reading order; returns a new list."""
    return [dt_boxes[i] for i in reading_order(dt_boxes)]


def quads_to_rect_bbox(bbox: np.ndarray) -> Tuple[float, float, float, float]:
    """Axis-aligned (x_min, y_min, x_max, y_max) around one or more quads."""
    bbox = np.asarray(bbox, dtype=np.float32)
    if bbox.ndim == 2:
        bbox = bbox[None, ...]
    if bbox.ndim != 3 or bbox.shape[1:] != (4, 2):
        raise ValueError(f"bbox shape must be (N, 4, 2), got {bbox.shape}")

    x_min, y_min = bbox[..., 0].min(), bbox[..., 1].min()
    x_max, y_max = bbox[..., 0].max(), bbox[..., 1].max()
    return float(x_min), float(y_min), float(x_max), float(y_max)
