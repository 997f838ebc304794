"""
Unit tests for geometry helpers: resizing, padding, cropping, box mapping
and reading order.

Usage:
    pytest tests/test_geometry.py -v
"""

import itertools

import numpy as np
import pytest

from page_ocr.errors import ResizeImgError
from page_ocr.geometry import (
    OpRecord,
    PaddingOp,
    ResizeOp,
    apply_vertical_padding,
    clip_det_res,
    get_crop_size,
    get_rotate_crop_image,
    map_boxes_to_original,
    order_points_clockwise,
    quads_to_rect_bbox,
    reading_order,
    resize_image_within_bounds,
    sorted_boxes,
)


def quad(x0, y0, x1, y1):
    return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float32)


# =============================================================================
# Resizing
# =============================================================================

class TestResizeWithinBounds:

    def test_in_bounds_image_untouched(self):
        img = np.zeros((64, 256, 3), dtype=np.uint8)
        out, ratio_h, ratio_w = resize_image_within_bounds(img, 30, 2000)
        assert out.shape == img.shape
        assert ratio_h == 1.0
        assert ratio_w == 1.0

    def test_large_image_reduced_to_multiples_of_32(self):
        img = np.zeros((4000, 1000, 3), dtype=np.uint8)
        out, ratio_h, ratio_w = resize_image_within_bounds(img, 30, 2000)
        h, w = out.shape[:2]
        assert h % 32 == 0 and w % 32 == 0
        assert max(h, w) <= 2000
        assert ratio_h == pytest.approx(4000 / h)
        assert ratio_w == pytest.approx(1000 / w)

    def test_small_image_enlarged(self):
        img = np.zeros((10, 100, 3), dtype=np.uint8)
        out, ratio_h, ratio_w = resize_image_within_bounds(img, 30, 2000)
        assert out.shape[:2] == (32, 288)
        assert ratio_h == pytest.approx(10 / 32)
        assert ratio_w == pytest.approx(100 / 288)

    def test_resize_to_zero_raises(self):
        img = np.zeros((10, 5000, 3), dtype=np.uint8)
        with pytest.raises(ResizeImgError):
            resize_image_within_bounds(img, 30, 2000)


# =============================================================================
# Padding
# =============================================================================

class TestVerticalPadding:

    def test_short_image_padded(self):
        img = np.full((20, 100, 3), 255, dtype=np.uint8)
        out, top, left = apply_vertical_padding(img, 8, 30)
        assert top == 20
        assert left == 0
        assert out.shape == (60, 100, 3)
        assert out[:20].max() == 0
        assert out[20:40].min() == 255

    def test_wide_image_padded(self):
        img = np.zeros((40, 800, 3), dtype=np.uint8)
        out, top, _ = apply_vertical_padding(img, 8, 30)
        assert top == 80
        assert out.shape[0] == 200

    def test_ratio_limit_disabled(self):
        img = np.zeros((40, 800, 3), dtype=np.uint8)
        out, top, left = apply_vertical_padding(img, -1, 30)
        assert (top, left) == (0, 0)
        assert out.shape == img.shape

    def test_no_padding_returns_copy(self):
        img = np.zeros((64, 256, 3), dtype=np.uint8)
        out, top, left = apply_vertical_padding(img, 8, 30)
        assert (top, left) == (0, 0)
        assert out is not img
        np.testing.assert_array_equal(out, img)


# =============================================================================
# Operation record and mapping
# =============================================================================

class TestMapBoxes:

    def test_round_trip_within_one_pixel(self):
        # 20x700 is grown to 32x1056, then padded top and bottom
        ori = np.full((20, 700, 3), 255, dtype=np.uint8)
        resized, ratio_h, ratio_w = resize_image_within_bounds(ori, 30, 2000)
        padded, top, left = apply_vertical_padding(resized, 8, 30)
        assert resized.shape[:2] == (32, 1056)
        assert top > 0

        record = OpRecord()
        record.append(ResizeOp(ratio_h, ratio_w))
        record.append(PaddingOp(top, left))

        original = np.array([quad(100, 5, 300, 15), quad(7, 3, 650, 19)])
        working = original.copy()
        working[..., 0] = working[..., 0] / ratio_w + left
        working[..., 1] = working[..., 1] / ratio_h + top
        assert working[..., 1].max() < padded.shape[0]

        mapped = map_boxes_to_original(working, record, 20, 700)
        assert np.abs(mapped - original).max() <= 1.0

    def test_marked_region_maps_back(self):
        ori = np.full((20, 700, 3), 255, dtype=np.uint8)
        ori[5:16, 100:301] = (0, 0, 255)
        resized, ratio_h, ratio_w = resize_image_within_bounds(ori, 30, 2000)
        padded, top, left = apply_vertical_padding(resized, 8, 30)

        record = OpRecord()
        record.append(ResizeOp(ratio_h, ratio_w))
        record.append(PaddingOp(top, left))

        # Red survives resizing; white background and black padding do not match
        mask = (padded[..., 2] > 128) & (padded[..., 0] < 128)
        ys, xs = np.nonzero(mask)
        found = quad(xs.min(), ys.min(), xs.max(), ys.max())

        mapped = map_boxes_to_original(found, record, 20, 700)
        assert np.abs(mapped[0] - quad(100, 5, 300, 15)).max() <= 2.0

    def test_clamped_to_image(self):
        record = OpRecord()
        record.append(ResizeOp(1.0, 1.0))
        record.append(PaddingOp(5, 0))
        mapped = map_boxes_to_original(quad(-10, 0, 500, 300), record, 100, 200)
        assert mapped[..., 0].min() == 0
        assert mapped[..., 0].max() == 199
        assert mapped[..., 1].min() == 0
        assert mapped[..., 1].max() == 99

    def test_unknown_operation_rejected(self):
        record = OpRecord()
        with pytest.raises(TypeError):
            record.append("rotate")

    def test_record_order(self):
        record = OpRecord()
        ops = [ResizeOp(1.0, 1.0), PaddingOp(3, 0)]
        for op in ops:
            record.append(op)
        assert list(record) == ops
        assert list(reversed(record)) == ops[::-1]
        assert len(record) == 2


# =============================================================================
# Box canonicalisation and ordering
# =============================================================================

class TestBoxes:

    def test_order_points_clockwise(self):
        shuffled = np.array([[100, 50], [10, 10], [10, 50], [100, 10]], dtype=np.float32)
        ordered = order_points_clockwise(shuffled)
        np.testing.assert_array_equal(ordered, quad(10, 10, 100, 50))

    def test_canonicalisation_idempotent(self):
        box = np.array([[30, 5], [90, 12], [85, 40], [25, 33]], dtype=np.float32)
        once = order_points_clockwise(box)
        twice = order_points_clockwise(once)
        np.testing.assert_array_equal(once, twice)

    def test_clip_det_res_does_not_modify_input(self):
        box = quad(-5, -5, 50, 50)
        clipped = clip_det_res(box, 40, 40)
        assert clipped.min() == 0
        assert clipped.max() == 39
        assert box.min() == -5

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_same_row_sorted_by_x(self, order):
        row = [quad(50, 100, 60, 110), quad(10, 104, 20, 114), quad(30, 108, 40, 118)]
        result = sorted_boxes([row[i] for i in order])
        assert [b[0][0] for b in result] == [10, 30, 50]

    def test_rows_sorted_top_to_bottom(self):
        boxes = [quad(0, 200, 10, 210), quad(50, 0, 60, 10), quad(5, 100, 15, 110)]
        assert reading_order(boxes) == [1, 2, 0]

    def test_empty(self):
        assert sorted_boxes([]) == []

    def test_quads_to_rect_bbox(self):
        boxes = np.array([quad(10, 20, 30, 40), quad(5, 25, 15, 60)])
        assert quads_to_rect_bbox(boxes) == (5.0, 20.0, 30.0, 60.0)
        with pytest.raises(ValueError):
            quads_to_rect_bbox(np.zeros((3, 2)))


# =============================================================================
# Cropping
# =============================================================================

class TestCrop:

    def test_horizontal_crop_size(self):
        img = np.zeros((100, 300, 3), dtype=np.uint8)
        crop = get_rotate_crop_image(img, quad(10, 20, 210, 60))
        assert crop.shape == (40, 200, 3)
        assert get_crop_size(quad(10, 20, 210, 60)) == (200, 40)

    def test_vertical_crop_rotated(self):
        img = np.zeros((300, 100, 3), dtype=np.uint8)
        crop = get_rotate_crop_image(img, quad(10, 10, 50, 210))
        assert crop.shape == (40, 200, 3)
        assert crop.flags["C_CONTIGUOUS"]

    def test_crop_content(self):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        img[20:40, 10:50] = 200
        crop = get_rotate_crop_image(img, quad(10, 20, 50, 40))
        assert crop[5:15, 5:35].min() == 200

    def test_degenerate_crop_raises(self):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        with pytest.raises(ResizeImgError):
            get_rotate_crop_image(img, quad(10, 10, 10, 50))
