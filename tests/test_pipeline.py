"""
End-to-end tests for OCRPipeline with fake models.

Usage:
    pytest tests/test_pipeline.py -v
"""

import numpy as np
import pytest

from conftest import cls_session, det_session, rec_session
from page_ocr import OCRConfig, OCROutput
from page_ocr.errors import ConfigError, LoadImageError


def banded_image():
    """Three 96 px bands: black, white, mid gray."""
    img = np.zeros((288, 384, 3), dtype=np.uint8)
    img[96:192] = 255
    img[192:] = 128
    return img


def by_band(item):
    value = item[0, 24, 0]
    if value < -0.5:
        return ("abc", 0.9)
    if value > 0.5:
        return ("def", 0.5)
    return ("ghi", 0.7)


BAND_RECTS = [(38 + 96 * i, 58 + 96 * i, 48, 336) for i in range(3)]


class TestEndToEnd:

    def test_single_line(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect], return_word_box=True)
        result = ocr(line_image)

        assert isinstance(result, OCROutput)
        assert len(result) == 1
        assert result.txts == ("hello",)
        assert result.scores[0] == pytest.approx(0.95)
        assert len(result.elapse_list) == 3
        assert result.elapse == pytest.approx(sum(result.elapse_list))

        box = result.boxes[0]
        assert box.shape == (4, 2)
        assert box[:, 0].min() == pytest.approx(23, abs=3)
        assert box[:, 0].max() == pytest.approx(217, abs=3)
        assert box[:, 1].min() == pytest.approx(3, abs=3)
        assert box[:, 1].max() == pytest.approx(61, abs=3)

        assert len(result.word_results) == 1
        info = result.word_results[0]
        assert info.word_contents == ["hello"]
        assert len(info.word_boxes) == 1
        word_box = info.word_boxes[0]
        assert word_box[:, 0].min() >= box[:, 0].min() - 1
        assert word_box[:, 0].max() <= box[:, 0].max() + 1
        assert word_box[:, 1].min() >= 0 and word_box[:, 1].max() <= 63

    def test_recognize_alias(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect])
        assert ocr.recognize(line_image).txts == ("hello",)

    def test_score_filter(self, make_pipeline):
        ocr = make_pipeline(BAND_RECTS, rec=rec_session(by_band), text_score=0.6)
        result = ocr(banded_image())

        assert result.txts == ("abc", "ghi")
        assert result.scores == (pytest.approx(0.9), pytest.approx(0.7))
        assert len(result.boxes) == 2
        assert result.boxes[0][:, 1].mean() < 96
        assert result.boxes[1][:, 1].mean() > 192

    def test_lines_in_reading_order(self, make_pipeline):
        ocr = make_pipeline(BAND_RECTS, rec=rec_session(by_band), text_score=0.0)
        result = ocr(banded_image())
        assert result.txts == ("abc", "def", "ghi")

    def test_blank_image_is_empty(self, make_pipeline, line_image):
        result = make_pipeline([])(line_image)

        assert result.is_empty()
        assert len(result) == 0
        assert result.boxes is None and result.txts is None and result.scores is None
        assert result.to_json() == []
        assert "(No text detected)" in result.to_markdown()

    def test_empty_text_dropped(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect], rec=rec_session(lambda item: ("", 0.0)))
        assert ocr(line_image).is_empty()

    def test_whitespace_text_dropped(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect], rec=rec_session(lambda item: ("  ", 0.9)))
        assert ocr(line_image).is_empty()

    def test_boxes_mapped_through_resize_and_padding(self, make_pipeline):
        # 128x2400 is shrunk to 96x1984 and then padded vertically
        def centered(h, w):
            return [(h // 2 - 8, h // 2 + 8, w // 4, 3 * w // 4)]

        img = np.full((128, 2400, 3), 200, dtype=np.uint8)
        result = make_pipeline(det=det_session(centered))(img)

        assert len(result) == 1
        box = result.boxes[0]
        assert box[:, 0].min() >= 0 and box[:, 0].max() <= 2399
        assert box[:, 1].min() >= 0 and box[:, 1].max() <= 127
        assert box[:, 0].mean() == pytest.approx(1200, abs=30)
        assert 30 < box[:, 1].mean() < 100

    def test_missing_file(self, make_pipeline, tmp_path):
        with pytest.raises(LoadImageError):
            make_pipeline([])(tmp_path / "missing.png")


class TestStageSwitches:

    def test_detection_disabled(self, make_pipeline, line_image):
        result = make_pipeline(use_det=False)(line_image)

        assert result.txts == ("hello",)
        np.testing.assert_allclose(
            result.boxes[0], [[0, 0], [255, 0], [255, 63], [0, 63]]
        )

    def test_detection_disabled_region_is_unpadded(self, make_pipeline):
        # Short and wide: the detection path would add black rows here
        img = np.full((20, 200, 3), 255, dtype=np.uint8)
        rec = rec_session()
        result = make_pipeline(rec=rec, use_det=False, use_cls=False)(img)

        # Resized to 32x288, so the crop's ratio is 9
        x = rec.inputs[0]
        assert x.shape == (1, 3, 48, 432)
        assert x.min() > 0.99
        np.testing.assert_allclose(
            result.boxes[0], [[0, 0], [199, 0], [199, 19], [0, 19]]
        )

    def test_recognition_disabled(self, make_pipeline, line_image, line_rect):
        result = make_pipeline([line_rect], use_rec=False)(line_image)

        assert result.txts is None
        assert len(result) == 1
        assert result.scores[0] > 0.5
        assert result.to_json()[0]["text"] is None

    def test_classification_only_is_empty(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect], use_det=False, use_rec=False)
        assert ocr(line_image).is_empty()

    def test_classification_disabled(self, make_pipeline, line_image, line_rect):
        cls = cls_session()
        ocr = make_pipeline([line_rect], cls=cls, use_cls=False)
        assert ocr(line_image).txts == ("hello",)
        assert cls.inputs == []


class TestUpdateParams:

    def test_text_score(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect])
        ocr.update_params(text_score=0.99)
        assert ocr(line_image).is_empty()

    def test_box_thresh(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect])
        ocr.update_params(box_thresh=0.95)
        assert ocr.text_det.postprocess_op.box_thresh == 0.95
        assert ocr(line_image).is_empty()

    def test_enable_stage_later(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect], use_cls=False)
        assert ocr.text_cls is None
        ocr.update_params(use_cls=True)
        assert ocr.text_cls is not None
        assert ocr(line_image).txts == ("hello",)

    def test_word_box_switch(self, make_pipeline, line_image, line_rect):
        ocr = make_pipeline([line_rect])
        assert ocr(line_image).word_results == ()
        ocr.update_params(return_word_box=True)
        assert len(ocr(line_image).word_results) == 1

    def test_invalid_value_rejected(self, make_pipeline, line_rect):
        ocr = make_pipeline([line_rect])
        with pytest.raises(ConfigError):
            ocr.update_params(text_score=2.0)
        assert ocr.config.text_score == 0.5

    def test_config_object(self, make_pipeline, line_image, line_rect):
        config = OCRConfig.from_dict({"text_score": 0.99})
        assert make_pipeline([line_rect], config=config)(line_image).is_empty()
