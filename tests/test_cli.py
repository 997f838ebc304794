"""
Tests for the page-ocr command line entry point.

The pipeline is swapped for one built on fake sessions, so the CLI runs end
to end on a small generated image.

Usage:
    pytest tests/test_cli.py -v
"""

import json

import numpy as np
import pytest
from PIL import Image

from page_ocr import cli
from page_ocr.config import OCRConfig
from page_ocr.pipeline import OCRPipeline

from conftest import cls_session, det_session, rec_session


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "line.png"
    Image.fromarray(np.full((64, 256, 3), 255, dtype=np.uint8)).save(path)
    return path


@pytest.fixture
def fake_pipeline(monkeypatch):
    configs = []

    def build(config):
        configs.append(config)
        return OCRPipeline(
            config,
            det_model=det_session([(20, 44, 40, 200)]),
            cls_model=cls_session(),
            rec_model=rec_session(),
        )

    monkeypatch.setattr(cli, "OCRPipeline", build)
    return configs


class TestConfigFromArgs:

    def test_defaults(self):
        args = cli.build_parser().parse_args(["x.png"])
        config = cli.config_from_args(args)
        assert config == OCRConfig()

    def test_switches_and_thresholds(self):
        args = cli.build_parser().parse_args([
            "x.png", "--no-cls", "--word-box", "--single-char-box",
            "--text-score", "0.7", "--box-thresh", "0.6", "--unclip-ratio", "2.0",
        ])
        config = cli.config_from_args(args)
        assert config.use_det and config.use_rec
        assert not config.use_cls
        assert config.return_word_box and config.return_single_char_box
        assert config.text_score == 0.7
        assert config.det.box_thresh == 0.6
        assert config.det.unclip_ratio == 2.0


class TestMain:

    def test_json_output(self, image_path, fake_pipeline, capsys):
        assert cli.main([str(image_path)]) == 0

        records = json.loads(capsys.readouterr().out)
        assert len(records) == 1
        assert records[0]["text"] == "hello"
        assert len(records[0]["box"]) == 4
        assert "words" not in records[0]

    def test_word_boxes(self, image_path, fake_pipeline, capsys):
        assert cli.main([str(image_path), "--word-box"]) == 0

        records = json.loads(capsys.readouterr().out)
        words = records[0]["words"]
        assert [w["text"] for w in words] == ["hello"]
        assert len(words[0]["box"]) == 4
        assert fake_pipeline[0].return_word_box

    def test_markdown_output(self, image_path, fake_pipeline, capsys):
        assert cli.main([str(image_path), "--format", "markdown"]) == 0

        out = capsys.readouterr().out
        assert out.startswith("| Text | Box |")
        assert "| hello |" in out

    def test_visualisation(self, image_path, fake_pipeline, tmp_path):
        vis_path = tmp_path / "vis.png"
        assert cli.main([str(image_path), "--vis", str(vis_path)]) == 0
        assert vis_path.exists()

    def test_missing_input(self, tmp_path, fake_pipeline, capsys):
        assert cli.main([str(tmp_path / "nope.png")]) == 1
        assert "not found" in capsys.readouterr().err
        assert fake_pipeline == []

    def test_invalid_option_reports_error(self, image_path, fake_pipeline, capsys):
        assert cli.main([str(image_path), "--text-score", "3"]) == 1
        assert "text_score" in capsys.readouterr().err
