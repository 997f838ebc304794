"""
Shared fixtures for page_ocr tests.

Every model is replaced by a ``FakeSession`` that computes its output from
the input tensor with plain numpy, so no model files are needed.

Usage:
    pytest tests/ -v
"""

import string
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pytest

from page_ocr.onnx_base import InferenceSession

ALPHABET = string.ascii_lowercase
# blank + a..z + space
NUM_CLASSES = len(ALPHABET) + 2
CTC_STEPS = 40


class FakeSession(InferenceSession):
    """Inference session backed by a python function."""

    def __init__(
        self,
        fn: Callable[[np.ndarray], np.ndarray],
        metadata: Optional[Dict[str, str]] = None,
    ):
        self.fn = fn
        self.metadata = dict(metadata or {})
        self.inputs: List[np.ndarray] = []

    @property
    def input_names(self):
        return ["x"]

    @property
    def output_names(self):
        return ["y"]

    def run(self, input_tensor):
        self.inputs.append(input_tensor)
        return [self.fn(input_tensor)]

    def has_metadata(self, key):
        return key in self.metadata

    def get_metadata_list(self, key):
        return self.metadata[key].splitlines()


class FailingSession(FakeSession):
    def __init__(self, metadata=None):
        super().__init__(lambda x: x, metadata)

    def run(self, input_tensor):
        raise RuntimeError("backend exploded")


# =============================================================================
# Detection
# =============================================================================

Rect = Tuple[int, int, int, int]  # y0, y1, x0, x1 on the detector input grid


def det_fn(rects, value: float = 0.9):
    """Probability map with ``value`` inside each rect.

    ``rects`` is a list of rects or a callable ``(h, w) -> rects``.
    """
    def fn(x):
        n, _, h, w = x.shape
        out = np.zeros((n, 1, h, w), dtype=np.float32)
        for y0, y1, x0, x1 in (rects(h, w) if callable(rects) else rects):
            out[:, 0, y0:y1, x0:x1] = value
        return out
    return fn


def det_session(rects, value: float = 0.9) -> FakeSession:
    return FakeSession(det_fn(rects, value))


# =============================================================================
# Classification
# =============================================================================

def cls_session(probs: Sequence[float] = (0.99, 0.01)) -> FakeSession:
    row = np.array(probs, dtype=np.float32)
    return FakeSession(lambda x: np.tile(row, (x.shape[0], 1)))


# =============================================================================
# Recognition
# =============================================================================

def ctc_row(text: str, conf: float = 0.95, steps: int = CTC_STEPS) -> np.ndarray:
    """CTC output emitting ``text`` at odd time steps, blank elsewhere."""
    row = np.zeros((steps, NUM_CLASSES), dtype=np.float32)
    row[:, 0] = 0.99
    for k, ch in enumerate(text):
        t = 2 * k + 1
        row[t, 0] = 0.0
        idx = NUM_CLASSES - 1 if ch == " " else ALPHABET.index(ch) + 1
        row[t, idx] = conf
    return row


def rec_session(
    chooser: Callable[[np.ndarray], Tuple[str, float]] = None,
    with_metadata: bool = True,
) -> FakeSession:
    """Recognizer whose output for each batch item is ``chooser(item)``."""
    if chooser is None:
        chooser = lambda item: ("hello", 0.95)  # noqa: E731

    def fn(x):
        return np.stack([ctc_row(*chooser(x[i])) for i in range(x.shape[0])])

    metadata = {"character": "\n".join(ALPHABET)} if with_metadata else {}
    return FakeSession(fn, metadata)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def line_image() -> np.ndarray:
    """64x256 white image; the fake detector marks one line on it."""
    return np.full((64, 256, 3), 255, dtype=np.uint8)


@pytest.fixture
def line_rect() -> Rect:
    return (20, 44, 40, 200)


@pytest.fixture
def make_pipeline():
    """Factory building an OCRPipeline around fake sessions."""
    from page_ocr import OCRConfig, OCRPipeline

    def make(rects=None, config=None, det=None, cls=None, rec=None, **options):
        if config is None:
            config = OCRConfig(**options)
        return OCRPipeline(
            config,
            det_model=det if det is not None else det_session(rects or []),
            cls_model=cls if cls is not None else cls_session(),
            rec_model=rec if rec is not None else rec_session(),
        )
    return make
