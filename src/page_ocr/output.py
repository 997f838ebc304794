"""Result types passed between OCR stages and returned to callers."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


class WordType(Enum):
    CN = "cn"  # CJK: Han, Kana, Hangul
    EN_NUM = "en&num"


@dataclass
class WordInfo:
    """Word segmentation of one recognized line.

    ``words``, ``word_cols``, ``word_types`` and ``word_confs`` are parallel.
    After box geometry has run, ``word_boxes`` holds one 4x2 box per emitted
    unit: per word for all-alphanumeric lines, per character otherwise.
    """
    words: List[List[str]] = field(default_factory=list)
    word_cols: List[List[int]] = field(default_factory=list)
    word_types: List[WordType] = field(default_factory=list)
    line_txt_len: float = 0.0
    confs: List[float] = field(default_factory=list)
    word_confs: List[List[float]] = field(default_factory=list)
    word_boxes: List[np.ndarray] = field(default_factory=list)
    word_contents: List[str] = field(default_factory=list)
    word_scores: List[float] = field(default_factory=list)


@dataclass
class TextDetOutput:
    img: Optional[np.ndarray] = None
    boxes: List[np.ndarray] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)
    elapse: float = 0.0

    def __len__(self):
        return len(self.boxes)


@dataclass
class TextClsOutput:
    img_list: List[np.ndarray] = field(default_factory=list)
    cls_res: List[Tuple[str, float]] = field(default_factory=list)
    elapse: float = 0.0

    def __len__(self):
        return len(self.cls_res)


@dataclass
class TextRecOutput:
    imgs: List[np.ndarray] = field(default_factory=list)
    txts: List[str] = field(default_factory=list)
    scores: List[float] = field(default_factory=list)
    word_results: List[WordInfo] = field(default_factory=list)
    elapse: float = 0.0

    def __len__(self):
        return len(self.txts)


@dataclass(frozen=True)
class OCROutput:
    """Final result of one ``OCRPipeline`` call.

    ``boxes``, ``txts`` and ``scores`` are ``None`` when nothing survived.
    ``elapse_list`` holds detection, classification and recognition time in
    seconds.
    """
    img: Optional[np.ndarray] = None
    boxes: Optional[np.ndarray] = None
    txts: Optional[Tuple[str, ...]] = None
    scores: Optional[Tuple[float, ...]] = None
    word_results: Tuple[WordInfo, ...] = ()
    elapse_list: Tuple[float, ...] = ()

    @property
    def elapse(self) -> float:
        return float(sum(self.elapse_list))

    def __len__(self):
        if self.boxes is None:
            return 0
        return len(self.boxes)

    def is_empty(self) -> bool:
        return len(self) == 0

    def to_json(self) -> List[Dict[str, Any]]:
        """One ``{"box", "text", "score"}`` record per line."""
        if self.boxes is None or self.scores is None:
            return []

        records = []
        for i, box in enumerate(self.boxes):
            records.append({
                "box": np.asarray(box).tolist(),
                "text": self.txts[i] if self.txts is not None else None,
                "score": float(self.scores[i]),
            })
        return records

    def to_markdown(self) -> str:
        if not self.txts:
            return "| Text |\n|------|\n| (No text detected) |\n"

        lines = []
        if self.boxes is not None and len(self.boxes) == len(self.txts):
            lines.append("| Text | Box |")
            lines.append("|------|-----|")
            for txt, box in zip(self.txts, self.boxes):
                points = ", ".join(
                    f"({_fmt(x)}, {_fmt(y)})" for x, y in np.asarray(box)
                )
                lines.append(f"| {_escape_cell(txt)} | [{points}] |")
        else:
            lines.append("| Text |")
            lines.append("|------|")
            for txt in self.txts:
                lines.append(f"| {_escape_cell(txt)} |")
        return "\n".join(lines) + "\n"

    def word_results_as_list(self) -> List[List[Tuple[str, float, Optional[List]]]]:
        """Per line, ``(text, confidence, box)`` for every word box unit."""
        out = []
        for info in self.word_results:
            line = []
            for i, content in enumerate(info.word_contents):
                conf = info.word_scores[i] if i < len(info.word_scores) else 0.0
                box = info.word_boxes[i].tolist() if i < len(info.word_boxes) else None
                line.append((content, float(conf), box))
            out.append(line)
        return out


def _fmt(value) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.1f}"


def _escape_cell(text: str) -> str:
    return text.replace("|", "\\|")
