"""
Model file layout for the OCR stages.

Every weight lives in one HuggingFace repository; a group maps the stage
names used by ``OCRPipeline`` to files inside it.
"""

from dataclasses import dataclass
from typing import Dict, List


HF_REPO = "hpllduck/PaperStructure"


@dataclass(frozen=True)
class ModelFile:
    filename: str          # repo-relative, e.g. "paddle_ocr/det.onnx"
    description: str = ""
    required: bool = True  # False for files only some models need


@dataclass(frozen=True)
class ModelGroup:
    """Files that one pipeline loads together, keyed by role."""
    name: str
    description: str
    files: Dict[str, ModelFile]

    @property
    def filenames(self) -> List[str]:
        return [f.filename for f in self.files.values()]

    @property
    def required_keys(self) -> List[str]:
        return [key for key, f in self.files.items() if f.required]

    def file(self, key: str) -> ModelFile:
        if key not in self.files:
            available = ", ".join(self.files)
            raise KeyError(
                f"Unknown file '{key}' in group '{self.name}'. Available: {available}"
            )
        return self.files[key]


PADDLE_OCR = ModelGroup(
    name="paddle_ocr",
    description="PP-OCRv5 text detection / angle classification / recognition",
    files={
        "detector": ModelFile("paddle_ocr/det.onnx", "DB text detector"),
        "classifier": ModelFile("paddle_ocr/cls.onnx", "0/180 degree line classifier"),
        "recognizer": ModelFile("paddle_ocr/rec.onnx", "SVTR CTC recognizer"),
        # Only read when rec.onnx carries no 'character' metadata
        "dictionary": ModelFile(
            "paddle_ocr/ppocrv5_dict.txt",
            "Character dictionary, one entry per line",
            required=False,
        ),
    },
)

ALL_GROUPS: Dict[str, ModelGroup] = {
    PADDLE_OCR.name: PADDLE_OCR,
}
