"""
Model management for page_ocr.

Usage:
    from page_ocr.models import registry

    path = registry.get("paddle_ocr", "detector")   # download + resolve
    print(registry.status())                         # show what's cached
"""

from .registry import MODEL_DIR_ENV, ModelRegistry, registry
from .config import ALL_GROUPS, HF_REPO, PADDLE_OCR, ModelFile, ModelGroup

__all__ = [
    "ModelRegistry",
    "registry",
    "MODEL_DIR_ENV",
    "ALL_GROUPS",
    "HF_REPO",
    "PADDLE_OCR",
    "ModelFile",
    "ModelGroup",
]
