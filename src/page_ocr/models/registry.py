"""
Resolve OCR model files to local paths.

Lookup order for every file:

1. ``<local_dir>/<filename>``, where ``local_dir`` is the constructor
   argument or the ``PAGE_OCR_MODEL_DIR`` environment variable
2. the HuggingFace cache
3. a download through ``hf_hub_download``

Usage:
    from page_ocr.models import registry

    det_path = registry.get("paddle_ocr", "detector")
    print(registry.status())
"""

import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from huggingface_hub import hf_hub_download, try_to_load_from_cache

from .config import ALL_GROUPS, HF_REPO, ModelFile, ModelGroup

logger = logging.getLogger(__name__)

MODEL_DIR_ENV = "PAGE_OCR_MODEL_DIR"


class ModelRegistry:
    """Finds model files locally and downloads the ones that are missing."""

    def __init__(
        self,
        repo_id: str = HF_REPO,
        local_dir: Optional[Union[str, Path]] = None,
        groups: Optional[Mapping[str, ModelGroup]] = None,
    ):
        self._repo_id = repo_id
        self._local_dir = local_dir
        self._groups = dict(groups if groups is not None else ALL_GROUPS)

    @property
    def repo_id(self) -> str:
        return self._repo_id

    @property
    def local_dir(self) -> Optional[Path]:
        # Read on every access so the environment can change after import
        local_dir = self._local_dir or os.environ.get(MODEL_DIR_ENV)
        return Path(local_dir) if local_dir else None

    def group(self, name: str) -> ModelGroup:
        if name not in self._groups:
            available = ", ".join(self._groups)
            raise KeyError(f"Unknown model group '{name}'. Available: {available}")
        return self._groups[name]

    def locate(self, group_name: str, file_key: str) -> Optional[Path]:
        """Path of a file already on this machine, or None."""
        mf = self.group(group_name).file(file_key)
        return self._find_local(mf) or self._find_cached(mf)

    def get(self, group_name: str, file_key: str) -> Path:
        """Local path of a model file, downloaded on first use.

        Args:
            group_name: e.g. "paddle_ocr"
            file_key: "detector", "classifier", "recognizer" or "dictionary"

        Raises:
            KeyError: for an unknown group or file key
        """
        mf = self.group(group_name).file(file_key)
        local = self._find_local(mf)
        if local is not None:
            return local

        logger.info("Resolving %s from %s", mf.filename, self._repo_id)
        return Path(hf_hub_download(self._repo_id, mf.filename))

    def get_group_paths(
        self, group_name: str, include_optional: bool = True
    ) -> Dict[str, Path]:
        group = self.group(group_name)
        keys = group.files if include_optional else group.required_keys
        return {key: self.get(group_name, key) for key in keys}

    def ensure_all(self) -> None:
        """Fetch every required file, e.g. before going offline."""
        for name in self._groups:
            self.get_group_paths(name, include_optional=False)

    def status(self) -> str:
        lines = [
            f"Model files ({self._repo_id})",
            f"Local directory: {self.local_dir or '-'}",
            "=" * 60,
        ]
        for name, group in self._groups.items():
            lines.append(f"\n{name}  ({group.description})")
            for key, mf in group.files.items():
                found = self.locate(name, key)
                if found is not None:
                    mark, where = "OK", str(found)
                else:
                    mark = "MISSING" if mf.required else "-"
                    where = f"hf://{self._repo_id}/{mf.filename}"
                lines.append(f"  [{mark:>7}]  {key:<12} {where}")
        return "\n".join(lines)

    def _find_local(self, mf: ModelFile) -> Optional[Path]:
        local_dir = self.local_dir
        if local_dir is None:
            return None
        candidate = local_dir / mf.filename
        return candidate if candidate.is_file() else None

    def _find_cached(self, mf: ModelFile) -> Optional[Path]:
        result = try_to_load_from_cache(self._repo_id, mf.filename)
        # The cache answers with a path string, None, or a "known missing" marker
        return Path(result) if isinstance(result, str) else None


registry = ModelRegistry()
