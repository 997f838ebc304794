"""Configuration classes for OCR modules."""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping

from .errors import ConfigError


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{name} must be within [0, 1], got {value}")


def _check_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")


@dataclass
class DetectorConfig:
    """Configuration for text detection stage."""
    limit_side_len: int = 960  # Side length used when limit_type is 'min'
    limit_type: str = "max"  # 'max' or 'min'
    mean: List[float] = None  # Per-channel normalization mean
    std: List[float] = None  # Per-channel normalization std
    thresh: float = 0.3  # Binarization threshold
    box_thresh: float = 0.5  # Box confidence threshold
    max_candidates: int = 1000  # Contours processed per image
    unclip_ratio: float = 1.6  # Text region expansion ratio
    use_dilation: bool = True  # Apply dilation to binary mask
    score_mode: str = "fast"  # 'fast' or 'slow'
    use_gpu: bool = False  # Enable CUDA GPU acceleration
    use_tensorrt: bool = False  # Enable TensorRT acceleration

    def __post_init__(self):
        if self.mean is None:
            self.mean = [0.485, 0.456, 0.406]
        if self.std is None:
            self.std = [0.229, 0.224, 0.225]
        if self.limit_type not in ("max", "min"):
            raise ConfigError(f"Unknown limit_type: {self.limit_type}")
        if self.score_mode not in ("fast", "slow"):
            raise ConfigError(f"Unknown score_mode: {self.score_mode}")
        _check_positive("limit_side_len", self.limit_side_len)
        _check_positive("max_candidates", self.max_candidates)
        _check_positive("unclip_ratio", self.unclip_ratio)
        _check_unit_interval("thresh", self.thresh)
        _check_unit_interval("box_thresh", self.box_thresh)


@dataclass
class ClassifierConfig:
    """Configuration for text orientation classification stage."""
    cls_image_shape: List[int] = None  # [C, H, W] e.g., [3, 48, 192]
    cls_batch_num: int = 6  # Batch size for classification
    cls_thresh: float = 0.9  # Confidence threshold for rotation
    label_list: List[str] = None  # e.g., ['0', '180']
    use_gpu: bool = False
    use_tensorrt: bool = False

    def __post_init__(self):
        if self.cls_image_shape is None:
            self.cls_image_shape = [3, 48, 192]
        if self.label_list is None:
            self.label_list = ['0', '180']
        if len(self.cls_image_shape) != 3:
            raise ConfigError("cls_image_shape must be [C, H, W]")
        _check_positive("cls_batch_num", self.cls_batch_num)
        _check_unit_interval("cls_thresh", self.cls_thresh)


@dataclass
class RecognizerConfig:
    """Configuration for text recognition stage."""
    rec_image_shape: List[int] = None  # [C, H, W] e.g., [3, 48, 320]
    rec_batch_num: int = 6  # Batch size for recognition
    max_wh_ratio: float = 32.0  # Upper bound on a batch's width/height ratio
    use_space_char: bool = True  # Include space character in vocabulary
    use_gpu: bool = False
    use_tensorrt: bool = False

    def __post_init__(self):
        if self.rec_image_shape is None:
            self.rec_image_shape = [3, 48, 320]
        if len(self.rec_image_shape) != 3:
            raise ConfigError("rec_image_shape must be [C, H, W]")
        _check_positive("rec_batch_num", self.rec_batch_num)
        _check_positive("max_wh_ratio", self.max_wh_ratio)


@dataclass
class OCRConfig:
    """Options for the whole pipeline.

    The stage configs are nested; everything else is a flat switch or
    threshold consumed by :class:`~page_ocr.pipeline.OCRPipeline`.
    """
    text_score: float = 0.5  # Lines below this recognition score are dropped
    use_det: bool = True
    use_cls: bool = True
    use_rec: bool = True

    min_height: float = 30  # Images at most this tall get vertical padding
    width_height_ratio: float = 8  # Wider images get vertical padding, -1 disables
    max_side_len: float = 2000
    min_side_len: float = 30

    return_word_box: bool = False
    return_single_char_box: bool = False

    det: DetectorConfig = field(default_factory=DetectorConfig)
    cls: ClassifierConfig = field(default_factory=ClassifierConfig)
    rec: RecognizerConfig = field(default_factory=RecognizerConfig)

    def __post_init__(self):
        _check_unit_interval("text_score", self.text_score)
        _check_positive("min_side_len", self.min_side_len)
        _check_positive("max_side_len", self.max_side_len)
        if self.min_side_len > self.max_side_len:
            raise ConfigError("min_side_len must not exceed max_side_len")
        if self.width_height_ratio != -1:
            _check_positive("width_height_ratio", self.width_height_ratio)

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "OCRConfig":
        """Build a config from a flat mapping.

        Top-level keys name :class:`OCRConfig` fields; stage options use
        dotted keys such as ``"det.box_thresh"`` or ``"rec.rec_batch_num"``.
        """
        top: Dict[str, Any] = {}
        nested: Dict[str, Dict[str, Any]] = {"det": {}, "cls": {}, "rec": {}}
        top_names = {f.name for f in fields(cls)} - set(nested)

        for key, value in options.items():
            if "." in key:
                section, name = key.split(".", 1)
                if section not in nested:
                    raise ConfigError(f"Unknown config section: {section}")
                nested[section][name] = value
            elif key in top_names:
                top[key] = value
            else:
                raise ConfigError(f"Unknown config option: {key}")

        stage_types = {
            "det": DetectorConfig,
            "cls": ClassifierConfig,
            "rec": RecognizerConfig,
        }
        for section, values in nested.items():
            config_type = stage_types[section]
            known = {f.name for f in fields(config_type)}
            unknown = set(values) - known
            if unknown:
                raise ConfigError(
                    f"Unknown {section} option(s): {', '.join(sorted(unknown))}"
                )
            top[section] = config_type(**values)

        return cls(**top)
