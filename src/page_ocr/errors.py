"""Exception types raised by the OCR pipeline.

Empty results (nothing detected, nothing recognized, everything below the
score cutoff) are not errors and never raise; see ``OCROutput``.
"""


class OCRError(Exception):
    """Base class for all OCR errors."""


class ConfigError(OCRError, ValueError):
    """Invalid configuration value."""


class LoadImageError(OCRError):
    """Input image is missing, unreadable or has an unsupported layout."""


class ResizeImgError(OCRError):
    """A resize produced a non-positive target dimension."""


class ONNXRuntimeError(OCRError):
    """ONNX Runtime failed to create a session or run a model."""


class InferenceError(OCRError):
    """Backend failure during one pipeline stage.

    Attributes:
        stage: 'detection', 'classification' or 'recognition'
    """

    def __init__(self, stage: str, message: str):
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
