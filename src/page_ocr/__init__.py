"""
page_ocr
Text detection, orientation classification and recognition with ONNX models
"""

from .config import ClassifierConfig, DetectorConfig, OCRConfig, RecognizerConfig
from .errors import (
    ConfigError,
    InferenceError,
    LoadImageError,
    OCRError,
    ONNXRuntimeError,
    ResizeImgError,
)
from .onnx_base import InferenceSession, ONNXInferenceSession
from .output import OCROutput, WordInfo, WordType
from .pipeline import OCRPipeline
from .text_classifier import TextClassifier
from .text_detector import TextDetector
from .text_recognizer import TextRecognizer

__version__ = "0.1.0"
__all__ = [
    'OCRPipeline',
    'OCRConfig',
    'DetectorConfig',
    'ClassifierConfig',
    'RecognizerConfig',
    'OCROutput',
    'WordInfo',
    'WordType',
    'TextDetector',
    'TextClassifier',
    'TextRecognizer',
    'InferenceSession',
    'ONNXInferenceSession',
    'OCRError',
    'ConfigError',
    'LoadImageError',
    'ResizeImgError',
    'ONNXRuntimeError',
    'InferenceError',
]
