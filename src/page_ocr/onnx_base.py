"""Inference backend adapters.

The stages only talk to :class:`InferenceSession`; :class:`ONNXInferenceSession`
is the ONNX Runtime implementation selected when a model path is given.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Union

import numpy as np
import onnxruntime

from .errors import ONNXRuntimeError

logger = logging.getLogger(__name__)


class InferenceSession(ABC):
    """Tensor-in / tensor-out contract used by every OCR stage."""

    @property
    @abstractmethod
    def input_names(self) -> List[str]:
        ...

    @property
    @abstractmethod
    def output_names(self) -> List[str]:
        ...

    @abstractmethod
    def run(self, input_tensor: np.ndarray) -> List[np.ndarray]:
        """Run the graph on a single input tensor and return all outputs."""

    @abstractmethod
    def has_metadata(self, key: str) -> bool:
        ...

    @abstractmethod
    def get_metadata_list(self, key: str) -> List[str]:
        """Return a newline-separated metadata value as a list of lines."""


class ONNXInferenceSession(InferenceSession):
    """ONNX Runtime session with hardware acceleration."""

    def __init__(
        self,
        model_path: Union[str, Path],
        use_gpu: bool = False,
        use_tensorrt: bool = False,
    ):
        """Initialize ONNX Runtime session.

        Args:
            model_path: Path to ONNX model file
            use_gpu: Enable CUDA GPU acceleration
            use_tensorrt: Enable TensorRT acceleration (requires TensorRT)
        """
        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(f"Model not found: {model_path}")

        # Setup providers (TensorRT > CUDA > CPU)
        providers = self._get_providers(use_gpu, use_tensorrt)

        try:
            self.session = onnxruntime.InferenceSession(
                str(self.model_path),
                None,
                providers=providers
            )
        except Exception as e:
            raise ONNXRuntimeError(
                f"Failed to create ONNX session for {self.model_path}: {e}"
            ) from e

        logger.info(
            "Loaded %s with providers %s",
            self.model_path.name, self.session.get_providers()
        )

        self._input_names = [node.name for node in self.session.get_inputs()]
        self._output_names = [node.name for node in self.session.get_outputs()]
        self._metadata: Dict[str, str] = dict(
            self.session.get_modelmeta().custom_metadata_map
        )

    @property
    def input_names(self) -> List[str]:
        return list(self._input_names)

    @property
    def output_names(self) -> List[str]:
        return list(self._output_names)

    def _get_providers(self, use_gpu: bool, use_tensorrt: bool) -> List:
        """Get execution providers based on hardware availability.

        Priority: TensorRT > CUDA > CPU
        """
        available_providers = onnxruntime.get_available_providers()
        providers = []

        if use_tensorrt and "TensorrtExecutionProvider" in available_providers:
            providers.append(('TensorrtExecutionProvider', {}))
        elif use_tensorrt:
            logger.warning("TensorRT requested but not available")

        if use_gpu and "CUDAExecutionProvider" in available_providers:
            providers.append((
                'CUDAExecutionProvider',
                {"cudnn_conv_algo_search": "DEFAULT"}
            ))
        elif use_gpu:
            logger.warning("CUDA requested but not available, using CPU")

        # CPU (always available as fallback)
        providers.append('CPUExecutionProvider')

        return providers

    def get_input_feed(self, image_array: np.ndarray) -> Dict[str, np.ndarray]:
        return {self._input_names[0]: image_array}

    def run(self, input_tensor: np.ndarray) -> List[np.ndarray]:
        try:
            return self.session.run(
                self._output_names, input_feed=self.get_input_feed(input_tensor)
            )
        except Exception as e:
            raise ONNXRuntimeError(f"{self.model_path.name}: {e}") from e

    def has_metadata(self, key: str) -> bool:
        return key in self._metadata

    def get_metadata_list(self, key: str) -> List[str]:
        if key not in self._metadata:
            raise KeyError(f"Model metadata has no key '{key}'")
        return self._metadata[key].splitlines()

    def __repr__(self):
        return f"ONNXInferenceSession({self.model_path.name})"


def as_session(
    model: Union[str, Path, InferenceSession],
    use_gpu: bool = False,
    use_tensorrt: bool = False,
) -> InferenceSession:
    """Return ``model`` unchanged if it is a session, else load it from disk."""
    if isinstance(model, InferenceSession):
        return model
    return ONNXInferenceSession(model, use_gpu=use_gpu, use_tensorrt=use_tensorrt)
