"""Preprocessing operations for text detection."""

from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np


class DetResizeForTest:
    """Resize image for text detection.

    In 'max' mode the side limit adapts to the image: 960 below 960 px,
    1500 below 1500 px, 2000 otherwise. In 'min' mode the configured
    ``limit_side_len`` is used as is.
    """

    def __init__(self, limit_side_len=960, limit_type='max', **kwargs):
        self.limit_side_len = limit_side_len
        self.limit_type = limit_type

    def get_limit_side_len(self, max_wh: int) -> int:
        if self.limit_type == 'min':
            return self.limit_side_len
        if max_wh < 960:
            return 960
        if max_wh < 1500:
            return 1500
        return 2000

    def __call__(self, data: Dict) -> Optional[Dict]:
        img = data['image']
        src_h, src_w = img.shape[:2]
        limit_side_len = self.get_limit_side_len(max(src_h, src_w))

        if self.limit_type == 'max':
            # Resize so the longer side fits limit_side_len
            if max(src_h, src_w) > limit_side_len:
                ratio = float(limit_side_len) / max(src_h, src_w)
            else:
                ratio = 1.0
        elif self.limit_type == 'min':
            # Resize so the shorter side reaches limit_side_len
            if min(src_h, src_w) < limit_side_len:
                ratio = float(limit_side_len) / min(src_h, src_w)
            else:
                ratio = 1.0
        else:
            raise ValueError(f"Unknown limit_type: {self.limit_type}")

        resize_h = int(src_h * ratio)
        resize_w = int(src_w * ratio)

        # Network stride requires multiples of 32
        resize_h = int(round(resize_h / 32) * 32)
        resize_w = int(round(resize_w / 32) * 32)

        if resize_h <= 0 or resize_w <= 0:
            return None

        img = cv2.resize(img, (resize_w, resize_h))

        data['image'] = img
        data['shape'] = np.array([src_h, src_w, resize_h / float(src_h), resize_w / float(src_w)])
        return data


class NormalizeImage:
    """Normalize image values."""

    def __init__(self, scale=1.0 / 255.0, mean=None, std=None, order='hwc', **kwargs):
        if mean is None:
            mean = [0.485, 0.456, 0.406]
        if std is None:
            std = [0.229, 0.224, 0.225]
        self.scale = np.float32(scale)
        self.mean = np.array(mean).reshape((1, 1, 3)).astype('float32')
        self.std = np.array(std).reshape((1, 1, 3)).astype('float32')
        self.order = order

    def __call__(self, data: Dict) -> Dict:
        img = data['image'].astype('float32')

        if self.order == 'hwc':
            img = img * self.scale
            img = (img - self.mean) / self.std
        else:  # 'chw'
            img = img * self.scale
            img = (img.transpose(1, 2, 0) - self.mean) / self.std
            img = img.transpose(2, 0, 1)

        data['image'] = img
        return data


class ToCHWImage:
    """Convert image from HWC to CHW format."""

    def __call__(self, data: Dict) -> Dict:
        img = data['image']
        data['image'] = img.transpose((2, 0, 1))
        return data


class KeepKeys:
    """Keep only specified keys in data dict."""

    def __init__(self, keep_keys: List[str], **kwargs):
        self.keep_keys = keep_keys

    def __call__(self, data: Dict) -> Tuple:
        return tuple(data[key] for key in self.keep_keys)


_OPERATORS = {
    "DetResizeForTest": DetResizeForTest,
    "NormalizeImage": NormalizeImage,
    "ToCHWImage": ToCHWImage,
    "KeepKeys": KeepKeys,
}


def create_operators(op_param_list: List[Dict]):
    """Create preprocessing operators from config list.

    Args:
        op_param_list: List of dicts like [{"OpName": {params}}]

    Returns:
        List of operator instances
    """
    ops = []
    for operator in op_param_list:
        if not isinstance(operator, dict) or len(operator) != 1:
            raise ValueError(f"Operator entry must be a single-key dict: {operator!r}")
        op_name = list(operator)[0]
        if op_name not in _OPERATORS:
            raise ValueError(f"Unknown preprocessing operator: {op_name}")
        param = {} if operator[op_name] is None else operator[op_name]
        ops.append(_OPERATORS[op_name](**param))
    return ops


def transform(data: Dict, ops: List):
    """Apply preprocessing operators sequentially.

    Returns:
        Output of the last operator, or None if any operator gave up
    """
    for op in ops:
        data = op(data)
        if data is None:
            return None
    return data
