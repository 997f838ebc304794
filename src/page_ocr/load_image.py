"""Turn the supported input kinds into a 3-channel BGR ``uint8`` array."""

import io
import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import LoadImageError

logger = logging.getLogger(__name__)

InputType = Union[str, Path, bytes, np.ndarray, Image.Image]


class LoadImage:
    """Image loader used at the start of every pipeline call.

    Arrays are taken to be in OpenCV channel order (BGR / BGRA). Files,
    encoded bytes and PIL images are decoded with Pillow, rotated according
    to their EXIF orientation and converted from RGB order.
    """

    def __call__(self, img: InputType) -> np.ndarray:
        if isinstance(img, (str, Path)):
            self.verify_exist(img)
            img = self.pil_to_bgr(self.open_pil(img, str(img)))
        elif isinstance(img, (bytes, bytearray)):
            img = self.pil_to_bgr(self.open_pil(io.BytesIO(img), "<bytes>"))
        elif isinstance(img, Image.Image):
            img = self.pil_to_bgr(ImageOps.exif_transpose(img))
        elif not isinstance(img, np.ndarray):
            raise LoadImageError(f"Unsupported input type: {type(img)}")

        return self.convert_img(img)

    @staticmethod
    def verify_exist(file_path: Union[str, Path]) -> None:
        if not Path(file_path).exists():
            raise LoadImageError(f"{file_path} does not exist.")

    @staticmethod
    def open_pil(source, name: str) -> Image.Image:
        try:
            pil = Image.open(source)
            pil.load()
        except (UnidentifiedImageError, OSError) as e:
            raise LoadImageError(f"Cannot identify image file {name}") from e
        return ImageOps.exif_transpose(pil)

    @staticmethod
    def pil_to_bgr(pil: Image.Image) -> np.ndarray:
        """PIL image to a gray, gray+alpha, BGR or BGRA array."""
        if pil.mode not in ("L", "LA", "RGB", "RGBA"):
            pil = pil.convert("RGBA" if "A" in pil.getbands() else "RGB")

        arr = np.array(pil)
        if pil.mode == "RGB":
            return cv2.cvtColor(arr, cv2.COLOR_RGB2BGR)
        if pil.mode == "RGBA":
            return cv2.cvtColor(arr, cv2.COLOR_RGBA2BGRA)
        return arr

    def convert_img(self, img: np.ndarray) -> np.ndarray:
        if img.size == 0:
            raise LoadImageError("Input image is empty")

        if img.dtype != np.uint8:
            if np.issubdtype(img.dtype, np.floating) and img.max() <= 1.0:
                # Float buffers in [0, 1]
                img = img * 255.0
            img = np.clip(img, 0, 255).astype(np.uint8)

        if img.ndim == 2:
            return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)

        if img.ndim == 3:
            channel = img.shape[2]
            if channel == 1:
                return cv2.cvtColor(img[:, :, 0], cv2.COLOR_GRAY2BGR)
            if channel == 2:
                return self.cvt_two_to_three(img)
            if channel == 3:
                return np.ascontiguousarray(img)
            if channel == 4:
                return self.cvt_four_to_three(img)
            raise LoadImageError(
                f"The channel({channel}) of the img is not in [1, 2, 3, 4]"
            )

        raise LoadImageError(f"The ndim({img.ndim}) of the img is not in [2, 3]")

    @staticmethod
    def cvt_two_to_three(img: np.ndarray) -> np.ndarray:
        """gray + alpha -> BGR, transparent pixels become white."""
        img_gray = np.ascontiguousarray(img[:, :, 0])
        img_alpha = np.ascontiguousarray(img[:, :, 1])
        img_bgr = cv2.cvtColor(img_gray, cv2.COLOR_GRAY2BGR)

        not_a = cv2.cvtColor(cv2.bitwise_not(img_alpha), cv2.COLOR_GRAY2BGR)

        new_img = cv2.bitwise_and(img_bgr, img_bgr, mask=img_alpha)
        return cv2.add(new_img, not_a)

    @staticmethod
    def cvt_four_to_three(img: np.ndarray) -> np.ndarray:
        """BGRA -> BGR.

        Transparent pixels become white when the visible content is black;
        otherwise the masked image is inverted.
        """
        bgr = np.ascontiguousarray(img[:, :, :3])
        alpha = np.ascontiguousarray(img[:, :, 3])

        not_a = cv2.cvtColor(cv2.bitwise_not(alpha), cv2.COLOR_GRAY2BGR)
        new_img = cv2.bitwise_and(bgr, bgr, mask=alpha)

        mean_color = np.mean(new_img)
        if mean_color <= 0.0:
            new_img = cv2.add(new_img, not_a)
        else:
            new_img = cv2.bitwise_not(new_img)
        return new_img
