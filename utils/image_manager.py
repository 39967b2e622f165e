"""
Image utilities for decoding uploads and encoding debug previews.

Document images live in memory only; nothing here writes to disk.
"""
import base64
import binascii
import re
import cv2
import numpy as np
from typing import Union

from .config import MAX_IMAGE_DIMENSION
from .exceptions import ImageProcessingError

DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


def load_image(source: Union[str, bytes]) -> np.ndarray:
    """
    Decode an image from raw bytes, a base64 string, or a data URL.

    Args:
        source: Raw encoded bytes, plain base64 text, or ``data:image/...;base64,...``

    Returns:
        numpy array of the image in BGR format

    Raises:
        ImageProcessingError: If the input cannot be decoded as an image
    """
    if isinstance(source, str):
        payload = DATA_URL_PREFIX.sub("", source.strip())
        try:
            img_bytes = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ImageProcessingError("Image data is not valid base64", details={"reason": str(e)})
        return _bytes_to_image(img_bytes)

    if isinstance(source, (bytes, bytearray)):
        return _bytes_to_image(bytes(source))

    raise ImageProcessingError(f"Unsupported image source type: {type(source).__name__}")


def _bytes_to_image(img_bytes: bytes) -> np.ndarray:
    """Convert encoded bytes to an OpenCV image."""
    if not img_bytes:
        raise ImageProcessingError("Empty image data")
    nparr = np.frombuffer(img_bytes, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise ImageProcessingError("Could not decode image from bytes")
    return img


def limit_image_size(image: np.ndarray, max_dim: int = MAX_IMAGE_DIMENSION) -> np.ndarray:
    """Downscale so the longest side is at most ``max_dim``; smaller images are returned as-is."""
    h, w = image.shape[:2]
    longest = max(h, w)
    if longest <= max_dim:
        return image
    ratio = max_dim / longest
    return cv2.resize(image, (max(1, round(w * ratio)), max(1, round(h * ratio))), interpolation=cv2.INTER_AREA)


def image_to_png_data_url(image: np.ndarray) -> str:
    """Encode an image as a PNG data URL (debug previews)."""
    ok, buffer = cv2.imencode(".png", image)
    if not ok:
        raise ImageProcessingError("Could not encode image as PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.tobytes()).decode("ascii")
