"""
Image I/O
Loading, saving and base64 transport of images.
"""

import base64
import binascii
import logging
from pathlib import Path
from typing import List, Optional, Union

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def load_image(filepath: Union[str, Path], flags: int = cv2.IMREAD_COLOR) -> Optional[np.ndarray]:
    """
    Load image from file.

    Returns:
        Image array, or None if the file is missing or unreadable
    """
    if not filepath:
        logger.error("Empty image path provided")
        return None

    filepath = Path(filepath)
    if not filepath.exists():
        logger.error(f"Image file does not exist: {filepath}")
        return None

    image = cv2.imread(str(filepath), flags)
    if image is None:
        logger.error(f"Failed to load image: {filepath}")
        return None

    logger.info(f"Image loaded: {filepath} ({image.shape[1]}x{image.shape[0]})")
    return image


def save_image(image: np.ndarray, filepath: Union[str, Path],
               params: Optional[List[int]] = None) -> bool:
    """Write an image, creating parent directories as needed."""
    if image is None or image.size == 0:
        logger.error("Invalid image provided for saving")
        return False

    filepath = Path(filepath)
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Failed to create directory {filepath.parent}: {e}")
        return False

    if not cv2.imwrite(str(filepath), image, params or []):
        logger.error(f"Failed to save image: {filepath}")
        return False

    logger.debug(f"Image saved: {filepath}")
    return True


def decode_base64_image(data: str) -> Optional[np.ndarray]:
    """
    Decode a base64 image string (a data:image/...;base64, prefix is allowed).

    Returns:
        Decoded BGR image, or None if the data is not a valid encoded image
    """
    if not data:
        return None

    if data.startswith('data:') and ',' in data:
        data = data.split(',', 1)[1]

    try:
        raw = base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Invalid base64 image data: {e}")
        return None

    buffer = np.frombuffer(raw, dtype=np.uint8)
    if buffer.size == 0:
        return None

    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        logger.error("Base64 data is not a decodable image")
    return image


def encode_image_base64(image: np.ndarray, image_format: str = 'png') -> Optional[str]:
    """Encode an image as a base64 string of the given format."""
    if image is None or image.size == 0:
        return None

    ok, encoded = cv2.imencode(f".{image_format.lstrip('.')}", image)
    if not ok:
        logger.error(f"Failed to encode image as {image_format}")
        return None
    return base64.b64encode(encoded.tobytes()).decode('ascii')
