"""
Preprocessing Filters
Composable image transforms applied before defect detection.
Every stage returns a new image; None signals an invalid result.
"""

import copy
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def is_valid_image(image: Optional[np.ndarray]) -> bool:
    """Check that an image is a non-empty 2-D or 3-D array."""
    return (isinstance(image, np.ndarray) and image.size > 0
            and image.ndim in (2, 3))


def to_gray(image: np.ndarray) -> np.ndarray:
    """Return a single-channel copy of an image."""
    if image.ndim == 3 and image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    if image.ndim == 3:
        return image[:, :, 0].copy()
    return image.copy()


def apply_parameter(params: Dict, key: str, convert: Callable, setter: Callable[[Any], bool],
                    owner: str):
    """
    Apply one parameter value if present.

    A value that cannot be converted, or that the setter rejects, is logged
    and the previous value is kept.
    """
    if key not in params:
        return
    try:
        value = convert(params[key])
    except (TypeError, ValueError):
        logger.warning(f"{owner}: Invalid value for '{key}': {params[key]!r}, keeping current value")
        return
    if setter(value) is False:
        logger.warning(f"{owner}: Rejected value for '{key}': {params[key]!r}, keeping current value")


def to_int(value) -> int:
    """Strict int conversion (bools and non-integral floats are rejected)."""
    if isinstance(value, bool):
        raise TypeError("bool is not an integer")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{value} is not integral")
    return int(value)


def to_float(value) -> float:
    if isinstance(value, bool):
        raise TypeError("bool is not a number")
    return float(value)


def to_bool(value) -> bool:
    if not isinstance(value, bool):
        raise TypeError("expected a boolean")
    return value


class FilterBase(ABC):
    """Abstract base class for preprocessing filters."""

    name = "Filter"
    filter_type = "filter"
    description = "No description available"

    def __init__(self):
        self.enabled = True

    @abstractmethod
    def process(self, image: np.ndarray) -> Optional[np.ndarray]:
        """Apply the filter; returns a new image or None on failure."""
        pass

    @abstractmethod
    def get_parameters(self) -> Dict:
        """Get current parameters."""
        pass

    @abstractmethod
    def set_parameters(self, params: Dict):
        """Update parameters; invalid values are ignored."""
        pass

    def clone(self) -> 'FilterBase':
        """Independent copy with identical configuration."""
        return copy.deepcopy(self)

    def to_config(self) -> Dict:
        """Descriptor form: {type, name, enabled, params}."""
        return {
            'type': self.filter_type,
            'name': self.name,
            'enabled': self.enabled,
            'params': self.get_parameters(),
        }

    def __repr__(self):
        return f"{self.__class__.__name__}({self.get_parameters()}, enabled={self.enabled})"


class GrayscaleFilter(FilterBase):
    """Converts a color image to grayscale."""

    name = "Grayscale Filter"
    filter_type = "grayscale"
    description = "Converts a color image to grayscale using cv2.cvtColor"

    def process(self, image: np.ndarray) -> Optional[np.ndarray]:
        if not is_valid_image(image):
            logger.error("GrayscaleFilter: Input image is empty")
            return None

        if image.ndim == 2:
            logger.debug("GrayscaleFilter: Input is already grayscale")
            return image.copy()

        try:
            output = to_gray(image)
        except cv2.error as e:
            logger.error(f"GrayscaleFilter: OpenCV error: {e}")
            return None

        logger.debug(f"GrayscaleFilter: Converted {image.shape[2]} channels to 1 "
                     f"({output.shape[1]}x{output.shape[0]})")
        return output

    def get_parameters(self) -> Dict:
        return {}

    def set_parameters(self, params: Dict):
        logger.debug("GrayscaleFilter: No parameters to set")


class GaussianFilter(FilterBase):
    """Gaussian blur for noise reduction."""

    name = "Gaussian Blur Filter"
    filter_type = "gaussian_blur"
    description = ("Applies Gaussian blur to reduce noise and smooth the image. "
                   "Kernel size must be an odd number. Sigma controls the blur strength.")

    DEFAULT_KERNEL_SIZE = 5
    DEFAULT_SIGMA = 1.0

    def __init__(self, kernel_size: int = DEFAULT_KERNEL_SIZE, sigma: float = DEFAULT_SIGMA):
        super().__init__()
        self.kernel_size = self.DEFAULT_KERNEL_SIZE
        self.sigma = self.DEFAULT_SIGMA

        if not self.set_kernel_size(kernel_size):
            logger.warning(f"Invalid kernel size {kernel_size}, using default {self.DEFAULT_KERNEL_SIZE}")
        if not self.set_sigma(sigma):
            logger.warning(f"Invalid sigma {sigma}, using default {self.DEFAULT_SIGMA}")

    @staticmethod
    def is_valid_kernel_size(size) -> bool:
        """Kernel size must be an odd integer >= 1."""
        return isinstance(size, int) and not isinstance(size, bool) and size > 0 and size % 2 == 1

    def set_kernel_size(self, size) -> bool:
        if not self.is_valid_kernel_size(size):
            return False
        self.kernel_size = size
        return True

    def set_sigma(self, sigma) -> bool:
        if sigma is None or sigma < 0:
            return False
        self.sigma = float(sigma)
        return True

    def process(self, image: np.ndarray) -> Optional[np.ndarray]:
        if not is_valid_image(image):
            logger.error("GaussianFilter: Input image is empty")
            return None

        try:
            output = cv2.GaussianBlur(image, (self.kernel_size, self.kernel_size), self.sigma)
        except cv2.error as e:
            logger.error(f"GaussianFilter: OpenCV error: {e}")
            return None

        logger.debug(f"GaussianFilter: Applied blur (k={self.kernel_size}, sigma={self.sigma}) "
                     f"to {image.shape[1]}x{image.shape[0]} image")
        return output

    def get_parameters(self) -> Dict:
        return {'kernel_size': self.kernel_size, 'sigma': self.sigma}

    def set_parameters(self, params: Dict):
        apply_parameter(params, 'kernel_size', to_int, self.set_kernel_size, 'GaussianFilter')
        apply_parameter(params, 'sigma', to_float, self.set_sigma, 'GaussianFilter')


class ThresholdMethod(Enum):
    """Thresholding method."""
    BINARY = "binary"
    BINARY_INV = "binary_inv"
    TRUNCATE = "truncate"
    TOZERO = "tozero"
    TOZERO_INV = "tozero_inv"
    OTSU = "otsu"
    ADAPTIVE = "adaptive"


_CV_THRESHOLD_FLAGS = {
    ThresholdMethod.BINARY: cv2.THRESH_BINARY,
    ThresholdMethod.BINARY_INV: cv2.THRESH_BINARY_INV,
    ThresholdMethod.TRUNCATE: cv2.THRESH_TRUNC,
    ThresholdMethod.TOZERO: cv2.THRESH_TOZERO,
    ThresholdMethod.TOZERO_INV: cv2.THRESH_TOZERO_INV,
}


class ThresholdFilter(FilterBase):
    """Binarization by fixed, automatic (Otsu) or adaptive threshold."""

    name = "Threshold Filter"
    filter_type = "threshold"
    description = "Converts the image to black and white by a fixed, Otsu or adaptive threshold"

    def __init__(self, threshold: float = 128.0, method: ThresholdMethod = ThresholdMethod.BINARY,
                 max_value: float = 255.0):
        super().__init__()
        self.threshold = 128.0
        self.max_value = 255.0
        self.method = ThresholdMethod(method)
        self.adaptive_block_size = 11
        self.adaptive_c = 2.0
        self.set_threshold(threshold)
        self.set_max_value(max_value)

    def set_threshold(self, threshold) -> bool:
        if not 0.0 <= threshold <= 255.0:
            return False
        self.threshold = float(threshold)
        return True

    def set_max_value(self, max_value) -> bool:
        if not 0.0 <= max_value <= 255.0:
            return False
        self.max_value = float(max_value)
        return True

    def set_adaptive_block_size(self, block_size) -> bool:
        if block_size < 3 or block_size % 2 != 1:
            return False
        self.adaptive_block_size = block_size
        return True

    def set_adaptive_c(self, c) -> bool:
        self.adaptive_c = float(c)
        return True

    def set_method(self, method) -> bool:
        try:
            self.method = ThresholdMethod(method)
        except ValueError:
            return False
        return True

    def process(self, image: np.ndarray) -> Optional[np.ndarray]:
        if not is_valid_image(image):
            logger.error("ThresholdFilter: Input image is empty")
            return None

        try:
            gray = to_gray(image)

            if self.method == ThresholdMethod.OTSU:
                _, output = cv2.threshold(gray, 0, self.max_value,
                                          cv2.THRESH_BINARY + cv2.THRESH_OTSU)
            elif self.method == ThresholdMethod.ADAPTIVE:
                output = cv2.adaptiveThreshold(
                    gray, self.max_value, cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
                    cv2.THRESH_BINARY, self.adaptive_block_size, self.adaptive_c
                )
            else:
                _, output = cv2.threshold(gray, self.threshold, self.max_value,
                                          _CV_THRESHOLD_FLAGS[self.method])
        except cv2.error as e:
            logger.error(f"ThresholdFilter: OpenCV error: {e}")
            return None

        return output

    def get_parameters(self) -> Dict:
        return {
            'threshold': self.threshold,
            'max_value': self.max_value,
            'adaptive_block_size': self.adaptive_block_size,
            'adaptive_c': self.adaptive_c,
            'method': self.method.value,
        }

    def set_parameters(self, params: Dict):
        apply_parameter(params, 'threshold', to_float, self.set_threshold, 'ThresholdFilter')
        apply_parameter(params, 'max_value', to_float, self.set_max_value, 'ThresholdFilter')
        apply_parameter(params, 'adaptive_block_size', to_int, self.set_adaptive_block_size,
                        'ThresholdFilter')
        apply_parameter(params, 'adaptive_c', to_float, self.set_adaptive_c, 'ThresholdFilter')
        apply_parameter(params, 'method', str, self.set_method, 'ThresholdFilter')
