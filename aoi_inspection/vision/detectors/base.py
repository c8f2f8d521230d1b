"""
Detector Base
Common contract for defect detectors: enable flag, confidence threshold,
optional reference image, parameters, cloning and call statistics.
"""

import copy
import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import cv2
import numpy as np

from ...errors import DetectorError
from ...utils.timer import PerformanceTimer
from ..defect import Defect
from ..filters import apply_parameter, is_valid_image, to_bool, to_float

logger = logging.getLogger(__name__)


def calculate_circularity(contour: np.ndarray) -> float:
    """4*pi*area / perimeter^2, clamped to [0, 1]."""
    if contour is None or len(contour) < 3:
        return 0.0
    area = cv2.contourArea(contour)
    perimeter = cv2.arcLength(contour, True)
    if perimeter <= 0.0:
        return 0.0
    return min(1.0, 4.0 * math.pi * area / (perimeter * perimeter))


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class DetectorBase(ABC):
    """
    Abstract base class for defect detectors.

    Subclasses implement _detect(). detect() adds the shared behaviour:
    disabled or empty input returns no defects, OpenCV failures are wrapped
    in DetectorError, and every call is counted in the statistics.
    Detectors hold no per-call state; intermediate images go into the
    optional debug dict supplied by the caller.
    """

    name = "Detector"
    detector_type = "base"

    def __init__(self):
        self.enabled = True
        self._confidence_threshold = 0.5
        self._reference_image: Optional[np.ndarray] = None
        self._call_count = 0
        self._total_detections = 0
        self._total_time_ms = 0.0

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]] = None) -> List[Defect]:
        """
        Detect defects in a preprocessed image.

        Args:
            image: Preprocessed image (not modified)
            debug: Optional dict receiving intermediate images

        Returns:
            List of defects (empty is a normal outcome)

        Raises:
            DetectorError: if OpenCV fails while processing the image
        """
        if not self.enabled:
            logger.debug(f"{self.name} is disabled")
            return []

        if not is_valid_image(image):
            logger.error(f"{self.name}: Empty image")
            return []

        timer = PerformanceTimer(self.name).start()
        defects: List[Defect] = []
        try:
            defects = self._detect(image, debug)
        except cv2.error as e:
            raise DetectorError(self.name, f"OpenCV error: {e}") from e
        finally:
            self._record_statistics(len(defects), timer.stop())

        logger.debug(f"{self.name}: {len(defects)} defects detected "
                     f"(threshold={self._confidence_threshold}, time={timer.elapsed_ms:.2f}ms)")
        return defects

    @abstractmethod
    def _detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]]) -> List[Defect]:
        pass

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    @confidence_threshold.setter
    def confidence_threshold(self, value: float):
        self.set_confidence_threshold(value)

    def set_confidence_threshold(self, value: float) -> bool:
        """Accepts only values within [0, 1]."""
        if value is None or not 0.0 <= value <= 1.0:
            logger.warning(f"{self.name}: Confidence threshold {value} out of range [0, 1], ignored")
            return False
        self._confidence_threshold = float(value)
        return True

    @property
    def reference_image(self) -> Optional[np.ndarray]:
        return self._reference_image

    def set_reference_image(self, image: Optional[np.ndarray]):
        """Store a copy of the reference image (None clears it)."""
        if image is None:
            self._reference_image = None
            return
        if not is_valid_image(image):
            logger.warning(f"{self.name}: Ignoring empty reference image")
            return
        self._reference_image = image.copy()
        logger.info(f"{self.name}: Reference image set ({image.shape[1]}x{image.shape[0]})")

    def has_reference_image(self) -> bool:
        return self._reference_image is not None

    def get_parameters(self) -> Dict:
        """Current parameters including the common ones."""
        params = self._get_specific_parameters()
        params['confidence_threshold'] = self._confidence_threshold
        params['enabled'] = self.enabled
        return params

    def set_parameters(self, params: Dict):
        """Update parameters; invalid values are logged and ignored."""
        apply_parameter(params, 'confidence_threshold', to_float,
                        self.set_confidence_threshold, self.name)
        apply_parameter(params, 'enabled', to_bool, self._set_enabled, self.name)
        self._set_specific_parameters(params)

    def _set_enabled(self, value: bool) -> bool:
        self.enabled = value
        return True

    @abstractmethod
    def _get_specific_parameters(self) -> Dict:
        pass

    @abstractmethod
    def _set_specific_parameters(self, params: Dict):
        pass

    def clone(self) -> 'DetectorBase':
        """Same configuration and reference image, zeroed statistics."""
        cloned = copy.deepcopy(self)
        cloned.reset_statistics()
        return cloned

    def to_config(self) -> Dict:
        params = self._get_specific_parameters()
        params['confidence_threshold'] = self._confidence_threshold
        return {
            'type': self.detector_type,
            'name': self.name,
            'enabled': self.enabled,
            'params': params,
        }

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _record_statistics(self, defect_count: int, elapsed_ms: float):
        self._call_count += 1
        self._total_detections += defect_count
        self._total_time_ms += elapsed_ms

    def get_statistics(self) -> Dict:
        return {
            'name': self.name,
            'type': self.detector_type,
            'enabled': self.enabled,
            'confidence_threshold': self._confidence_threshold,
            'has_reference': self.has_reference_image(),
            'call_count': self._call_count,
            'total_detections': self._total_detections,
            'total_processing_time_ms': self._total_time_ms,
        }

    def reset_statistics(self):
        self._call_count = 0
        self._total_detections = 0
        self._total_time_ms = 0.0

    def merge_statistics(self, other: 'DetectorBase'):
        """Add another detector's counters (e.g. a per-call clone) to this one."""
        self._call_count += other._call_count
        self._total_detections += other._total_detections
        self._total_time_ms += other._total_time_ms

    def __repr__(self):
        return f"{self.__class__.__name__}(enabled={self.enabled}, threshold={self._confidence_threshold})"
