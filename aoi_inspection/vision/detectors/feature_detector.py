"""
Feature Detector
Reference-free defect detection from edges, global or adaptive thresholds.
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

import cv2
import numpy as np

from ..defect import BoundingBox, Defect, DefectType, contour_to_points
from ..filters import apply_parameter, to_float, to_gray, to_int
from .base import DetectorBase, calculate_circularity, clamp

logger = logging.getLogger(__name__)


class DetectionMode(Enum):
    """Region extraction method."""
    EDGE = "edge"
    THRESHOLD = "threshold"
    ADAPTIVE = "adaptive"
    COMBINED = "combined"


class FeatureDetector(DetectorBase):
    """Finds defect candidates as contours of a binary feature map."""

    name = "FeatureDetector"
    detector_type = "feature"

    def __init__(self, mode: DetectionMode = DetectionMode.ADAPTIVE,
                 min_area: float = 100.0, max_area: float = 50000.0):
        super().__init__()
        self.mode = DetectionMode(mode)
        self.min_area = float(min_area)
        self.max_area = float(max_area)
        self.min_circularity = 0.0
        self.max_circularity = 1.0
        self.canny_low = 50.0
        self.canny_high = 150.0
        self.adaptive_block_size = 11
        self.adaptive_c = 2.0

    def set_mode(self, mode) -> bool:
        try:
            self.mode = DetectionMode(mode)
        except ValueError:
            return False
        return True

    def set_min_area(self, value: float) -> bool:
        if value < 0:
            return False
        self.min_area = value
        return True

    def set_max_area(self, value: float) -> bool:
        if value <= 0:
            return False
        self.max_area = value
        return True

    def set_min_circularity(self, value: float) -> bool:
        if not 0.0 <= value <= 1.0:
            return False
        self.min_circularity = value
        return True

    def set_max_circularity(self, value: float) -> bool:
        if not 0.0 <= value <= 1.0:
            return False
        self.max_circularity = value
        return True

    def set_canny_low(self, value: float) -> bool:
        if value < 0:
            return False
        self.canny_low = value
        return True

    def set_canny_high(self, value: float) -> bool:
        if value < 0:
            return False
        self.canny_high = value
        return True

    def set_adaptive_block_size(self, value: int) -> bool:
        if value < 3 or value % 2 == 0:
            return False
        self.adaptive_block_size = value
        return True

    def set_adaptive_c(self, value: float) -> bool:
        self.adaptive_c = value
        return True

    def _detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]]) -> List[Defect]:
        gray = to_gray(image)

        if self.mode == DetectionMode.EDGE:
            masks = [('edge', self._edge_mask(gray))]
        elif self.mode == DetectionMode.THRESHOLD:
            masks = [('threshold', self._threshold_mask(gray))]
        elif self.mode == DetectionMode.ADAPTIVE:
            masks = [('adaptive', self._adaptive_mask(gray))]
        else:
            # Combined: edge defects then adaptive defects, overlaps are reported twice
            masks = [('edge', self._edge_mask(gray)), ('adaptive', self._adaptive_mask(gray))]

        defects = []
        for key, mask in masks:
            if debug is not None:
                debug[key] = mask
            contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
            defects.extend(self._extract_defects(contours, gray))
        return defects

    def _edge_mask(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 1.5)
        edges = cv2.Canny(blurred, self.canny_low, self.canny_high)

        # Connect broken edges
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (3, 3))
        return cv2.dilate(edges, kernel)

    def _threshold_mask(self, gray: np.ndarray) -> np.ndarray:
        _, binary = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)
        return binary

    def _adaptive_mask(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        binary = cv2.adaptiveThreshold(
            blurred, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY_INV,
            self.adaptive_block_size, self.adaptive_c
        )
        kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (3, 3))
        binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
        return cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)

    def _extract_defects(self, contours, gray: np.ndarray) -> List[Defect]:
        defects = []
        for contour in contours:
            area = cv2.contourArea(contour)
            if area < self.min_area or area > self.max_area:
                continue

            circularity = calculate_circularity(contour)
            if circularity < self.min_circularity or circularity > self.max_circularity:
                continue

            bbox = BoundingBox.from_rect(cv2.boundingRect(contour))
            confidence = self.calculate_confidence(area, bbox, circularity)
            if confidence < self.confidence_threshold:
                continue

            roi = gray[bbox.y:bbox.y + bbox.height, bbox.x:bbox.x + bbox.width]
            intensity = float(np.mean(roi))

            defect = Defect.from_bbox(self.classify(circularity, bbox, intensity), bbox, confidence)
            defect.area = float(area)
            defect.circularity = circularity
            defect.contour = contour_to_points(contour)
            defects.append(defect)
        return defects

    @staticmethod
    def calculate_confidence(area: float, bbox: BoundingBox, circularity: float) -> float:
        """Blend of box fill ratio (0.6) and circularity (0.4)."""
        bbox_area = bbox.area()
        if bbox_area <= 0:
            return 0.0
        return clamp(0.6 * (area / bbox_area) + 0.4 * circularity)

    @staticmethod
    def classify(circularity: float, bbox: BoundingBox, intensity: float) -> DefectType:
        if circularity > 0.85:
            return DefectType.STAIN
        if bbox.aspect_ratio() > 4.0:
            return DefectType.SCRATCH
        if intensity < 100:
            return DefectType.DISCOLORATION
        if circularity < 0.4:
            return DefectType.DEFORMATION
        return DefectType.STAIN

    def _get_specific_parameters(self) -> Dict:
        return {
            'mode': self.mode.value,
            'min_area': self.min_area,
            'max_area': self.max_area,
            'min_circularity': self.min_circularity,
            'max_circularity': self.max_circularity,
            'canny_low': self.canny_low,
            'canny_high': self.canny_high,
            'adaptive_block_size': self.adaptive_block_size,
            'adaptive_c': self.adaptive_c,
        }

    def _set_specific_parameters(self, params: Dict):
        apply_parameter(params, 'mode', str, self.set_mode, self.name)
        apply_parameter(params, 'min_area', to_float, self.set_min_area, self.name)
        apply_parameter(params, 'max_area', to_float, self.set_max_area, self.name)
        apply_parameter(params, 'min_circularity', to_float, self.set_min_circularity, self.name)
        apply_parameter(params, 'max_circularity', to_float, self.set_max_circularity, self.name)
        apply_parameter(params, 'canny_low', to_float, self.set_canny_low, self.name)
        apply_parameter(params, 'canny_high', to_float, self.set_canny_high, self.name)
        apply_parameter(params, 'adaptive_block_size', to_int, self.set_adaptive_block_size, self.name)
        apply_parameter(params, 'adaptive_c', to_float, self.set_adaptive_c, self.name)
