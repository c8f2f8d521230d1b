"""
Template Matcher
Golden-sample differencing: regions that differ from a defect-free
reference image beyond a threshold become defects.
"""

import logging
from typing import Dict, List, Optional

import cv2
import numpy as np

from ..defect import BoundingBox, Defect, DefectType, contour_to_points
from ..filters import apply_parameter, to_float, to_gray, to_int
from .base import DetectorBase, calculate_circularity

logger = logging.getLogger(__name__)


class TemplateMatcher(DetectorBase):
    """Detects defects by differencing against a reference image."""

    name = "TemplateMatcher"
    detector_type = "template"

    def __init__(self, diff_threshold: float = 30.0, min_area: float = 100.0,
                 max_area: float = 50000.0):
        """
        Initialize template matcher

        Args:
            diff_threshold: Gray-level difference that counts as a change (0-255)
            min_area: Smallest accepted defect area in pixels
            max_area: Largest accepted defect area in pixels
        """
        super().__init__()
        self.diff_threshold = float(diff_threshold)
        self.min_area = float(min_area)
        self.max_area = float(max_area)
        self.blur_kernel_size = 5
        self.morphology_kernel_size = 3

    # Parameter setters return False when a value is rejected

    def set_diff_threshold(self, value: float) -> bool:
        if not 0.0 <= value <= 255.0:
            return False
        self.diff_threshold = value
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

    def set_blur_kernel_size(self, size: int) -> bool:
        if size < 3 or size % 2 == 0:
            return False
        self.blur_kernel_size = size
        return True

    def set_morphology_kernel_size(self, size: int) -> bool:
        if size < 1:
            return False
        self.morphology_kernel_size = size
        return True

    def _detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]]) -> List[Defect]:
        if not self.has_reference_image():
            logger.warning(f"{self.name}: No reference image set")
            return []

        gray_image = to_gray(image)
        gray_reference = to_gray(self.reference_image)

        # Reference must match the test image size
        if gray_image.shape != gray_reference.shape:
            gray_reference = cv2.resize(gray_reference, (gray_image.shape[1], gray_image.shape[0]))

        aligned = self.align_image(gray_image, gray_reference)
        diff = self.compute_difference(aligned, gray_reference)
        binary = self._binarize(diff)

        if debug is not None:
            debug['difference'] = diff
            debug['threshold'] = binary

        return self._find_defect_regions(diff, binary)

    def align_image(self, image: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """Registration hook; currently the identity transform."""
        return image.copy()

    def compute_difference(self, image: np.ndarray, reference: np.ndarray) -> np.ndarray:
        """Absolute difference of the blurred image and reference."""
        k = (self.blur_kernel_size, self.blur_kernel_size)
        blurred_image = cv2.GaussianBlur(image, k, 0)
        blurred_reference = cv2.GaussianBlur(reference, k, 0)
        return cv2.absdiff(blurred_image, blurred_reference)

    def _binarize(self, diff: np.ndarray) -> np.ndarray:
        _, binary = cv2.threshold(diff, self.diff_threshold, 255, cv2.THRESH_BINARY)

        # Opening removes speckle, closing fills small holes
        if self.morphology_kernel_size > 0:
            kernel = cv2.getStructuringElement(
                cv2.MORPH_ELLIPSE, (self.morphology_kernel_size, self.morphology_kernel_size)
            )
            binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
            binary = cv2.morphologyEx(binary, cv2.MORPH_CLOSE, kernel)
        return binary

    def _find_defect_regions(self, diff: np.ndarray, binary: np.ndarray) -> List[Defect]:
        defects = []
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        for contour in contours:
            area = cv2.contourArea(contour)
            if area < self.min_area or area > self.max_area:
                continue

            bbox = BoundingBox.from_rect(cv2.boundingRect(contour))
            circularity = calculate_circularity(contour)

            # Confidence is the mean difference inside the box
            roi = diff[bbox.y:bbox.y + bbox.height, bbox.x:bbox.x + bbox.width]
            confidence = min(1.0, float(np.mean(roi)) / 255.0)
            if confidence < self.confidence_threshold:
                continue

            defect = Defect.from_bbox(self.classify(circularity, bbox), bbox, confidence)
            defect.area = float(area)
            defect.circularity = circularity
            defect.contour = contour_to_points(contour)
            defects.append(defect)

        return defects

    @staticmethod
    def classify(circularity: float, bbox: BoundingBox) -> DefectType:
        """Round regions are stains, elongated ones scratches."""
        if circularity > 0.8:
            return DefectType.STAIN
        if bbox.aspect_ratio() > 3.0:
            return DefectType.SCRATCH
        if circularity < 0.5:
            return DefectType.DISCOLORATION
        return DefectType.DEFORMATION

    def _get_specific_parameters(self) -> Dict:
        return {
            'diff_threshold': self.diff_threshold,
            'min_area': self.min_area,
            'max_area': self.max_area,
            'blur_kernel_size': self.blur_kernel_size,
            'morphology_kernel_size': self.morphology_kernel_size,
        }

    def _set_specific_parameters(self, params: Dict):
        apply_parameter(params, 'diff_threshold', to_float, self.set_diff_threshold, self.name)
        apply_parameter(params, 'min_area', to_float, self.set_min_area, self.name)
        apply_parameter(params, 'max_area', to_float, self.set_max_area, self.name)
        apply_parameter(params, 'blur_kernel_size', to_int, self.set_blur_kernel_size, self.name)
        apply_parameter(params, 'morphology_kernel_size', to_int,
                        self.set_morphology_kernel_size, self.name)
