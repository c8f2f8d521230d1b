"""
Blob Detector
Multi-threshold blob keypoints (cv2.SimpleBlobDetector) turned into defects,
with shape features re-measured on a locally thresholded ROI.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import cv2
import numpy as np

from ..defect import BoundingBox, Defect, DefectType
from ..filters import apply_parameter, to_float, to_gray, to_int
from .base import DetectorBase, clamp

logger = logging.getLogger(__name__)


@dataclass
class BlobFeatures:
    """Shape features of one blob."""
    area: float = 0.0
    perimeter: float = 0.0
    circularity: float = 0.0
    convexity: float = 0.8
    inertia_ratio: float = 0.5


class BlobDetector(DetectorBase):
    """Detects dark (or bright) blobs such as stains and particles."""

    name = "BlobDetector"
    detector_type = "blob"

    # Placeholder shape values used when the ROI cannot be analysed
    DEFAULT_CONVEXITY = 0.8
    DEFAULT_INERTIA_RATIO = 0.5

    def __init__(self):
        super().__init__()
        self.min_threshold = 10.0
        self.max_threshold = 220.0
        self.threshold_step = 10.0
        self.blob_color = 0
        self.min_area = 50.0
        self.max_area = 50000.0
        self.min_circularity = 0.1
        self.max_circularity = 1.0
        self.min_convexity = 0.5
        self.max_convexity = 1.0
        self.min_inertia_ratio = 0.1
        self.max_inertia_ratio = 1.0
        self.min_dist_between_blobs = 10.0
        self.min_repeatability = 2

    def _create_detector(self):
        params = cv2.SimpleBlobDetector_Params()
        params.minThreshold = self.min_threshold
        params.maxThreshold = self.max_threshold
        params.thresholdStep = self.threshold_step

        params.filterByColor = True
        params.blobColor = self.blob_color

        params.filterByArea = True
        params.minArea = self.min_area
        params.maxArea = self.max_area

        params.filterByCircularity = True
        params.minCircularity = self.min_circularity
        params.maxCircularity = self.max_circularity

        params.filterByConvexity = True
        params.minConvexity = self.min_convexity
        params.maxConvexity = self.max_convexity

        params.filterByInertia = True
        params.minInertiaRatio = self.min_inertia_ratio
        params.maxInertiaRatio = self.max_inertia_ratio

        params.minDistBetweenBlobs = self.min_dist_between_blobs
        params.minRepeatability = self.min_repeatability
        return cv2.SimpleBlobDetector_create(params)

    def _detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]]) -> List[Defect]:
        gray = to_gray(image)
        keypoints = self._create_detector().detect(gray)
        logger.debug(f"{self.name}: {len(keypoints)} blobs found")

        if debug is not None:
            debug['keypoints'] = cv2.drawKeypoints(
                gray, keypoints, None, (0, 0, 255), cv2.DRAW_MATCHES_FLAGS_DRAW_RICH_KEYPOINTS
            )

        defects = []
        for kp in keypoints:
            defect = self._keypoint_to_defect(kp, gray)
            if defect.confidence >= self.confidence_threshold:
                defects.append(defect)
        return defects

    def _keypoint_bbox(self, kp: cv2.KeyPoint, shape) -> BoundingBox:
        """Square box of side kp.size around the keypoint, clipped to the image."""
        height, width = shape[:2]
        radius = kp.size / 2.0
        x = max(0, min(int(kp.pt[0] - radius), width - 1))
        y = max(0, min(int(kp.pt[1] - radius), height - 1))
        w = min(int(kp.size), width - x)
        h = min(int(kp.size), height - y)
        return BoundingBox(x, y, w, h)

    def _keypoint_to_defect(self, kp: cv2.KeyPoint, gray: np.ndarray) -> Defect:
        bbox = self._keypoint_bbox(kp, gray.shape)
        features = self.calculate_blob_features(kp, gray)

        return Defect(
            type=self.classify(features),
            bbox=bbox,
            confidence=self.calculate_confidence(kp),
            center=(float(kp.pt[0]), float(kp.pt[1])),
            area=float(kp.size * kp.size),
            circularity=features.circularity,
        )

    def calculate_blob_features(self, kp: cv2.KeyPoint, gray: np.ndarray) -> BlobFeatures:
        """
        Measure blob shape.

        Starts from a size-based estimate with placeholder convexity and
        inertia, then refines all three from the largest contour of the ROI
        thresholded at its own mean when that contour exists.
        """
        features = BlobFeatures(area=kp.size * kp.size)

        estimated_radius = kp.size / 2.0
        estimated_circle_area = math.pi * estimated_radius * estimated_radius
        if estimated_circle_area > 0:
            features.circularity = min(1.0, features.area / estimated_circle_area)
        features.convexity = self.DEFAULT_CONVEXITY
        features.inertia_ratio = self.DEFAULT_INERTIA_RATIO

        bbox = self._keypoint_bbox(kp, gray.shape)
        if bbox.width <= 0 or bbox.height <= 0:
            return features

        roi = gray[bbox.y:bbox.y + bbox.height, bbox.x:bbox.x + bbox.width]
        _, binary = cv2.threshold(roi, float(np.mean(roi)), 255, cv2.THRESH_BINARY)
        contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            return features

        contour = max(contours, key=cv2.contourArea)
        contour_area = cv2.contourArea(contour)

        features.perimeter = cv2.arcLength(contour, True)
        if features.perimeter > 0:
            features.circularity = min(
                1.0, 4.0 * math.pi * contour_area / (features.perimeter * features.perimeter)
            )

        hull_area = cv2.contourArea(cv2.convexHull(contour))
        if hull_area > 0:
            features.convexity = contour_area / hull_area

        m = cv2.moments(contour)
        denominator = m['mu20'] + m['mu02']
        if denominator > 0:
            numerator = math.sqrt((m['mu20'] - m['mu02']) ** 2 + 4 * m['mu11'] ** 2)
            features.inertia_ratio = (denominator - numerator) / (denominator + numerator)

        return features

    def calculate_confidence(self, kp: cv2.KeyPoint) -> float:
        """
        Keypoint response scaled to [0, 1], halved when the keypoint size
        falls outside the configured area range.

        SimpleBlobDetector leaves response at 0, so default keypoints score 0.
        """
        base_confidence = min(1.0, kp.response / 100.0)
        size_score = 0.5 if (kp.size < self.min_area or kp.size > self.max_area) else 1.0
        return clamp(base_confidence * size_score)

    @staticmethod
    def classify(features: BlobFeatures) -> DefectType:
        if features.inertia_ratio < 0.3 and features.circularity < 0.5:
            return DefectType.SCRATCH
        if features.circularity > 0.7 and features.area < 1000:
            return DefectType.STAIN
        if features.area > 5000 and features.convexity < 0.7:
            return DefectType.DEFORMATION
        return DefectType.DISCOLORATION

    def _get_specific_parameters(self) -> Dict:
        return {
            'min_threshold': self.min_threshold,
            'max_threshold': self.max_threshold,
            'threshold_step': self.threshold_step,
            'blob_color': self.blob_color,
            'min_area': self.min_area,
            'max_area': self.max_area,
            'min_circularity': self.min_circularity,
            'max_circularity': self.max_circularity,
            'min_convexity': self.min_convexity,
            'max_convexity': self.max_convexity,
            'min_inertia_ratio': self.min_inertia_ratio,
            'max_inertia_ratio': self.max_inertia_ratio,
            'min_distance_between_blobs': self.min_dist_between_blobs,
            'min_repeatability': self.min_repeatability,
        }

    def _set_specific_parameters(self, params: Dict):
        for key in ('min_threshold', 'max_threshold', 'threshold_step'):
            apply_parameter(params, key, to_float, self._range_setter(key, 0.0, 255.0), self.name)
        apply_parameter(params, 'blob_color', to_int, self._set_blob_color, self.name)
        for key in ('min_area', 'max_area'):
            apply_parameter(params, key, to_float, self._range_setter(key, 0.0, None), self.name)
        for key in ('min_circularity', 'max_circularity', 'min_convexity', 'max_convexity',
                    'min_inertia_ratio', 'max_inertia_ratio'):
            apply_parameter(params, key, to_float, self._range_setter(key, 0.0, 1.0), self.name)
        apply_parameter(params, 'min_distance_between_blobs', to_float,
                        self._range_setter('min_dist_between_blobs', 0.0, None), self.name)
        apply_parameter(params, 'min_repeatability', to_int,
                        self._range_setter('min_repeatability', 1, None), self.name)

    def _range_setter(self, attribute: str, low, high):
        def setter(value) -> bool:
            if value < low or (high is not None and value > high):
                return False
            setattr(self, attribute, value)
            return True
        return setter

    def _set_blob_color(self, value: int) -> bool:
        if value not in (0, 255):
            return False
        self.blob_color = value
        return True
