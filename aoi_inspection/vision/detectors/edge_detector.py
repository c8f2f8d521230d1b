"""
Edge Detector
Edge-geometry defect detection: scratches, cracks and edge deformations
found from Canny, Sobel or Laplacian edge maps.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..defect import BoundingBox, Defect, DefectType, contour_to_points
from ..filters import apply_parameter, to_bool, to_float, to_gray, to_int
from .base import DetectorBase, clamp

logger = logging.getLogger(__name__)


class EdgeDetectionMode(Enum):
    """Edge operator."""
    CANNY = "canny"
    SOBEL = "sobel"
    LAPLACIAN = "laplacian"
    COMBINED = "combined"


@dataclass
class EdgeFeatures:
    """Geometric features of one edge contour."""
    bbox: BoundingBox
    length: float = 0.0
    angle: float = 0.0
    straightness: float = 0.0
    curvature: float = 0.0
    on_boundary: bool = False
    gaps: int = 0
    strength: float = 0.0


class EdgeDetector(DetectorBase):
    """Classifies edge contours by length, straightness and boundary contact."""

    name = "EdgeDetector"
    detector_type = "edge"

    GAP_DISTANCE = 10.0
    # Edge strength is not measured; every edge scores this value
    EDGE_STRENGTH = 100.0

    def __init__(self, mode: EdgeDetectionMode = EdgeDetectionMode.CANNY):
        super().__init__()
        self.mode = EdgeDetectionMode(mode)

        self.canny_low = 50.0
        self.canny_high = 150.0
        self.canny_aperture_size = 3
        self.canny_l2_gradient = True

        self.sobel_kernel_size = 3
        self.sobel_threshold = 50.0

        self.laplacian_kernel_size = 3
        self.laplacian_threshold = 30.0

        self.min_edge_length = 20.0
        self.max_edge_length = 10000.0
        self.angle_filter_enabled = False
        self.min_edge_angle = 0.0
        self.max_edge_angle = 180.0

    def set_edge_length_filter(self, min_length: float, max_length: float) -> bool:
        if min_length < 0 or max_length < min_length:
            logger.warning(f"{self.name}: Invalid length filter [{min_length}, {max_length}]")
            return False
        self.min_edge_length = float(min_length)
        self.max_edge_length = float(max_length)
        return True

    def set_edge_angle_filter(self, min_angle: float, max_angle: float) -> bool:
        """Enable the angle band-pass filter (degrees, [0, 180))."""
        if not 0.0 <= min_angle <= max_angle <= 180.0:
            logger.warning(f"{self.name}: Invalid angle filter [{min_angle}, {max_angle}]")
            return False
        self.min_edge_angle = float(min_angle)
        self.max_edge_angle = float(max_angle)
        self.angle_filter_enabled = True
        logger.debug(f"{self.name}: Angle filter {min_angle} - {max_angle} degrees")
        return True

    # ------------------------------------------------------------------
    # Edge maps
    # ------------------------------------------------------------------

    def _detect(self, image: np.ndarray, debug: Optional[Dict[str, np.ndarray]]) -> List[Defect]:
        gray = to_gray(image)
        edges = self.compute_edge_map(gray)

        if debug is not None:
            debug['edges'] = edges

        contours, _ = cv2.findContours(edges, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
        logger.debug(f"{self.name}: {len(contours)} contours")
        return self.contours_to_defects(contours, gray.shape)

    def compute_edge_map(self, gray: np.ndarray) -> np.ndarray:
        if self.mode == EdgeDetectionMode.CANNY:
            return self._canny_edges(gray)
        if self.mode == EdgeDetectionMode.SOBEL:
            return self._sobel_edges(gray)
        if self.mode == EdgeDetectionMode.LAPLACIAN:
            return self._laplacian_edges(gray)
        return cv2.bitwise_or(self._canny_edges(gray), self._sobel_edges(gray))

    def _canny_edges(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 1.0)
        return cv2.Canny(blurred, self.canny_low, self.canny_high,
                         apertureSize=self.canny_aperture_size, L2gradient=self.canny_l2_gradient)

    def _sobel_edges(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 1.0)
        grad_x = cv2.convertScaleAbs(cv2.Sobel(blurred, cv2.CV_16S, 1, 0, ksize=self.sobel_kernel_size))
        grad_y = cv2.convertScaleAbs(cv2.Sobel(blurred, cv2.CV_16S, 0, 1, ksize=self.sobel_kernel_size))
        gradient = cv2.addWeighted(grad_x, 0.5, grad_y, 0.5, 0)
        _, edges = cv2.threshold(gradient, self.sobel_threshold, 255, cv2.THRESH_BINARY)
        return edges

    def _laplacian_edges(self, gray: np.ndarray) -> np.ndarray:
        blurred = cv2.GaussianBlur(gray, (5, 5), 1.0)
        laplacian = cv2.convertScaleAbs(
            cv2.Laplacian(blurred, cv2.CV_16S, ksize=self.laplacian_kernel_size)
        )
        _, edges = cv2.threshold(laplacian, self.laplacian_threshold, 255, cv2.THRESH_BINARY)
        return edges

    # ------------------------------------------------------------------
    # Contour analysis
    # ------------------------------------------------------------------

    def contours_to_defects(self, contours: Sequence[np.ndarray],
                            image_shape: Tuple[int, ...]) -> List[Defect]:
        """Filter edge contours and convert the survivors to defects."""
        defects = []
        for contour in contours:
            if len(contour) < 3:
                continue

            features = self.calculate_edge_features(contour, image_shape)

            if not self.min_edge_length <= features.length <= self.max_edge_length:
                continue
            if self.angle_filter_enabled and not (
                    self.min_edge_angle <= features.angle <= self.max_edge_angle):
                continue

            defect = Defect(
                type=self.classify(features),
                bbox=features.bbox,
                confidence=self.calculate_confidence(features),
                center=features.bbox.center(),
                area=features.length,
                contour=contour_to_points(contour),
            )
            if defect.confidence >= self.confidence_threshold:
                defects.append(defect)
        return defects

    def calculate_edge_features(self, contour: np.ndarray,
                                image_shape: Tuple[int, ...]) -> EdgeFeatures:
        height, width = image_shape[:2]
        points = contour.reshape(-1, 2).astype(np.float64)
        features = EdgeFeatures(bbox=BoundingBox.from_rect(cv2.boundingRect(contour)))

        features.length = cv2.arcLength(contour, False)

        # Least-squares line fit
        vx, vy, x0, y0 = cv2.fitLine(contour, cv2.DIST_L2, 0, 0.01, 0.01).flatten()
        angle = math.degrees(math.atan2(vy, vx))
        if angle < 0:
            angle += 180.0
        features.angle = 0.0 if angle >= 180.0 else angle

        norm = math.hypot(vx, vy)
        distances = np.abs(vy * (points[:, 0] - x0) - vx * (points[:, 1] - y0)) / norm
        features.straightness = clamp(1.0 / (1.0 + float(np.mean(distances)) / 10.0))

        bbox = features.bbox
        if bbox.width > 0 and bbox.height > 0:
            features.curvature = abs(bbox.height / bbox.width - 1.0)

        xs, ys = points[:, 0], points[:, 1]
        features.on_boundary = bool(np.any((xs <= 1) | (ys <= 1) |
                                           (xs >= width - 2) | (ys >= height - 2)))

        steps = np.hypot(np.diff(xs), np.diff(ys))
        features.gaps = int(np.count_nonzero(steps > self.GAP_DISTANCE))

        features.strength = self.EDGE_STRENGTH
        return features

    @staticmethod
    def classify(features: EdgeFeatures) -> DefectType:
        # Long straight line
        if features.length > 100.0 and features.straightness > 0.9:
            return DefectType.SCRATCH
        # Short broken line (crack)
        if features.length < 50.0 and features.gaps > 0:
            return DefectType.SCRATCH
        # Chip, irregular curvature or burr on the part outline
        if features.on_boundary and (features.straightness < 0.5 or features.curvature > 0.3
                                     or features.straightness > 0.8):
            return DefectType.DEFORMATION
        return DefectType.UNKNOWN

    @staticmethod
    def calculate_confidence(features: EdgeFeatures) -> float:
        length_score = min(1.0, features.length / 200.0)
        strength_score = min(1.0, features.strength / 150.0)
        return clamp(0.5 * length_score + 0.3 * features.straightness + 0.2 * strength_score)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def _get_specific_parameters(self) -> Dict:
        return {
            'mode': self.mode.value,
            'low_threshold': self.canny_low,
            'high_threshold': self.canny_high,
            'canny_aperture_size': self.canny_aperture_size,
            'canny_l2_gradient': self.canny_l2_gradient,
            'sobel_kernel_size': self.sobel_kernel_size,
            'sobel_threshold': self.sobel_threshold,
            'laplacian_kernel_size': self.laplacian_kernel_size,
            'laplacian_threshold': self.laplacian_threshold,
            'min_edge_length': self.min_edge_length,
            'max_edge_length': self.max_edge_length,
            'min_edge_angle': self.min_edge_angle,
            'max_edge_angle': self.max_edge_angle,
            'angle_filter_enabled': self.angle_filter_enabled,
        }

    def _set_specific_parameters(self, params: Dict):
        apply_parameter(params, 'mode', str, self._set_mode, self.name)
        apply_parameter(params, 'low_threshold', to_float, self._setter('canny_low', 0.0), self.name)
        apply_parameter(params, 'high_threshold', to_float, self._setter('canny_high', 0.0), self.name)
        apply_parameter(params, 'canny_aperture_size', to_int, self._set_aperture, self.name)
        apply_parameter(params, 'canny_l2_gradient', to_bool, self._setter('canny_l2_gradient'),
                        self.name)
        apply_parameter(params, 'sobel_kernel_size', to_int, self._kernel_setter('sobel_kernel_size'),
                        self.name)
        apply_parameter(params, 'sobel_threshold', to_float, self._setter('sobel_threshold', 0.0),
                        self.name)
        apply_parameter(params, 'laplacian_kernel_size', to_int,
                        self._kernel_setter('laplacian_kernel_size'), self.name)
        apply_parameter(params, 'laplacian_threshold', to_float,
                        self._setter('laplacian_threshold', 0.0), self.name)

        if 'min_edge_length' in params or 'max_edge_length' in params:
            try:
                min_length = to_float(params.get('min_edge_length', self.min_edge_length))
                max_length = to_float(params.get('max_edge_length', self.max_edge_length))
            except (TypeError, ValueError):
                logger.warning(f"{self.name}: Invalid edge length filter, keeping current value")
            else:
                self.set_edge_length_filter(min_length, max_length)

        if 'min_edge_angle' in params or 'max_edge_angle' in params:
            try:
                min_angle = to_float(params.get('min_edge_angle', self.min_edge_angle))
                max_angle = to_float(params.get('max_edge_angle', self.max_edge_angle))
            except (TypeError, ValueError):
                logger.warning(f"{self.name}: Invalid edge angle filter, keeping current value")
            else:
                self.set_edge_angle_filter(min_angle, max_angle)

        apply_parameter(params, 'angle_filter_enabled', to_bool,
                        self._setter('angle_filter_enabled'), self.name)

    def _set_mode(self, mode) -> bool:
        try:
            self.mode = EdgeDetectionMode(mode)
        except ValueError:
            return False
        return True

    def _set_aperture(self, size: int) -> bool:
        if size not in (3, 5, 7):
            return False
        self.canny_aperture_size = size
        return True

    def _kernel_setter(self, attribute: str):
        def setter(size: int) -> bool:
            if size not in (1, 3, 5, 7):
                return False
            setattr(self, attribute, size)
            return True
        return setter

    def _setter(self, attribute: str, minimum: Optional[float] = None):
        def setter(value) -> bool:
            if minimum is not None and value < minimum:
                return False
            setattr(self, attribute, value)
            return True
        return setter
