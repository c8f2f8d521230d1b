"""EdgeDetector tests."""

import cv2
import numpy as np
import pytest

from aoi_inspection.vision.defect import BoundingBox, DefectType
from aoi_inspection.vision.detectors import EdgeDetectionMode, EdgeDetector
from aoi_inspection.vision.detectors.edge_detector import EdgeFeatures


def polyline(*points):
    return np.array([[p] for p in points], dtype=np.int32)


@pytest.fixture
def line_contours():
    """One 500px and one 20px straight line."""
    return [
        polyline((50, 100), (300, 100), (550, 100)),
        polyline((10, 300), (20, 300), (30, 300)),
    ]


@pytest.fixture
def scratched_image():
    image = np.full((400, 640), 180, dtype=np.uint8)
    cv2.line(image, (60, 200), (560, 200), 40, 3)
    return image


class TestEdgeContourFiltering:
    """Length and angle filtering of contours."""

    def test_length_filter_keeps_long_line(self, line_contours):
        detector = EdgeDetector(EdgeDetectionMode.CANNY)
        detector.set_edge_length_filter(100, 1000)

        defects = detector.contours_to_defects(line_contours, (480, 640))

        assert len(defects) == 1
        defect = defects[0]
        assert defect.area == pytest.approx(500.0)
        assert defect.type is DefectType.SCRATCH
        assert 0.0 < defect.confidence <= 1.0

    def test_short_contours_are_skipped(self):
        detector = EdgeDetector()
        assert detector.contours_to_defects([polyline((0, 0), (200, 0))], (100, 300)) == []

    def test_angle_filter(self, line_contours):
        detector = EdgeDetector()
        detector.set_edge_length_filter(100, 1000)
        detector.set_edge_angle_filter(45, 135)
        assert detector.contours_to_defects(line_contours, (480, 640)) == []

    def test_invalid_filters_are_rejected(self):
        detector = EdgeDetector()
        assert not detector.set_edge_length_filter(100, 50)
        assert not detector.set_edge_angle_filter(10, 200)
        assert detector.min_edge_length == 20.0
        assert not detector.angle_filter_enabled


class TestEdgeFeatures:
    """Geometric features."""

    def test_straight_horizontal_line(self):
        detector = EdgeDetector()
        features = detector.calculate_edge_features(polyline((50, 100), (300, 100), (550, 100)),
                                                    (480, 640))
        assert features.length == pytest.approx(500.0)
        assert features.angle == pytest.approx(0.0, abs=1e-6)
        assert features.straightness == pytest.approx(1.0)
        assert not features.on_boundary
        assert features.gaps == 2

    def test_boundary_contact(self):
        detector = EdgeDetector()
        features = detector.calculate_edge_features(polyline((0, 10), (5, 10), (10, 10)), (100, 100))
        assert features.on_boundary

    def test_classify(self):
        bbox = BoundingBox(0, 0, 10, 10)
        assert EdgeDetector.classify(EdgeFeatures(bbox, length=200, straightness=0.95)) \
            is DefectType.SCRATCH
        assert EdgeDetector.classify(EdgeFeatures(bbox, length=30, gaps=1)) is DefectType.SCRATCH
        assert EdgeDetector.classify(EdgeFeatures(bbox, length=80, straightness=0.3, on_boundary=True)) \
            is DefectType.DEFORMATION
        assert EdgeDetector.classify(EdgeFeatures(bbox, length=80, straightness=0.6)) \
            is DefectType.UNKNOWN


class TestEdgeDetection:
    """Full detection on images."""

    @pytest.mark.parametrize("mode", list(EdgeDetectionMode))
    def test_scratch_produces_edge_map(self, scratched_image, mode):
        debug = {}
        detector = EdgeDetector(mode)
        defects = detector.detect(scratched_image, debug)
        assert debug['edges'].shape == scratched_image.shape
        assert len(defects) >= 1
        assert all(0.0 <= d.confidence <= 1.0 for d in defects)

    def test_uniform_image(self, gray_image):
        assert EdgeDetector().detect(gray_image) == []

    @pytest.mark.parametrize("thickness", [1, 2, 3])
    def test_length_filter_on_drawn_lines(self, thickness):
        image = np.zeros((480, 640), dtype=np.uint8)
        cv2.line(image, (70, 150), (570, 150), 255, thickness)
        cv2.line(image, (100, 350), (120, 350), 255, thickness)

        detector = EdgeDetector(EdgeDetectionMode.CANNY)
        assert detector.set_edge_length_filter(100, 1000)
        defects = detector.detect(image)

        assert len(defects) == 1
        bbox = defects[0].bbox
        assert bbox.y <= 150 <= bbox.y + bbox.height
        assert bbox.width >= 400


class TestEdgeParameters:
    """Parameter handling."""

    def test_threshold_keys(self):
        detector = EdgeDetector()
        detector.set_parameters({'low_threshold': 30, 'high_threshold': 90})
        assert detector.canny_low == 30.0
        assert detector.canny_high == 90.0

    def test_aperture_must_be_3_5_or_7(self):
        detector = EdgeDetector()
        detector.set_parameters({'canny_aperture_size': 4})
        assert detector.canny_aperture_size == 3

    def test_length_filter_through_parameters(self):
        detector = EdgeDetector()
        detector.set_parameters({'min_edge_length': 100, 'max_edge_length': 1000})
        params = detector.get_parameters()
        assert params['min_edge_length'] == 100.0
        assert params['max_edge_length'] == 1000.0
