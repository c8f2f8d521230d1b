"""FeatureDetector tests."""

import numpy as np
import pytest

from aoi_inspection.vision.defect import BoundingBox, DefectType
from aoi_inspection.vision.detectors import DetectionMode, FeatureDetector


class TestFeatureDetectorModes:
    """Region extraction per mode."""

    def test_uniform_image_has_no_defects(self, gray_image):
        detector = FeatureDetector(DetectionMode.ADAPTIVE, 100, 50000)
        assert detector.detect(gray_image) == []

    def test_threshold_mode_finds_dark_square(self, dark_square_image):
        detector = FeatureDetector(DetectionMode.THRESHOLD)
        defects = detector.detect(dark_square_image)

        assert len(defects) == 1
        defect = defects[0]
        assert defect.bbox.as_tuple() == (70, 70, 60, 60)
        assert defect.type is DefectType.DISCOLORATION
        assert 0.5 <= defect.confidence <= 1.0

    def test_min_area_filters_small_regions(self, dark_square_image):
        detector = FeatureDetector(DetectionMode.THRESHOLD, min_area=5000)
        assert detector.detect(dark_square_image) == []

    def test_circularity_filter(self, dark_square_image):
        detector = FeatureDetector(DetectionMode.THRESHOLD)
        detector.set_parameters({'min_circularity': 0.9})
        assert detector.detect(dark_square_image) == []

    @pytest.mark.parametrize("mode, keys", [
        (DetectionMode.EDGE, {'edge'}),
        (DetectionMode.THRESHOLD, {'threshold'}),
        (DetectionMode.ADAPTIVE, {'adaptive'}),
        (DetectionMode.COMBINED, {'edge', 'adaptive'}),
    ])
    def test_debug_masks(self, dark_square_image, mode, keys):
        debug = {}
        FeatureDetector(mode).detect(dark_square_image, debug)
        assert set(debug) == keys

    def test_color_input(self, dark_square_image):
        color = np.dstack([dark_square_image] * 3)
        assert len(FeatureDetector(DetectionMode.THRESHOLD).detect(color)) == 1


class TestFeatureDetectorScoring:
    """Confidence and classification."""

    def test_confidence_blend(self):
        bbox = BoundingBox(0, 0, 10, 10)
        assert FeatureDetector.calculate_confidence(100.0, bbox, 1.0) == pytest.approx(1.0)
        assert FeatureDetector.calculate_confidence(50.0, bbox, 0.5) == pytest.approx(0.5)

    def test_confidence_degenerate_box(self):
        assert FeatureDetector.calculate_confidence(10.0, BoundingBox(0, 0, 0, 5), 1.0) == 0.0

    def test_classify_order(self):
        square = BoundingBox(0, 0, 10, 10)
        assert FeatureDetector.classify(0.9, square, 50) is DefectType.STAIN
        assert FeatureDetector.classify(0.5, BoundingBox(0, 0, 50, 10), 50) is DefectType.SCRATCH
        assert FeatureDetector.classify(0.5, square, 50) is DefectType.DISCOLORATION
        assert FeatureDetector.classify(0.3, square, 150) is DefectType.DEFORMATION
        assert FeatureDetector.classify(0.6, square, 150) is DefectType.STAIN


class TestFeatureDetectorParameters:
    """Parameter handling."""

    def test_mode_by_name(self):
        detector = FeatureDetector()
        detector.set_parameters({'mode': 'edge'})
        assert detector.mode is DetectionMode.EDGE
        detector.set_parameters({'mode': 'nonsense'})
        assert detector.mode is DetectionMode.EDGE

    def test_invalid_block_size_is_ignored(self):
        detector = FeatureDetector()
        detector.set_parameters({'adaptive_block_size': 8})
        assert detector.adaptive_block_size == 11

    def test_parameters_include_common_keys(self):
        params = FeatureDetector().get_parameters()
        assert params['mode'] == 'adaptive'
        assert params['confidence_threshold'] == 0.5
        assert params['enabled'] is True
