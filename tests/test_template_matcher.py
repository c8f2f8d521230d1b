"""TemplateMatcher tests."""

import numpy as np
import pytest

from aoi_inspection.vision.defect import BoundingBox, DefectType
from aoi_inspection.vision.detectors import TemplateMatcher


@pytest.fixture
def matcher(reference_image):
    detector = TemplateMatcher(diff_threshold=25, min_area=100, max_area=100000)
    detector.set_reference_image(reference_image)
    return detector


class TestTemplateMatcherDetection:
    """Reference differencing."""

    def test_without_reference_finds_nothing(self, stained_image):
        assert TemplateMatcher().detect(stained_image) == []

    def test_identical_image_has_no_defects(self, matcher, reference_image):
        assert matcher.detect(reference_image.copy()) == []

    def test_dark_circle_is_one_stain(self, matcher, stained_image):
        defects = matcher.detect(stained_image)

        assert len(defects) == 1
        defect = defects[0]
        assert defect.type is DefectType.STAIN
        assert 0.0 < defect.confidence <= 1.0
        assert defect.bbox.width > 90 and defect.bbox.height > 90
        assert defect.contour

    def test_grayscale_input_against_color_reference(self, matcher, stained_image):
        gray = stained_image[:, :, 0].copy()
        assert len(matcher.detect(gray)) == 1

    def test_resized_reference(self, matcher, stained_image, reference_image):
        matcher.set_reference_image(np.repeat(np.repeat(reference_image, 2, axis=0), 2, axis=1))
        # Resampled texture differs slightly but the circle still dominates
        defects = matcher.detect(stained_image)
        assert any(d.type is DefectType.STAIN for d in defects)

    def test_debug_images(self, matcher, stained_image):
        debug = {}
        matcher.detect(stained_image, debug)
        assert set(debug) == {'difference', 'threshold'}
        assert debug['threshold'].shape == stained_image.shape[:2]

    def test_area_filter(self, matcher, stained_image):
        matcher.set_parameters({'max_area': 1000})
        assert matcher.detect(stained_image) == []

    def test_confidence_threshold(self, matcher, stained_image):
        matcher.confidence_threshold = 1.0
        assert matcher.detect(stained_image) == []


class TestTemplateMatcherClassify:
    """Shape classification."""

    def test_round_is_stain(self):
        assert TemplateMatcher.classify(0.9, BoundingBox(0, 0, 10, 10)) is DefectType.STAIN

    def test_elongated_is_scratch(self):
        assert TemplateMatcher.classify(0.6, BoundingBox(0, 0, 40, 10)) is DefectType.SCRATCH

    def test_irregular_is_discoloration(self):
        assert TemplateMatcher.classify(0.3, BoundingBox(0, 0, 10, 10)) is DefectType.DISCOLORATION

    def test_otherwise_deformation(self):
        assert TemplateMatcher.classify(0.6, BoundingBox(0, 0, 10, 10)) is DefectType.DEFORMATION


class TestTemplateMatcherParameters:
    """Parameters, reference handling and cloning."""

    def test_invalid_values_are_ignored(self):
        matcher = TemplateMatcher()
        matcher.set_parameters({'diff_threshold': 300, 'blur_kernel_size': 4, 'min_area': -1})
        params = matcher.get_parameters()
        assert params['diff_threshold'] == 30.0
        assert params['blur_kernel_size'] == 5
        assert params['min_area'] == 100.0

    def test_confidence_threshold_range(self):
        matcher = TemplateMatcher()
        assert not matcher.set_confidence_threshold(1.5)
        assert matcher.confidence_threshold == 0.5

    def test_reference_is_copied(self, reference_image):
        matcher = TemplateMatcher()
        matcher.set_reference_image(reference_image)
        reference_image[:] = 0
        assert matcher.reference_image.max() > 0

    def test_clone_keeps_reference_and_resets_statistics(self, matcher, reference_image):
        matcher.detect(reference_image)
        cloned = matcher.clone()
        assert cloned.has_reference_image()
        assert cloned.get_statistics()['call_count'] == 0
        assert matcher.get_statistics()['call_count'] == 1

    def test_disabled_returns_nothing(self, matcher, stained_image):
        matcher.enabled = False
        assert matcher.detect(stained_image) == []
        assert matcher.get_statistics()['call_count'] == 0
