"""pytest configuration and shared fixtures."""

import copy

import cv2
import numpy as np
import pytest

from aoi_inspection.config.settings import InspectionSettings
from aoi_inspection.vision.defect import BoundingBox, Defect, DefectType
from aoi_inspection.vision.detectors.base import DetectorBase
from aoi_inspection.vision.filters import FilterBase


class StubDetector(DetectorBase):
    """Returns a fixed defect list, or raises the configured error."""

    name = "StubDetector"
    detector_type = "stub"

    def __init__(self, defects=None, error=None):
        super().__init__()
        self.defects = list(defects or [])
        self.error = error

    def _detect(self, image, debug):
        if self.error is not None:
            raise self.error
        if debug is not None:
            debug['input'] = image
        return [copy.deepcopy(d) for d in self.defects]

    def _get_specific_parameters(self):
        return {}

    def _set_specific_parameters(self, params):
        pass


class BrokenFilter(FilterBase):
    """Filter whose output is always invalid."""

    name = "Broken Filter"
    filter_type = "broken"

    def process(self, image):
        return None

    def get_parameters(self):
        return {}

    def set_parameters(self, params):
        pass


@pytest.fixture
def stub_detector():
    """StubDetector class."""
    return StubDetector


@pytest.fixture
def broken_filter():
    """A filter stage that always fails."""
    return BrokenFilter()


@pytest.fixture
def make_defect():
    """Factory for valid defects."""
    def _make(confidence=0.9, x=10, y=10, width=20, height=20, defect_type=DefectType.STAIN):
        return Defect.from_bbox(defect_type, BoundingBox(x, y, width, height), confidence)
    return _make


@pytest.fixture
def gray_image():
    """Uniform mid-gray 640x480 BGR image."""
    return np.full((480, 640, 3), 128, dtype=np.uint8)


@pytest.fixture
def reference_image():
    """Defect-free textured reference (gray levels 200-220), BGR."""
    rng = np.random.default_rng(0)
    gray = rng.integers(200, 221, size=(300, 300), dtype=np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def stained_image(reference_image):
    """Reference copy with one filled dark circle of radius 50."""
    image = reference_image.copy()
    cv2.circle(image, (150, 150), 50, (0, 0, 0), -1)
    return image


@pytest.fixture
def dark_square_image():
    """Bright background with one dark 60x60 square."""
    image = np.full((200, 200), 200, dtype=np.uint8)
    image[70:130, 70:130] = 50
    return image


@pytest.fixture
def image_file(tmp_path, gray_image):
    """Mid-gray image written to disk."""
    path = tmp_path / "sample.png"
    cv2.imwrite(str(path), gray_image)
    return path


@pytest.fixture
def settings(tmp_path):
    """Default settings writing all output under tmp_path."""
    settings = InspectionSettings()
    settings.output.csv_dir = str(tmp_path / "csv")
    settings.output.image_dir = str(tmp_path / "images")
    return settings
