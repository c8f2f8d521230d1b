"""Defect detection algorithms."""

from .base import DetectorBase, calculate_circularity
from .template_matcher import TemplateMatcher
from .feature_detector import FeatureDetector, DetectionMode
from .blob_detector import BlobDetector, BlobFeatures
from .edge_detector import EdgeDetector, EdgeDetectionMode, EdgeFeatures

__all__ = [
    'DetectorBase',
    'calculate_circularity',
    'TemplateMatcher',
    'FeatureDetector',
    'DetectionMode',
    'BlobDetector',
    'BlobFeatures',
    'EdgeDetector',
    'EdgeDetectionMode',
    'EdgeFeatures',
]
