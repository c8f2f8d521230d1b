"""
Vision Processing Module
Defect model, preprocessing filters, pipeline, detectors and visualization.
"""

from .defect import BoundingBox, Defect, DefectType, defects_from_list, defects_to_list
from .filters import FilterBase, GaussianFilter, GrayscaleFilter, ThresholdFilter, ThresholdMethod
from .pipeline import Pipeline, PipelineResult
from .detectors import (
    DetectorBase, TemplateMatcher, FeatureDetector, DetectionMode,
    BlobDetector, EdgeDetector, EdgeDetectionMode
)
from .factory import create_filter, create_detector, build_pipeline, build_detectors
from .visualization import visualize_defects

__all__ = [
    'BoundingBox', 'Defect', 'DefectType', 'defects_from_list', 'defects_to_list',
    'FilterBase', 'GaussianFilter', 'GrayscaleFilter', 'ThresholdFilter', 'ThresholdMethod',
    'Pipeline', 'PipelineResult',
    'DetectorBase', 'TemplateMatcher', 'FeatureDetector', 'DetectionMode',
    'BlobDetector', 'EdgeDetector', 'EdgeDetectionMode',
    'create_filter', 'create_detector', 'build_pipeline', 'build_detectors',
    'visualize_defects'
]
