"""
Stage and Detector Factory
Builds filters and detectors from {type, enabled, params} descriptors.
"""

import logging
from typing import Dict, List, Optional

from .detectors import BlobDetector, DetectorBase, EdgeDetector, FeatureDetector, TemplateMatcher
from .filters import FilterBase, GaussianFilter, GrayscaleFilter, ThresholdFilter
from .pipeline import Pipeline

logger = logging.getLogger(__name__)


FILTER_TYPES = {
    'grayscale': GrayscaleFilter,
    'gaussian_blur': GaussianFilter,
    'gaussian': GaussianFilter,
    'blur': GaussianFilter,
    'threshold': ThresholdFilter,
}

DETECTOR_TYPES = {
    'template': TemplateMatcher,
    'template_matcher': TemplateMatcher,
    'feature': FeatureDetector,
    'feature_detector': FeatureDetector,
    'blob': BlobDetector,
    'edge': EdgeDetector,
}

_DESCRIPTOR_KEYS = ('type', 'name', 'enabled', 'params')


def _descriptor_params(descriptor: Dict) -> Dict:
    """Nested 'params' object, or the flat remainder of the descriptor."""
    params = descriptor.get('params')
    if isinstance(params, dict):
        return params
    return {k: v for k, v in descriptor.items() if k not in _DESCRIPTOR_KEYS}


def create_filter(filter_type: str, params: Optional[Dict] = None) -> FilterBase:
    """
    Create a filter by type name.

    Raises:
        ValueError: if the type is unknown
    """
    key = str(filter_type).lower()
    if key not in FILTER_TYPES:
        raise ValueError(f"Unknown filter type: {filter_type}")

    stage = FILTER_TYPES[key]()
    if params:
        stage.set_parameters(params)
    return stage


def create_detector(detector_type: str, params: Optional[Dict] = None) -> DetectorBase:
    """
    Create a detector by type name.

    Raises:
        ValueError: if the type is unknown
    """
    key = str(detector_type).lower()
    if key not in DETECTOR_TYPES:
        raise ValueError(f"Unknown detector type: {detector_type}")

    detector = DETECTOR_TYPES[key]()
    if params:
        detector.set_parameters(params)
    return detector


def build_pipeline(descriptors: List[Dict]) -> Pipeline:
    """Build a pipeline in descriptor order; unknown types are skipped."""
    pipeline = Pipeline()
    for descriptor in descriptors or []:
        try:
            stage = create_filter(descriptor.get('type', ''), _descriptor_params(descriptor))
        except ValueError as e:
            logger.warning(f"Skipping pipeline stage: {e}")
            continue
        stage.enabled = bool(descriptor.get('enabled', True))
        pipeline.add_filter(stage)

    logger.info(f"Pipeline built: {pipeline}")
    return pipeline


def build_detectors(descriptors: List[Dict]) -> List[DetectorBase]:
    """Build detectors in descriptor order; unknown types are skipped."""
    detectors = []
    for descriptor in descriptors or []:
        try:
            detector = create_detector(descriptor.get('type', ''), _descriptor_params(descriptor))
        except ValueError as e:
            logger.warning(f"Skipping detector: {e}")
            continue
        detector.enabled = bool(descriptor.get('enabled', True))
        detectors.append(detector)

    logger.info(f"Detectors built: {[d.name for d in detectors]}")
    return detectors
