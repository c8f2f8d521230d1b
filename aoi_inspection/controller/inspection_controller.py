"""
Inspection Controller
Orchestrates preprocessing, detection, confidence filtering, OK/NG judgment,
visualization and running statistics for each inspected image.

Concurrency: every inspect() call works on private clones of the pipeline
and the enabled detectors, taken under the controller lock. Per-call
detector statistics and controller totals are merged back under the same
lock, so concurrent calls never lose updates.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from ..config.settings import ControllerConfig
from ..storage.image_io import load_image
from ..utils.timer import PerformanceTimer, timed_operation
from ..vision.defect import Defect, defects_from_list, defects_to_list
from ..vision.detectors.base import DetectorBase
from ..vision.filters import apply_parameter, is_valid_image, to_float, to_int
from ..vision.pipeline import Pipeline
from ..vision.visualization import visualize_defects

logger = logging.getLogger(__name__)


def current_timestamp() -> str:
    """Local time with milliseconds, e.g. 2024-01-31 12:00:00.123"""
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]


@dataclass
class InspectionResult:
    """Result of one inspect() call."""
    success: bool = False
    error_message: str = ""
    original_image: Optional[np.ndarray] = None
    processed_image: Optional[np.ndarray] = None
    visualized_image: Optional[np.ndarray] = None
    defects: List[Defect] = field(default_factory=list)
    is_ok: bool = False
    preprocessing_time: float = 0.0
    detection_time: float = 0.0
    total_time: float = 0.0
    timestamp: str = ""
    intermediate_images: Dict[str, np.ndarray] = field(default_factory=dict)
    debug_images: Dict[str, Dict[str, np.ndarray]] = field(default_factory=dict)

    @property
    def defect_count(self) -> int:
        return len(self.defects)

    @property
    def status(self) -> str:
        return "OK" if self.is_ok else "NG"

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization (images are not included)."""
        return {
            'success': self.success,
            'errorMessage': self.error_message,
            'isOK': self.is_ok,
            'status': self.status,
            'defectCount': self.defect_count,
            'defects': defects_to_list(self.defects),
            'preprocessingTime': self.preprocessing_time,
            'detectionTime': self.detection_time,
            'totalTime': self.total_time,
            'timestamp': self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'InspectionResult':
        """Create from dictionary."""
        result = cls(
            success=bool(data.get('success', False)),
            error_message=data.get('errorMessage', ''),
            is_ok=bool(data.get('isOK', False)),
            preprocessing_time=float(data.get('preprocessingTime', 0.0)),
            detection_time=float(data.get('detectionTime', 0.0)),
            total_time=float(data.get('totalTime', 0.0)),
            timestamp=data.get('timestamp', ''),
        )
        if isinstance(data.get('defects'), list):
            result.defects = defects_from_list(data['defects'])
        return result

    def get_summary(self) -> str:
        """Get human-readable result summary."""
        if not self.success:
            return f"Inspection failed: {self.error_message}"

        lines = [
            f"Status: {self.status}",
            f"Defects: {self.defect_count}",
            f"Processing Time: {self.total_time:.2f} ms "
            f"(preprocess {self.preprocessing_time:.2f}, detect {self.detection_time:.2f})",
        ]
        for i, defect in enumerate(self.defects, 1):
            lines.append(f"  #{i} {defect.type_name} conf={defect.confidence:.2f} "
                         f"bbox={defect.bbox.as_tuple()}")
        return "\n".join(lines)


@dataclass
class InspectionStatistics:
    """Running totals across inspections."""
    total_inspections: int = 0
    total_defects_found: int = 0
    total_ng_count: int = 0
    total_processing_time_ms: float = 0.0

    def record(self, result: InspectionResult):
        self.total_inspections += 1
        self.total_defects_found += result.defect_count
        if not result.is_ok:
            self.total_ng_count += 1
        self.total_processing_time_ms += result.total_time

    def to_dict(self) -> Dict:
        count = self.total_inspections
        return {
            'total_inspections': count,
            'total_defects_found': self.total_defects_found,
            'total_ng_count': self.total_ng_count,
            'total_processing_time_ms': self.total_processing_time_ms,
            'average_processing_time_ms': self.total_processing_time_ms / count if count else 0.0,
            'average_defects_per_inspection': self.total_defects_found / count if count else 0.0,
            'ng_rate': self.total_ng_count / count if count else 0.0,
        }


class InspectionController:
    """
    Runs the inspection state machine:
    validate -> preprocess -> detect -> filter -> judge -> visualize -> record.
    """

    def __init__(self, config: Optional[ControllerConfig] = None,
                 pipeline: Optional[Pipeline] = None,
                 detectors: Optional[List[DetectorBase]] = None):
        """
        Initialize controller.

        Args:
            config: Judgment and visualization settings (defaults if None)
            pipeline: Preprocessing pipeline (empty if None)
            detectors: Initial detectors in registration order
        """
        self._config = replace(config) if config else ControllerConfig()
        self._config.validate()
        self._pipeline = pipeline if pipeline is not None else Pipeline()
        self._detectors: List[DetectorBase] = []
        self._statistics = InspectionStatistics()
        self._lock = threading.Lock()

        for detector in detectors or []:
            self.add_detector(detector)

        logger.info(f"InspectionController initialized ({len(self._detectors)} detectors, "
                    f"{len(self._pipeline)} filters)")

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> ControllerConfig:
        """Snapshot of the current configuration."""
        with self._lock:
            return replace(self._config)

    @property
    def pipeline(self) -> Pipeline:
        """Copy of the current pipeline; install changes with set_pipeline()."""
        with self._lock:
            return self._pipeline.clone()

    def set_pipeline(self, pipeline: Optional[Pipeline]):
        with self._lock:
            self._pipeline = pipeline if pipeline is not None else Pipeline()
        logger.info(f"Pipeline set: {self._pipeline}")

    def add_detector(self, detector: Optional[DetectorBase]):
        if detector is None:
            logger.warning("Attempted to add a null detector")
            return
        with self._lock:
            self._detectors.append(detector)
        logger.info(f"Detector added: {detector.name}")

    def clear_detectors(self):
        with self._lock:
            self._detectors.clear()

    def get_detector(self, index: int) -> Optional[DetectorBase]:
        """
        Registered detector at index, for reading its parameters and statistics.

        Change its parameters through configure_detector(), which holds the
        lock that inspect() takes while cloning detectors.
        """
        with self._lock:
            if 0 <= index < len(self._detectors):
                return self._detectors[index]
        return None

    def configure_detector(self, index: int, params: Dict) -> bool:
        """Apply parameters to a registered detector; False if index is out of range."""
        with self._lock:
            if not 0 <= index < len(self._detectors):
                logger.warning(f"No detector at index {index}")
                return False
            self._detectors[index].set_parameters(params)
        return True

    def describe_detectors(self) -> List[Dict]:
        """Name, type and parameters of every registered detector, read under the lock."""
        with self._lock:
            return [
                {
                    'index': i,
                    'name': detector.name,
                    'type': detector.detector_type,
                    'enabled': detector.enabled,
                    'confidence_threshold': detector.confidence_threshold,
                    'parameters': detector.get_parameters(),
                }
                for i, detector in enumerate(self._detectors)
            ]

    @property
    def detectors(self) -> List[DetectorBase]:
        with self._lock:
            return list(self._detectors)

    @property
    def detector_count(self) -> int:
        with self._lock:
            return len(self._detectors)

    def set_reference_image(self, image: Optional[np.ndarray]):
        """Give every registered detector the same reference image."""
        with self._lock:
            for detector in self._detectors:
                detector.set_reference_image(image)

    def set_judgment_criteria(self, max_defects: int, min_confidence: float):
        """
        Set OK/NG criteria.

        A non-numeric or negative defect limit, or a confidence that is not a
        number in [0, 1], is logged and the current value kept.
        """
        criteria = {'max_allowed_defects': max_defects, 'min_defect_confidence': min_confidence}
        with self._lock:
            apply_parameter(criteria, 'max_allowed_defects', to_int,
                            self._set_max_allowed_defects, "InspectionController")
            apply_parameter(criteria, 'min_defect_confidence', to_float,
                            self._set_min_defect_confidence, "InspectionController")

    def _set_max_allowed_defects(self, value: int) -> bool:
        if value < 0:
            return False
        self._config.max_allowed_defects = value
        return True

    def _set_min_defect_confidence(self, value: float) -> bool:
        if not 0.0 <= value <= 1.0:
            return False
        self._config.min_defect_confidence = value
        return True

    def set_visualization_enabled(self, enabled: bool):
        with self._lock:
            self._config.visualization_enabled = bool(enabled)

    def set_save_intermediate_images(self, enabled: bool):
        with self._lock:
            self._config.save_intermediate_images = bool(enabled)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def _snapshot(self) -> Tuple[ControllerConfig, Pipeline, List[Tuple[DetectorBase, DetectorBase]]]:
        """Private copies of configuration, pipeline and enabled detectors."""
        with self._lock:
            config = replace(self._config)
            pipeline = self._pipeline.clone()
            detectors = [(d, d.clone()) for d in self._detectors if d.enabled]
        return config, pipeline, detectors

    def inspect(self, image: np.ndarray) -> InspectionResult:
        """
        Inspect one image.

        Never raises: failures are reported through success/error_message.
        """
        total_timer = PerformanceTimer("Inspection").start()
        result = InspectionResult(timestamp=current_timestamp())

        # Validate
        if not is_valid_image(image):
            result.error_message = "Input image is empty"
            logger.error(result.error_message)
            return result

        config, pipeline, detectors = self._snapshot()
        result.original_image = image.copy()

        try:
            self._run(image, result, config, pipeline, detectors)
        except Exception as e:
            logger.exception("Exception during inspection")
            result.success = False
            result.error_message = f"Exception during inspection: {e}"

        result.total_time = total_timer.stop()

        # Record statistics
        with self._lock:
            for registered, worker in detectors:
                registered.merge_statistics(worker)
            self._statistics.record(result)

        logger.info(f"Inspection {result.status}: {result.defect_count} defects "
                    f"in {result.total_time:.2f}ms")
        return result

    def _run(self, image: np.ndarray, result: InspectionResult, config: ControllerConfig,
             pipeline: Pipeline, detectors: List[Tuple[DetectorBase, DetectorBase]]):
        # Preprocess
        processed = image.copy()
        if not pipeline.is_empty():
            timer = PerformanceTimer("Preprocessing").start()
            pipeline_result = pipeline.process_with_intermediates(image)
            result.preprocessing_time = timer.stop()

            if config.save_intermediate_images:
                for i, (name, stage_image) in enumerate(
                        zip(pipeline_result.filter_names, pipeline_result.intermediate_images)):
                    result.intermediate_images[f"{i:02d}_{name}"] = stage_image

            if not pipeline_result.success:
                result.error_message = f"Preprocessing failed: {pipeline_result.error_message}"
                logger.error(result.error_message)
                return
            processed = pipeline_result.final_image

        result.processed_image = processed.copy()

        # Detect
        all_defects: List[Defect] = []
        with timed_operation("Detection") as timer:
            for index, (_, detector) in enumerate(detectors):
                debug = {} if config.save_intermediate_images else None
                try:
                    defects = detector.detect(processed, debug)
                except Exception as e:
                    logger.error(f"Detector '{detector.name}' failed, counting zero defects: {e}")
                    defects = []
                all_defects.extend(defects)

                if debug:
                    key = detector.name if detector.name not in result.debug_images \
                        else f"{detector.name}_{index}"
                    result.debug_images[key] = debug
        result.detection_time = timer.elapsed_ms

        # Filter and judge
        result.defects = [
            d for d in all_defects
            if d.confidence >= config.min_defect_confidence and d.is_valid()
        ]
        result.is_ok = result.defect_count <= config.max_allowed_defects

        # Visualize
        if config.visualization_enabled:
            result.visualized_image = visualize_defects(image, result.defects)

        result.success = True

    def inspect_batch(self, images: List[np.ndarray]) -> List[InspectionResult]:
        return [self.inspect(image) for image in images]

    def inspect_file(self, filepath: Union[str, Path]) -> InspectionResult:
        """Load an image from disk and inspect it."""
        image = load_image(filepath)
        if image is None:
            result = InspectionResult(timestamp=current_timestamp())
            result.error_message = f"Failed to load image: {filepath}"
            return result
        return self.inspect(image)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict:
        with self._lock:
            stats = self._statistics.to_dict()
            stats['detector_count'] = len(self._detectors)
            stats['pipeline_filter_count'] = len(self._pipeline)
            stats['detectors'] = [d.get_statistics() for d in self._detectors]
        return stats

    def reset_statistics(self):
        with self._lock:
            self._statistics = InspectionStatistics()
            for detector in self._detectors:
                detector.reset_statistics()
        logger.info("Statistics reset")
