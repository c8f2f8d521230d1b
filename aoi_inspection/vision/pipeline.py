"""
Preprocessing Pipeline
Ordered chain of filter stages run before detection.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from ..errors import StageError
from ..utils.timer import PerformanceTimer
from .filters import FilterBase, is_valid_image

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""
    success: bool = False
    error_message: str = ""
    failed_stage: Optional[str] = None
    final_image: Optional[np.ndarray] = None
    intermediate_images: List[np.ndarray] = field(default_factory=list)
    filter_names: List[str] = field(default_factory=list)
    processing_times: List[float] = field(default_factory=list)
    total_time_ms: float = 0.0


class Pipeline:
    """
    Ordered list of preprocessing filters.

    Disabled stages are skipped. A stage that returns an invalid image (or
    raises) aborts the run; the result then carries the last good image and
    the name of the failing stage.
    """

    def __init__(self, filters: Optional[List[FilterBase]] = None):
        self._filters: List[FilterBase] = []
        for f in filters or []:
            self.add_filter(f)

    def add_filter(self, filter_stage: Optional[FilterBase]):
        if filter_stage is None:
            logger.warning("Pipeline: Attempted to add a null filter")
            return
        self._filters.append(filter_stage)
        logger.debug(f"Pipeline: Added filter '{filter_stage.name}' (total: {len(self._filters)})")

    def remove_filter(self, index: int) -> bool:
        """Remove the filter at index; returns False when out of range."""
        if not 0 <= index < len(self._filters):
            logger.warning(f"Pipeline: Invalid filter index {index}")
            return False
        removed = self._filters.pop(index)
        logger.debug(f"Pipeline: Removed filter '{removed.name}'")
        return True

    def clear(self):
        self._filters.clear()

    def get_filter(self, index: int) -> Optional[FilterBase]:
        if not 0 <= index < len(self._filters):
            return None
        return self._filters[index]

    @property
    def filters(self) -> List[FilterBase]:
        return list(self._filters)

    def filter_names(self) -> List[str]:
        return [f.name for f in self._filters]

    def __len__(self):
        return len(self._filters)

    def is_empty(self) -> bool:
        return not self._filters

    def process(self, image: np.ndarray) -> PipelineResult:
        """Run all enabled stages; only the final image is kept."""
        return self._run(image, keep_intermediates=False)

    def process_with_intermediates(self, image: np.ndarray) -> PipelineResult:
        """Run all enabled stages, keeping the input and every stage output."""
        return self._run(image, keep_intermediates=True)

    def _run(self, image: np.ndarray, keep_intermediates: bool) -> PipelineResult:
        result = PipelineResult()

        if not is_valid_image(image):
            result.error_message = "Input image is empty"
            logger.error("Pipeline: Input image is empty")
            return result

        total_timer = PerformanceTimer("Pipeline").start()
        current = image.copy()

        if keep_intermediates:
            result.intermediate_images.append(current.copy())
            result.filter_names.append("Input")
            result.processing_times.append(0.0)

        for index, stage in enumerate(self._filters):
            if not stage.enabled:
                logger.debug(f"Pipeline: Skipping disabled filter '{stage.name}'")
                continue

            with PerformanceTimer(stage.name) as stage_timer:
                try:
                    output = stage.process(current)
                except Exception as e:
                    logger.exception(f"Pipeline: Filter '{stage.name}' raised")
                    output = None
                    reason = str(e)
                else:
                    reason = "invalid output"
            stage_ms = stage_timer.elapsed_ms

            if not is_valid_image(output):
                error = StageError(stage.name, f"Filter '{stage.name}' (stage {index}) failed: {reason}")
                result.failed_stage = error.stage
                result.error_message = str(error)
                result.final_image = current
                result.total_time_ms = total_timer.stop()
                logger.error(f"Pipeline: {result.error_message}")
                return result

            current = output
            if keep_intermediates:
                result.intermediate_images.append(current.copy())
                result.filter_names.append(stage.name)
                result.processing_times.append(stage_ms)

        result.success = True
        result.final_image = current
        result.total_time_ms = total_timer.stop()
        logger.debug(f"Pipeline: Processed {len(self._filters)} filters in {result.total_time_ms:.2f}ms")
        return result

    def clone(self) -> 'Pipeline':
        """Deep copy: every stage is cloned."""
        return Pipeline([f.clone() for f in self._filters])

    def to_config(self) -> List[Dict]:
        """Ordered list of stage descriptors."""
        return [f.to_config() for f in self._filters]

    @classmethod
    def from_config(cls, descriptors: List[Dict]) -> 'Pipeline':
        """Build a pipeline from descriptors (unknown types are skipped)."""
        from .factory import build_pipeline
        return build_pipeline(descriptors)

    def __repr__(self):
        return f"Pipeline({' -> '.join(self.filter_names()) or 'empty'})"
