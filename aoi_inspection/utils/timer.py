"""
Timing helpers
Millisecond wall-clock timing for pipeline stages, detectors and inspections.
"""

import logging
import time
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerformanceTimer:
    """
    Millisecond stopwatch.

    start() returns the timer so it can be created and started in one line;
    stop() returns the elapsed milliseconds and keeps them in elapsed_ms.
    Also usable as a context manager.
    """

    def __init__(self, name="Operation"):
        self.name = name
        self._started_at = None
        self.elapsed_ms = 0.0

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self):
        self._started_at = time.perf_counter()
        return self

    def stop(self) -> float:
        if self._started_at is None:
            logger.warning(f"Timer '{self.name}' stopped before starting")
            return 0.0

        self.elapsed_ms = (time.perf_counter() - self._started_at) * 1000
        self._started_at = None
        return self.elapsed_ms

    def log_elapsed(self, level=logging.DEBUG):
        logger.log(level, f"{self.name}: {self.elapsed_ms:.2f} ms")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        if self.running:
            self.stop()
        return False


@contextmanager
def timed_operation(name="Operation", log_level=logging.DEBUG):
    """Time a block and log the result; the timer is stopped even if the block raises."""
    timer = PerformanceTimer(name).start()
    try:
        yield timer
    finally:
        timer.stop()
        timer.log_elapsed(log_level)
