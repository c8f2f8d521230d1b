"""
Utility modules for the inspection system.
"""

from .logger import setup_logging
from .timer import PerformanceTimer, timed_operation

__all__ = ['setup_logging', 'PerformanceTimer', 'timed_operation']
