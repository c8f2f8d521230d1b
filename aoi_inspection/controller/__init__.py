"""
Controller Module
Inspection orchestration, judgment and statistics.
"""

from .inspection_controller import (
    InspectionController, InspectionResult, InspectionStatistics, current_timestamp
)

__all__ = ['InspectionController', 'InspectionResult', 'InspectionStatistics', 'current_timestamp']
