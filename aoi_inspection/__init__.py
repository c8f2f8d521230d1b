"""
AOI Defect Inspection Engine
Preprocessing pipeline, pluggable defect detectors and OK/NG judgment.
"""

__version__ = "1.0.0"
