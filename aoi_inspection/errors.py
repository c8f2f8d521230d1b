"""
Inspection error taxonomy.

InputError and StageError abort an inspection; DetectorError is isolated to a
single detector; ConfigError marks a rejected configuration value.
"""

from typing import Optional


class InspectionError(Exception):
    """Base class for all inspection engine errors."""


class InputError(InspectionError):
    """Empty or unreadable input image."""


class StageError(InspectionError):
    """A pipeline stage produced an invalid image."""

    def __init__(self, stage: str, message: Optional[str] = None):
        self.stage = stage
        super().__init__(message or f"Filter '{stage}' produced empty output")


class DetectorError(InspectionError):
    """A detector failed while processing an image."""

    def __init__(self, detector: str, message: str):
        self.detector = detector
        super().__init__(f"{detector}: {message}")


class ConfigError(InspectionError):
    """Malformed configuration value or file."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)
