"""
Configuration management module.
"""

from .paths import DataPaths, get_log_dir
from .settings import (
    ControllerConfig, ServerSettings, OutputSettings, InspectionSettings,
    DEFAULT_PIPELINE, DEFAULT_DETECTORS, load_settings, save_settings
)

__all__ = [
    'DataPaths', 'get_log_dir',
    'ControllerConfig', 'ServerSettings', 'OutputSettings', 'InspectionSettings',
    'DEFAULT_PIPELINE', 'DEFAULT_DETECTORS', 'load_settings', 'save_settings'
]
