"""
Inspection Settings
Explicit configuration values for the controller, front ends and output.
Loaded from / saved to JSON; nothing here is a process-wide singleton.
"""

import copy
import json
import logging
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import ConfigError
from .paths import DataPaths

logger = logging.getLogger(__name__)


DEFAULT_PIPELINE: List[Dict[str, Any]] = [
    {'type': 'grayscale', 'enabled': True, 'params': {}},
    {'type': 'gaussian_blur', 'enabled': True, 'params': {'kernel_size': 5, 'sigma': 1.0}},
]

DEFAULT_DETECTORS: List[Dict[str, Any]] = [
    {'type': 'feature', 'enabled': True,
     'params': {'mode': 'adaptive', 'min_area': 100.0, 'max_area': 50000.0}},
]


def _filtered_kwargs(cls, data: Dict, section: str) -> Dict:
    """Keep only known dataclass fields, warning about the rest."""
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be an object", key=section)
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        logger.warning(f"Ignoring unknown keys in '{section}': {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in known}


@dataclass
class ControllerConfig:
    """Judgment and visualization settings for an InspectionController."""
    max_allowed_defects: int = 0
    min_defect_confidence: float = 0.5
    visualization_enabled: bool = True
    save_intermediate_images: bool = False

    def validate(self):
        """Raise ConfigError for out-of-range values."""
        if not isinstance(self.max_allowed_defects, int) or self.max_allowed_defects < 0:
            raise ConfigError("max_allowed_defects must be a non-negative integer",
                              key='max_allowed_defects')
        if not 0.0 <= float(self.min_defect_confidence) <= 1.0:
            raise ConfigError("min_defect_confidence must be within [0, 1]",
                              key='min_defect_confidence')

    @classmethod
    def from_dict(cls, data: Dict) -> 'ControllerConfig':
        config = cls(**_filtered_kwargs(cls, data, 'controller'))
        config.validate()
        return config


@dataclass
class ServerSettings:
    """Network front-end settings."""
    host: str = "0.0.0.0"
    trigger_enabled: bool = True
    trigger_port: int = 9000
    api_enabled: bool = True
    api_port: int = 8080
    max_connections: int = 10
    timeout_seconds: float = 30.0

    @classmethod
    def from_dict(cls, data: Dict) -> 'ServerSettings':
        return cls(**_filtered_kwargs(cls, data, 'server'))


@dataclass
class OutputSettings:
    """Result persistence settings."""
    csv_dir: str = str(DataPaths.CSV_DIR)
    image_dir: str = str(DataPaths.IMAGE_DIR)
    auto_save: bool = True
    include_defect_details: bool = True
    image_format: str = "png"

    @classmethod
    def from_dict(cls, data: Dict) -> 'OutputSettings':
        return cls(**_filtered_kwargs(cls, data, 'output'))


@dataclass
class InspectionSettings:
    """Complete configuration of an inspection deployment."""
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    pipeline: List[Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(DEFAULT_PIPELINE))
    detectors: List[Dict[str, Any]] = field(default_factory=lambda: copy.deepcopy(DEFAULT_DETECTORS))
    server: ServerSettings = field(default_factory=ServerSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    reference_image: Optional[str] = None
    log_level: str = "INFO"

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'InspectionSettings':
        """Create from dictionary, falling back to defaults for missing sections."""
        if not isinstance(data, dict):
            raise ConfigError("Settings root must be a JSON object")

        pipeline = data.get('pipeline', DEFAULT_PIPELINE)
        detectors = data.get('detectors', DEFAULT_DETECTORS)
        for name, section in (('pipeline', pipeline), ('detectors', detectors)):
            if not isinstance(section, list):
                raise ConfigError(f"'{name}' must be an array of descriptors", key=name)
            for descriptor in section:
                if not isinstance(descriptor, dict) or 'type' not in descriptor:
                    raise ConfigError(f"Every '{name}' entry needs a 'type'", key=name)

        return cls(
            controller=ControllerConfig.from_dict(data.get('controller', {})),
            pipeline=copy.deepcopy(pipeline),
            detectors=copy.deepcopy(detectors),
            server=ServerSettings.from_dict(data.get('server', {})),
            output=OutputSettings.from_dict(data.get('output', {})),
            reference_image=data.get('reference_image'),
            log_level=data.get('log_level', 'INFO'),
        )


def load_settings(filepath: Union[str, Path, None]) -> InspectionSettings:
    """
    Load settings from a JSON file.

    Args:
        filepath: Path to the JSON settings file

    Returns:
        InspectionSettings (defaults when the file does not exist)

    Raises:
        ConfigError: if the file is not valid JSON or has a malformed section
    """
    if filepath is None:
        return InspectionSettings()

    filepath = Path(filepath)
    if not filepath.exists():
        logger.warning(f"Settings file not found: {filepath}, using defaults")
        return InspectionSettings()

    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {filepath}: {e}") from e

    settings = InspectionSettings.from_dict(data)
    logger.info(f"Settings loaded from {filepath}")
    return settings


def save_settings(settings: InspectionSettings, filepath: Union[str, Path]) -> bool:
    """Save settings to a JSON file."""
    filepath = Path(filepath)
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w', encoding='utf-8') as f:
            json.dump(settings.to_dict(), f, indent=2)
        logger.info(f"Settings saved to {filepath}")
        return True
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        return False
