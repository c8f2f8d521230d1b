"""
Centralized Path Configuration
Manages default output locations for inspection results.
"""

import os
from pathlib import Path


class DataPaths:
    """Centralized path configuration for data storage."""

    # Working root (overridable for deployments and tests)
    PROJECT_ROOT = Path(os.environ.get("AOI_INSPECTION_ROOT", Path.cwd()))

    # Data directories
    DATA_DIR = PROJECT_ROOT / "data"
    OUTPUT_DIR = DATA_DIR / "output"
    CSV_DIR = OUTPUT_DIR / "csv"
    IMAGE_DIR = OUTPUT_DIR / "images"

    # Log directory
    LOGS_DIR = PROJECT_ROOT / "logs"


def get_log_dir():
    """Get log directory path."""
    DataPaths.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    return DataPaths.LOGS_DIR
