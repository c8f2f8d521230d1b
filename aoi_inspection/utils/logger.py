"""
Centralized Logging Configuration
Provides unified logging setup for the inspection engine and its front ends.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level=logging.INFO, log_to_file=True,
                  log_dir: Optional[Union[str, Path]] = None):
    """
    Setup centralized logging configuration.
    
    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: If True, also log to a dated file
        log_dir: Directory for log files (defaults to ./logs)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True
    )
    
    if log_to_file:
        log_dir = Path(log_dir) if log_dir else Path("logs")
        log_dir.mkdir(parents=True, exist_ok=True)
        log_filename = log_dir / f"inspection_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_filename, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logging.getLogger().addHandler(file_handler)
    
    # Quiet down chatty third-party loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
