"""
Result Image Archiver
Saves original, processed and visualized images of an inspection result.
"""

import itertools
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

import cv2

from .image_io import save_image

if TYPE_CHECKING:
    from ..controller.inspection_controller import InspectionResult

logger = logging.getLogger(__name__)

IMAGE_KINDS = ('original', 'processed', 'visualized')


class ImageSaver:
    """Archives result images into per-kind subdirectories."""

    def __init__(self, output_dir: Union[str, Path], prefix: str = "inspection",
                 image_format: str = "png", create_subdirectories: bool = True):
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.image_format = image_format.lstrip('.').lower()
        self.create_subdirectories = create_subdirectories
        self.jpeg_quality = 95
        self.png_compression = 3
        self._lock = threading.Lock()
        self._sequence = itertools.count()

    def generate_filename(self, kind: str) -> str:
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        # sequence keeps names unique when several threads save in the same microsecond
        with self._lock:
            sequence = next(self._sequence)
        return f"{self.prefix}_{kind}_{timestamp}_{sequence:06d}.{self.image_format}"

    def save_images(self, result: 'InspectionResult',
                    kinds: Optional[Sequence[str]] = None) -> List[Path]:
        """
        Save the requested image kinds of a result.

        Args:
            result: Inspection result
            kinds: Subset of ('original', 'processed', 'visualized'); all if None

        Returns:
            Paths of the files written (empty images are skipped)
        """
        saved: List[Path] = []
        for kind in kinds or IMAGE_KINDS:
            if kind not in IMAGE_KINDS:
                logger.warning(f"Unknown image kind: {kind}")
                continue

            image = getattr(result, f"{kind}_image")
            if image is None or image.size == 0:
                continue

            path = self.save(image, kind)
            if path is not None:
                saved.append(path)

        return saved

    def save(self, image, kind: str, filename: Optional[str] = None) -> Optional[Path]:
        target_dir = self.output_dir / kind if self.create_subdirectories else self.output_dir
        filepath = target_dir / (filename or self.generate_filename(kind))

        if self.image_format in ('jpg', 'jpeg'):
            params = [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality]
        elif self.image_format == 'png':
            params = [cv2.IMWRITE_PNG_COMPRESSION, self.png_compression]
        else:
            params = []

        if not save_image(image, filepath, params):
            return None
        logger.info(f"Image saved: {filepath} ({image.shape[1]}x{image.shape[0]})")
        return filepath
