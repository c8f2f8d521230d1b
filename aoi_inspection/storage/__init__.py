"""
Storage Module
Image I/O and result persistence (CSV, image archive).
"""

from .image_io import load_image, save_image, decode_base64_image, encode_image_base64
from .csv_writer import CSVWriter
from .image_saver import ImageSaver

__all__ = [
    'load_image', 'save_image', 'decode_base64_image', 'encode_image_base64',
    'CSVWriter', 'ImageSaver'
]
