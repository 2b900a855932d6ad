"""
Utility modules for image handling, atomic file publishing and text templates.
"""

from .image import ImageUtils
from .atomic import (
    atomic_write, write_bytes_atomic, write_text_atomic, read_bytes, content_file_name, discard
)
from .templates import create_environment

__all__ = [
    "ImageUtils",
    "atomic_write",
    "write_bytes_atomic",
    "write_text_atomic",
    "read_bytes",
    "content_file_name",
    "discard",
    "create_environment",
]
