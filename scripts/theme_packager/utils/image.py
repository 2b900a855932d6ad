"""
Image processing utilities for the theme codecs.
"""

import io
from typing import Optional, Tuple

import numpy as np
from PIL import Image, PngImagePlugin

from ..assets.errors import ResourceExhaustedError, UnsupportedPixelFormatError

# Modes that convert to RGBA without losing information
RGBA_COMPATIBLE_MODES = ("RGBA", "RGB")


class ImageUtils:
    """Utility class for common image operations."""

    @staticmethod
    def load_image(data: bytes, max_pixels: Optional[int] = None) -> Image.Image:
        """
        Decode image bytes and force the pixel data to load.

        Args:
            data: Encoded image bytes
            max_pixels: Largest pixel count accepted before decoding

        Returns:
            PIL Image object

        Raises:
            ValueError: If data cannot be decoded as an image
            ResourceExhaustedError: If the declared size exceeds `max_pixels`
                or the decoder runs out of memory
        """
        try:
            image = Image.open(io.BytesIO(data))
        except Image.DecompressionBombError as e:
            raise ResourceExhaustedError(f"Image is too large to decode: {e}")
        except Exception as e:
            raise ValueError(f"Cannot load image from bytes: {e}")

        width, height = image.size
        if max_pixels is not None and width * height > max_pixels:
            raise ResourceExhaustedError(
                f"Image size {width}x{height} exceeds the limit of {max_pixels} pixels",
                width * height, max_pixels
            )

        try:
            image.load()
        except MemoryError:
            raise ResourceExhaustedError(f"Out of memory decoding {width}x{height} image", width * height)
        except Image.DecompressionBombError as e:
            raise ResourceExhaustedError(f"Image is too large to decode: {e}")
        except Exception as e:
            raise ValueError(f"Cannot decode image data: {e}")
        return image

    @staticmethod
    def ensure_rgba(image: Image.Image, path: Optional[str] = None) -> Image.Image:
        """
        Convert an RGBA-compatible image to RGBA mode.

        Raises:
            UnsupportedPixelFormatError: If the image mode is not RGBA-compatible
        """
        if image.mode not in RGBA_COMPATIBLE_MODES:
            raise UnsupportedPixelFormatError(image.mode, path)
        if image.mode != 'RGBA':
            return image.convert('RGBA')
        return image

    @staticmethod
    def encode_png(image: Image.Image, compress_level: int = 6,
                   text: Optional[dict] = None) -> bytes:
        """
        Encode an image as PNG bytes.

        Args:
            image: Image to encode
            compress_level: zlib compression level
            text: Optional text chunks to embed

        Returns:
            PNG file contents
        """
        pnginfo = None
        if text:
            pnginfo = PngImagePlugin.PngInfo()
            for key in sorted(text):
                pnginfo.add_text(key, text[key])

        buffer = io.BytesIO()
        image.save(buffer, format='PNG', compress_level=compress_level, pnginfo=pnginfo)
        return buffer.getvalue()

    @staticmethod
    def to_array(pixels: bytes, size: Tuple[int, int]) -> np.ndarray:
        """View an RGBA byte buffer as a (height, width, 4) array."""
        width, height = size
        return np.frombuffer(pixels, dtype=np.uint8).reshape((height, width, 4))

