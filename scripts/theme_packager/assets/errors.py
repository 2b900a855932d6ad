"""
Error taxonomy for the theme codecs.
Every codec surfaces one of these to its caller; none of them retries.
"""

from typing import Iterable, List, Optional


class ThemeCodecError(Exception):
    """Base exception for theme codec errors."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class MalformedAssetError(ThemeCodecError):
    """Exception raised when a bitmap or color asset has invalid data."""

    def __init__(self, message: str, asset_id: Optional[str] = None):
        super().__init__(message)
        self.asset_id = asset_id


class CorruptLayoutError(ThemeCodecError):
    """Exception raised when a layout map does not fit its atlas."""
    pass


class DanglingAssetReferenceError(ThemeCodecError):
    """Exception raised when a layout map references assets absent from the atlas."""

    def __init__(self, asset_ids: Iterable[str]):
        self.asset_ids: List[str] = sorted(asset_ids)
        super().__init__(
            f"Layout map references assets absent from the atlas: {', '.join(self.asset_ids)}"
        )


class UnsupportedPixelFormatError(ThemeCodecError):
    """Exception raised when an image is not RGBA-compatible."""

    def __init__(self, mode: str, path: Optional[str] = None):
        super().__init__(f"Unsupported pixel format '{mode}', expected RGBA", path)
        self.mode = mode


class MissingAssetError(ThemeCodecError):
    """Exception raised when a component directory lacks a listed asset file."""

    def __init__(self, asset_id: str, path: Optional[str] = None):
        super().__init__(f"Asset '{asset_id}' is listed in the manifest but its file is missing", path)
        self.asset_id = asset_id


class ManifestError(ThemeCodecError):
    """Exception raised when a component manifest is missing or unreadable."""
    pass


class InvalidArchiveError(ThemeCodecError):
    """Exception raised when a package container is structurally malformed."""
    pass


class OperationalError(ThemeCodecError):
    """Exception raised when the environment prevents reading or writing a path."""

    def __init__(self, message: str, path: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message, path)
        self.cause = cause


class CorruptPayloadError(ThemeCodecError):
    """Exception raised when a package payload does not match its checksum."""

    def __init__(self, expected: str, actual: str, path: Optional[str] = None):
        super().__init__(f"Package payload checksum mismatch: expected {expected}, got {actual}", path)
        self.expected = expected
        self.actual = actual


class ResourceExhaustedError(ThemeCodecError):
    """Exception raised when decoded size fields exceed what may be allocated."""

    def __init__(self, message: str, requested: Optional[int] = None, limit: Optional[int] = None):
        super().__init__(message)
        self.requested = requested
        self.limit = limit
