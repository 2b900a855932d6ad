"""
Asset model and error taxonomy shared by the theme codecs.
"""

from .table import AssetKind, AssetRole, BitmapAsset, ColorAsset, AssetTable, Asset
from .errors import (
    ThemeCodecError,
    MalformedAssetError,
    CorruptLayoutError,
    DanglingAssetReferenceError,
    UnsupportedPixelFormatError,
    MissingAssetError,
    ManifestError,
    InvalidArchiveError,
    OperationalError,
    CorruptPayloadError,
    ResourceExhaustedError,
)

__all__ = [
    # Asset model
    "AssetKind",
    "AssetRole",
    "BitmapAsset",
    "ColorAsset",
    "AssetTable",
    "Asset",

    # Exceptions
    "ThemeCodecError",
    "MalformedAssetError",
    "CorruptLayoutError",
    "DanglingAssetReferenceError",
    "UnsupportedPixelFormatError",
    "MissingAssetError",
    "ManifestError",
    "InvalidArchiveError",
    "OperationalError",
    "CorruptPayloadError",
    "ResourceExhaustedError",
]
