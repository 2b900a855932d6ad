"""
Theme Packager

Packs theme bitmaps and colors into an image cache, a component directory,
embeddable source data or a versioned, checksummed package, and reads them
back into an asset table.
"""

__version__ = "1.0.0"
__author__ = "Theme Packager Development Team"

from .config import PackagerConfig
from .assets import AssetTable, BitmapAsset, ColorAsset, AssetRole, ThemeCodecError
from .processing.atlas import AtlasLayoutEngine
from .processing.cache import CacheImageCodec
from .processing.components import ComponentFileCodec
from .processing.source import SourceEmitter
from .processing.package import PackageArchive, PackageMetadata

__all__ = [
    "PackagerConfig",
    "AssetTable",
    "BitmapAsset",
    "ColorAsset",
    "AssetRole",
    "ThemeCodecError",
    "AtlasLayoutEngine",
    "CacheImageCodec",
    "ComponentFileCodec",
    "SourceEmitter",
    "PackageArchive",
    "PackageMetadata",
]
