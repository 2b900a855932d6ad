"""
Codecs for packing, caching, emitting and archiving theme asset tables.
"""

from .atlas import AtlasLayoutEngine, AtlasConfig, AtlasLayout, LayoutEntry, Rectangle
from .cache import CacheImageCodec, CacheFiles
from .components import ComponentFileCodec, component_file_name
from .source import SourceEmitter
from .compatibility import (
    Compatible,
    CompatibleWithLoss,
    Incompatible,
    CompatibilityOutcome,
    evaluate_compatibility
)
from .package import (
    PackageArchive,
    PackageMetadata,
    RawPackage,
    PackageStateError,
    CODEC_FORMAT_VERSION
)

__all__ = [
    "AtlasLayoutEngine",
    "AtlasConfig",
    "AtlasLayout",
    "LayoutEntry",
    "Rectangle",
    "CacheImageCodec",
    "CacheFiles",
    "ComponentFileCodec",
    "component_file_name",
    "SourceEmitter",
    "Compatible",
    "CompatibleWithLoss",
    "Incompatible",
    "CompatibilityOutcome",
    "evaluate_compatibility",
    "PackageArchive",
    "PackageMetadata",
    "RawPackage",
    "PackageStateError",
    "CODEC_FORMAT_VERSION",
]
