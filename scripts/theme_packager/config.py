"""
Configuration management for the theme packager.
Supports TOML and JSON configuration files with environment overrides and validation.
"""

import os
import json
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Any, Union
from pathlib import Path

import toml


@dataclass
class PackagerConfig:
    """Main configuration class for the theme packager."""

    # Atlas layout
    atlas_width: int = 512
    atlas_padding: int = 0

    # Output settings
    compression_level: int = 6
    cache_name: str = "ImageCache"
    manifest_name: str = "theme.toml"
    source_dialect: str = "c"
    output_dir: str = "theme"

    # Decode limits
    max_atlas_pixels: int = 16 * 1024 * 1024
    max_package_bytes: int = 256 * 1024 * 1024
    max_package_entries: int = 64

    # Externally supplied default theme (an image cache directory)
    fallback_cache_dir: Optional[str] = None

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "PackagerConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            return cls._from_dict(toml.load(str(config_path)))
        elif config_path.suffix.lower() == '.json':
            with open(config_path, 'r') as f:
                return cls._from_dict(json.load(f))
        else:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "PackagerConfig":
        """Create configuration from dictionary."""
        config_data = {}

        if 'atlas' in data:
            atlas = data['atlas']
            config_data['atlas_width'] = atlas.get('width', 512)
            config_data['atlas_padding'] = atlas.get('padding', 0)

        if 'output' in data:
            output = data['output']
            config_data['compression_level'] = output.get('compression_level', 6)
            config_data['cache_name'] = output.get('cache_name', 'ImageCache')
            config_data['manifest_name'] = output.get('manifest_name', 'theme.toml')
            config_data['source_dialect'] = output.get('source_dialect', 'c')
            config_data['output_dir'] = output.get('dir', 'theme')

        if 'limits' in data:
            limits = data['limits']
            config_data['max_atlas_pixels'] = limits.get('max_atlas_pixels', 16 * 1024 * 1024)
            config_data['max_package_bytes'] = limits.get('max_package_bytes', 256 * 1024 * 1024)
            config_data['max_package_entries'] = limits.get('max_package_entries', 64)

        if 'defaults' in data:
            config_data['fallback_cache_dir'] = data['defaults'].get('fallback_cache_dir')

        return cls(**config_data)

    @classmethod
    def default(cls) -> "PackagerConfig":
        """Create default configuration with environment variable overrides."""
        return cls._apply_env_overrides(cls())

    @classmethod
    def _apply_env_overrides(cls, config: "PackagerConfig") -> "PackagerConfig":
        """Apply environment variable overrides to configuration."""
        if os.getenv('THEME_PACKAGER_ATLAS_WIDTH'):
            config.atlas_width = int(os.getenv('THEME_PACKAGER_ATLAS_WIDTH', '512'))

        if os.getenv('THEME_PACKAGER_ATLAS_PADDING'):
            config.atlas_padding = int(os.getenv('THEME_PACKAGER_ATLAS_PADDING', '0'))

        if os.getenv('THEME_PACKAGER_COMPRESSION_LEVEL'):
            config.compression_level = int(os.getenv('THEME_PACKAGER_COMPRESSION_LEVEL', '6'))

        if os.getenv('THEME_PACKAGER_CACHE_NAME'):
            config.cache_name = os.getenv('THEME_PACKAGER_CACHE_NAME', 'ImageCache')

        if os.getenv('THEME_PACKAGER_SOURCE_DIALECT'):
            config.source_dialect = os.getenv('THEME_PACKAGER_SOURCE_DIALECT', 'c')

        if os.getenv('THEME_PACKAGER_OUTPUT_DIR'):
            config.output_dir = os.getenv('THEME_PACKAGER_OUTPUT_DIR', 'theme')

        if os.getenv('THEME_PACKAGER_MAX_ATLAS_PIXELS'):
            config.max_atlas_pixels = int(os.getenv('THEME_PACKAGER_MAX_ATLAS_PIXELS', str(16 * 1024 * 1024)))

        if os.getenv('THEME_PACKAGER_MAX_PACKAGE_BYTES'):
            config.max_package_bytes = int(os.getenv('THEME_PACKAGER_MAX_PACKAGE_BYTES', str(256 * 1024 * 1024)))

        if os.getenv('THEME_PACKAGER_FALLBACK_CACHE_DIR'):
            config.fallback_cache_dir = os.getenv('THEME_PACKAGER_FALLBACK_CACHE_DIR')

        return config

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if self.atlas_width <= 0:
            errors.append("atlas_width must be positive")

        if self.atlas_padding < 0:
            errors.append("atlas_padding cannot be negative")

        if not 0 <= self.compression_level <= 9:
            errors.append("compression_level must be between 0 and 9")

        if self.source_dialect not in ('c', 'python'):
            errors.append("source_dialect must be 'c' or 'python'")

        if not self.cache_name or '/' in self.cache_name or '\\' in self.cache_name:
            errors.append("cache_name must be a plain file name")

        for name in ('max_atlas_pixels', 'max_package_bytes', 'max_package_entries'):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")

        return errors


ENV_VARS = [
    ("THEME_PACKAGER_ATLAS_WIDTH", "Shelf width of the packed atlas in pixels", "512"),
    ("THEME_PACKAGER_ATLAS_PADDING", "Gap between packed bitmaps in pixels", "0"),
    ("THEME_PACKAGER_COMPRESSION_LEVEL", "PNG compression level (0-9)", "6"),
    ("THEME_PACKAGER_CACHE_NAME", "Base name of the image cache files", "ImageCache"),
    ("THEME_PACKAGER_SOURCE_DIALECT", "Source emission dialect (c/python)", "c"),
    ("THEME_PACKAGER_OUTPUT_DIR", "Default output directory", "theme"),
    ("THEME_PACKAGER_MAX_ATLAS_PIXELS", "Largest atlas accepted when decoding", "16777216"),
    ("THEME_PACKAGER_MAX_PACKAGE_BYTES", "Largest package accepted when opening", "268435456"),
    ("THEME_PACKAGER_FALLBACK_CACHE_DIR", "Image cache directory used by 'defaults'", "themes/light"),
]
