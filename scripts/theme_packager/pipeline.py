"""
Theme operations coordinator.
Runs the save/load actions of a theme against the codecs and reports each
outcome, including failures, as an OperationResult.
"""

import time
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field

from .config import PackagerConfig
from .assets.errors import OperationalError, ThemeCodecError
from .assets.table import AssetTable
from .processing.cache import CacheImageCodec
from .processing.components import ComponentFileCodec
from .processing.source import SourceEmitter
from .processing.compatibility import CompatibilityOutcome, CompatibleWithLoss, Incompatible
from .processing.package import PackageArchive, PackageMetadata


class ThemeOperation(Enum):
    """Enumeration of theme operations."""
    SAVE_CACHE = "save_cache"
    LOAD_CACHE = "load_cache"
    SAVE_COMPONENTS = "save_components"
    LOAD_COMPONENTS = "load_components"
    SAVE_SOURCE = "save_source"
    READ_DEFAULTS = "read_defaults"
    WRITE_PACKAGE = "write_package"
    LOAD_PACKAGE = "load_package"


@dataclass
class OperationResult:
    """Result of a theme operation."""
    operation: ThemeOperation
    success: bool
    duration: float
    message: str
    table: Optional[AssetTable] = None
    outcome: Optional[CompatibilityOutcome] = None
    files: List[Path] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[ThemeCodecError] = None


class ThemePipeline:
    """
    Coordinates the theme codecs for a caller such as the CLI.

    Every operation takes its asset table or path explicitly; the pipeline
    keeps no current theme between calls. Codec errors are captured in the
    returned result rather than raised.
    """

    def __init__(self, config: Optional[PackagerConfig] = None,
                 known_ids: Optional[List[str]] = None):
        """
        Initialize the theme pipeline.

        Args:
            config: Packager configuration
            known_ids: Asset ids this build recognises when reading newer packages
        """
        self.config = config or PackagerConfig.default()
        self.logger = self._setup_logging()
        self.results: List[OperationResult] = []

        self.cache_codec = CacheImageCodec(self.config)
        self.component_codec = ComponentFileCodec(self.config)
        self.source_emitter = SourceEmitter(self.config)
        self.archive = PackageArchive(self.config, known_ids=known_ids)

    def _setup_logging(self) -> logging.Logger:
        """Set up logging for the pipeline."""
        logger = logging.getLogger("theme_packager")
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def save_cache(self, table: AssetTable, directory: Union[str, Path],
                   image_map: bool = True) -> OperationResult:
        """Write the image cache, and optionally its HTML image map, into `directory`."""
        def run(result: OperationResult) -> None:
            files = self.cache_codec.save(table, directory)
            result.files.extend([files.atlas, files.layout])
            if image_map:
                result.files.append(self.cache_codec.save_image_map(directory))
            result.message = f"Saved image cache to {files.atlas.parent}"

        return self._execute(ThemeOperation.SAVE_CACHE, run)

    def load_cache(self, directory: Union[str, Path]) -> OperationResult:
        """Read the image cache in `directory`."""
        def run(result: OperationResult) -> None:
            result.table = self.cache_codec.load(directory)
            result.message = f"Loaded image cache from {directory}"

        return self._execute(ThemeOperation.LOAD_CACHE, run)

    def save_components(self, table: AssetTable, directory: Union[str, Path]) -> OperationResult:
        """Write one file per bitmap plus the manifest into `directory`."""
        def run(result: OperationResult) -> None:
            count = self.component_codec.save(table, directory)
            result.data["files_written"] = count
            result.files.append(self.component_codec.manifest_path(directory))
            result.message = f"Saved {count} theme files to {directory}"

        return self._execute(ThemeOperation.SAVE_COMPONENTS, run)

    def load_components(self, directory: Union[str, Path]) -> OperationResult:
        """Read a component directory."""
        def run(result: OperationResult) -> None:
            result.table = self.component_codec.load(directory)
            result.message = f"Loaded theme files from {directory}"

        return self._execute(ThemeOperation.LOAD_COMPONENTS, run)

    def save_source(self, table: AssetTable, directory: Union[str, Path],
                    dialect: Optional[str] = None) -> OperationResult:
        """Write the source listing and the definitions listing into `directory`."""
        def run(result: OperationResult) -> None:
            result.files.extend(self.source_emitter.write(table, directory, dialect))
            result.message = f"Wrote theme source to {directory}"

        return self._execute(ThemeOperation.SAVE_SOURCE, run)

    def read_defaults(self) -> OperationResult:
        """Read the externally supplied fallback theme from `config.fallback_cache_dir`."""
        def run(result: OperationResult) -> None:
            if not self.config.fallback_cache_dir:
                raise OperationalError("No fallback theme is configured (set fallback_cache_dir)")
            result.table = self.cache_codec.load(self.config.fallback_cache_dir)
            result.message = f"Loaded default theme from {self.config.fallback_cache_dir}"

        return self._execute(ThemeOperation.READ_DEFAULTS, run)

    def write_package(self, table: AssetTable, path: Union[str, Path],
                      metadata: Optional[PackageMetadata] = None) -> OperationResult:
        """Write `table` as a package file."""
        def run(result: OperationResult) -> None:
            result.files.append(self.archive.write(table, metadata, path))
            result.message = f"Wrote theme package {path}"

        return self._execute(ThemeOperation.WRITE_PACKAGE, run)

    def load_package(self, path: Union[str, Path]) -> OperationResult:
        """
        Open, validate and materialize a package.

        An incompatible package is reported as an unsuccessful result carrying
        its outcome; dropped assets of a newer package are reported as warnings.
        """
        def run(result: OperationResult) -> None:
            raw = self.archive.open(path)
            outcome = self.archive.validate(raw)
            result.outcome = outcome

            if isinstance(outcome, Incompatible):
                result.success = False
                result.message = f"Theme package incompatible with this version: {outcome.reason}"
                result.errors.append(outcome.reason)
                return

            if isinstance(outcome, CompatibleWithLoss):
                result.warnings.extend(f"Dropped unknown asset '{asset_id}'" for asset_id in outcome.dropped_ids)
            result.table = self.archive.materialize(raw)
            result.data["attributes"] = dict(raw.metadata.attributes)
            result.message = "Package OK"

        return self._execute(ThemeOperation.LOAD_PACKAGE, run)

    def _execute(self, operation: ThemeOperation,
                 handler: Callable[[OperationResult], None]) -> OperationResult:
        """
        Run one operation with timing and error capture.

        Args:
            operation: Operation being run
            handler: Callable filling in the result; may clear `success`
        """
        self.logger.info(f"Executing operation: {operation.value}")
        start_time = time.time()
        result = OperationResult(operation=operation, success=True, duration=0.0, message="")

        try:
            handler(result)
        except ThemeCodecError as e:
            result.success = False
            result.message = f"Operation {operation.value} failed: {e}"
            result.errors.append(str(e))
            result.error = e

        result.duration = time.time() - start_time
        if result.success:
            self.logger.info(f"Operation {operation.value} completed in {result.duration:.2f}s")
            for warning in result.warnings:
                self.logger.warning(warning)
        else:
            self.logger.error(f"Operation {operation.value} failed after {result.duration:.2f}s: "
                              f"{'; '.join(result.errors)}")

        self.results.append(result)
        return result
