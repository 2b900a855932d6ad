"""
Tests for the theme operations coordinator.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

from ..assets.errors import InvalidArchiveError, MissingAssetError, OperationalError
from ..assets.table import AssetRole, AssetTable, BitmapAsset, ColorAsset
from ..config import PackagerConfig
from ..pipeline import ThemeOperation, ThemePipeline
from ..processing.compatibility import Compatible, CompatibleWithLoss, Incompatible
from ..processing.package import CODEC_FORMAT_VERSION, PackageArchive, PackageMetadata


class TestThemePipeline(unittest.TestCase):
    """Test ThemePipeline operations."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config = PackagerConfig()
        self.pipeline = ThemePipeline(self.config)
        self.table = AssetTable([
            BitmapAsset.solid("icon.a", 4, 4, (255, 0, 0, 255), AssetRole.ICON),
            ColorAsset("color.bg", (0, 0, 0, 255)),
        ])

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_cache_round_trip(self):
        """Test saving and loading the image cache."""
        saved = self.pipeline.save_cache(self.table, self.temp_dir)
        loaded = self.pipeline.load_cache(self.temp_dir)

        self.assertTrue(saved.success)
        self.assertEqual(saved.operation, ThemeOperation.SAVE_CACHE)
        self.assertEqual([p.suffix for p in saved.files], [".png", ".json", ".html"])
        self.assertEqual([p.stem.split(".")[0] for p in saved.files], ["ImageCache"] * 3)
        self.assertTrue(loaded.success)
        self.assertEqual(loaded.table, self.table)

    def test_save_cache_without_image_map(self):
        """Test that the image map is optional."""
        result = self.pipeline.save_cache(self.table, self.temp_dir, image_map=False)

        self.assertEqual(len(result.files), 2)
        self.assertFalse((self.temp_dir / "ImageCache.html").exists())

    def test_components_round_trip(self):
        """Test saving and loading component files."""
        saved = self.pipeline.save_components(self.table, self.temp_dir)
        loaded = self.pipeline.load_components(self.temp_dir)

        self.assertEqual(saved.data["files_written"], 2)
        self.assertEqual(loaded.table, self.table)

    def test_component_error_is_reported(self):
        """Test that codec errors are captured in the result."""
        self.pipeline.save_components(self.table, self.temp_dir)
        next(self.temp_dir.glob("icon.a.*.png")).unlink()

        result = self.pipeline.load_components(self.temp_dir)

        self.assertFalse(result.success)
        self.assertIsInstance(result.error, MissingAssetError)
        self.assertIsNone(result.table)
        self.assertEqual(len(result.errors), 1)

    def test_save_source(self):
        """Test writing source listings."""
        result = self.pipeline.save_source(self.table, self.temp_dir, "python")

        self.assertTrue(result.success)
        self.assertEqual([p.name for p in result.files], ["ThemeAsCode.py", "ThemeDefinitions.txt"])

    def test_read_defaults_unconfigured(self):
        """Test that reading defaults without a fallback theme fails cleanly."""
        result = self.pipeline.read_defaults()

        self.assertFalse(result.success)
        self.assertIsInstance(result.error, OperationalError)

    def test_read_defaults(self):
        """Test reading the configured fallback theme."""
        fallback = self.temp_dir / "light"
        self.pipeline.save_cache(self.table, fallback)

        pipeline = ThemePipeline(PackagerConfig(fallback_cache_dir=str(fallback)))
        result = pipeline.read_defaults()

        self.assertTrue(result.success)
        self.assertEqual(result.table, self.table)

    def test_package_round_trip(self):
        """Test writing and loading a package."""
        path = self.temp_dir / "theme.thmpkg"
        written = self.pipeline.write_package(self.table, path, PackageMetadata(attributes={"name": "Dark"}))
        loaded = self.pipeline.load_package(path)

        self.assertTrue(written.success)
        self.assertTrue(loaded.success)
        self.assertEqual(loaded.outcome, Compatible())
        self.assertEqual(loaded.table, self.table)
        self.assertEqual(loaded.data["attributes"], {"name": "Dark"})

    def test_load_newer_package(self):
        """Test that dropped assets are reported as warnings."""
        path = self.temp_dir / "theme.thmpkg"
        PackageArchive(self.config, format_version=CODEC_FORMAT_VERSION + 1).write(
            self.table, PackageMetadata(min_compatible_version=CODEC_FORMAT_VERSION), path
        )

        result = ThemePipeline(self.config, known_ids=["color.bg"]).load_package(path)

        self.assertTrue(result.success)
        self.assertIsInstance(result.outcome, CompatibleWithLoss)
        self.assertEqual(result.outcome.dropped_ids, ["icon.a"])
        self.assertEqual(result.table.ids(), ["color.bg"])
        self.assertEqual(len(result.warnings), 1)

    def test_load_incompatible_package(self):
        """Test that incompatible packages are reported, not raised."""
        path = self.temp_dir / "theme.thmpkg"
        PackageArchive(self.config, format_version=CODEC_FORMAT_VERSION + 1).write(
            self.table, PackageMetadata(min_compatible_version=CODEC_FORMAT_VERSION + 1), path
        )

        result = self.pipeline.load_package(path)

        self.assertFalse(result.success)
        self.assertIsInstance(result.outcome, Incompatible)
        self.assertIsNone(result.table)
        self.assertIsNone(result.error)

    def test_load_invalid_package(self):
        """Test that archive errors are reported with their class."""
        path = self.temp_dir / "theme.thmpkg"
        path.write_bytes(b"not a package at all")

        result = self.pipeline.load_package(path)

        self.assertFalse(result.success)
        self.assertIsInstance(result.error, InvalidArchiveError)

    def test_results_are_recorded(self):
        """Test that every operation is kept in the result history."""
        self.pipeline.save_cache(self.table, self.temp_dir)
        self.pipeline.read_defaults()

        self.assertEqual([r.operation for r in self.pipeline.results],
                         [ThemeOperation.SAVE_CACHE, ThemeOperation.READ_DEFAULTS])
        self.assertTrue(all(r.duration >= 0 for r in self.pipeline.results))


if __name__ == "__main__":
    unittest.main()
