"""
Tests for atomic file publishing.
"""

import os
import shutil
import stat
import tempfile
import unittest
from pathlib import Path

from ..assets.errors import OperationalError
from ..utils.atomic import atomic_write, content_file_name, discard, write_bytes_atomic


def _mode(path: Path) -> int:
    return stat.S_IMODE(path.stat().st_mode)


class TestAtomicWrite(unittest.TestCase):
    """Test publishing files through temporary copies."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_write_replaces_content(self):
        """Test that the destination holds the new bytes."""
        path = self.temp_dir / "theme.toml"
        path.write_bytes(b"old")

        write_bytes_atomic(path, b"new")

        self.assertEqual(path.read_bytes(), b"new")
        self.assertEqual(os.listdir(self.temp_dir), ["theme.toml"])

    @unittest.skipIf(os.name == "nt", "POSIX permissions only")
    def test_new_file_follows_umask(self):
        """Test that a new file gets the usual umask-derived permissions."""
        previous = os.umask(0o022)
        try:
            path = write_bytes_atomic(self.temp_dir / "ImageCache.json", b"{}")
        finally:
            os.umask(previous)

        self.assertEqual(_mode(path), 0o644)

    @unittest.skipIf(os.name == "nt", "POSIX permissions only")
    def test_replaced_file_keeps_mode(self):
        """Test that replacing a file keeps its permissions."""
        path = self.temp_dir / "theme.toml"
        path.write_bytes(b"old")
        os.chmod(path, 0o640)

        write_bytes_atomic(path, b"new")

        self.assertEqual(_mode(path), 0o640)

    def test_failed_verify_keeps_destination(self):
        """Test that a rejected temporary file is discarded and the old file kept."""
        path = self.temp_dir / "dark.thmpkg"
        path.write_bytes(b"old")

        def reject(temp_path):
            raise ValueError(f"{temp_path.name} is not a package")

        with self.assertRaises(ValueError):
            write_bytes_atomic(path, b"new", verify=reject)

        self.assertEqual(path.read_bytes(), b"old")
        self.assertEqual(os.listdir(self.temp_dir), ["dark.thmpkg"])

    def test_error_inside_block_discards_temporary(self):
        """Test that an exception while writing leaves no temporary file."""
        with self.assertRaises(RuntimeError):
            with atomic_write(self.temp_dir / "ImageCache.json") as handle:
                handle.write(b"partial")
                raise RuntimeError("interrupted")

        self.assertEqual(os.listdir(self.temp_dir), [])

    def test_unwritable_destination(self):
        """Test that a destination that cannot be created is an operational error."""
        blocker = self.temp_dir / "file"
        blocker.write_bytes(b"")

        with self.assertRaises(OperationalError):
            write_bytes_atomic(blocker / "child.png", b"data")


class TestFileNames(unittest.TestCase):
    """Test content-derived names and removal helpers."""

    def test_content_file_name(self):
        """Test that names carry the stem, a content digest and the suffix."""
        name = content_file_name("ImageCache", b"atlas", ".png")

        self.assertTrue(name.startswith("ImageCache."))
        self.assertTrue(name.endswith(".png"))
        self.assertEqual(len(name), len("ImageCache.") + 12 + len(".png"))
        self.assertNotEqual(name, content_file_name("ImageCache", b"other", ".png"))

    def test_discard_missing_file(self):
        """Test that discarding an absent file is a no-op."""
        temp_dir = Path(tempfile.mkdtemp())
        try:
            discard(temp_dir / "absent.png")
            (temp_dir / "present.png").write_bytes(b"x")
            discard(temp_dir / "present.png")
            self.assertEqual(os.listdir(temp_dir), [])
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)


if __name__ == "__main__":
    unittest.main()
