"""
Tests for the asset table and asset types.
"""

import unittest
from PIL import Image

from ..assets.errors import MalformedAssetError
from ..assets.table import AssetKind, AssetRole, AssetTable, BitmapAsset, ColorAsset


class TestBitmapAsset(unittest.TestCase):
    """Test BitmapAsset validation and conversion."""

    def test_solid_bitmap(self):
        """Test creating a single-color bitmap."""
        bitmap = BitmapAsset.solid("icon.a", 4, 4, (255, 0, 0, 255), AssetRole.ICON)

        self.assertEqual(bitmap.size, (4, 4))
        self.assertEqual(len(bitmap.pixels), 64)
        self.assertEqual(bitmap.pixels[:4], bytes([255, 0, 0, 255]))
        self.assertIs(bitmap.kind, AssetKind.BITMAP)

    def test_wrong_pixel_length(self):
        """Test that a pixel buffer of the wrong length is rejected."""
        with self.assertRaises(MalformedAssetError) as ctx:
            BitmapAsset("bad", 2, 2, b"\x00" * 15)
        self.assertEqual(ctx.exception.asset_id, "bad")

    def test_negative_dimensions(self):
        """Test that negative dimensions are rejected."""
        with self.assertRaises(MalformedAssetError):
            BitmapAsset("bad", -1, 2, b"")

    def test_zero_area_allowed_at_construction(self):
        """Test that zero-area bitmaps can exist until they are packed."""
        bitmap = BitmapAsset("empty", 0, 3, b"")
        self.assertEqual(bitmap.size, (0, 3))

    def test_empty_id(self):
        """Test that an empty id is rejected."""
        with self.assertRaises(MalformedAssetError):
            BitmapAsset("", 1, 1, b"\x00" * 4)

    def test_role_from_string(self):
        """Test that a role given by value is coerced."""
        bitmap = BitmapAsset("icon", 1, 1, b"\x00" * 4, "icon")
        self.assertIs(bitmap.role, AssetRole.ICON)

    def test_image_round_trip(self):
        """Test conversion to and from PIL images."""
        image = Image.new("RGBA", (3, 2), (10, 20, 30, 40))
        bitmap = BitmapAsset.from_image("img", image)

        self.assertEqual(bitmap.to_image().tobytes(), image.tobytes())

    def test_from_image_requires_rgba(self):
        """Test that non-RGBA images are rejected."""
        with self.assertRaises(MalformedAssetError):
            BitmapAsset.from_image("img", Image.new("RGB", (2, 2)))


class TestColorAsset(unittest.TestCase):
    """Test ColorAsset validation and hex conversion."""

    def test_hex(self):
        """Test hex formatting."""
        color = ColorAsset("color.bg", (0, 0, 0, 255))
        self.assertEqual(color.hex, "#000000ff")
        self.assertIs(color.kind, AssetKind.COLOR)

    def test_from_hex(self):
        """Test parsing 8 and 6 digit hex strings."""
        self.assertEqual(ColorAsset.from_hex("a", "#0a0b0c0d").rgba, (10, 11, 12, 13))
        self.assertEqual(ColorAsset.from_hex("a", "#ffffff").rgba, (255, 255, 255, 255))

    def test_from_hex_invalid(self):
        """Test that malformed hex strings are rejected."""
        for value in ("#fff", "#gg0000ff", ""):
            with self.assertRaises(MalformedAssetError):
                ColorAsset.from_hex("a", value)

    def test_out_of_range(self):
        """Test that channel values outside 0..255 are rejected."""
        with self.assertRaises(MalformedAssetError):
            ColorAsset("a", (0, 0, 256, 0))
        with self.assertRaises(MalformedAssetError):
            ColorAsset("a", (0, 0, 0))

    def test_list_is_normalized(self):
        """Test that list input is stored as a tuple."""
        self.assertEqual(ColorAsset("a", [1, 2, 3, 4]).rgba, (1, 2, 3, 4))


class TestAssetTable(unittest.TestCase):
    """Test AssetTable behaviour."""

    def setUp(self):
        """Set up test fixtures."""
        self.bitmap = BitmapAsset.solid("icon.a", 2, 2, (255, 0, 0, 255), AssetRole.ICON)
        self.color = ColorAsset("color.bg", (0, 0, 0, 255))

    def test_add_and_lookup(self):
        """Test adding assets and looking them up."""
        table = AssetTable([self.bitmap, self.color])

        self.assertEqual(len(table), 2)
        self.assertIn("icon.a", table)
        self.assertIs(table["color.bg"], self.color)
        self.assertIsNone(table.get("missing"))
        self.assertEqual(table.bitmaps(), [self.bitmap])
        self.assertEqual(table.colors(), [self.color])

    def test_duplicate_id(self):
        """Test that an id can be present only once."""
        table = AssetTable([self.bitmap])
        with self.assertRaises(ValueError):
            table.add(ColorAsset("icon.a", (1, 2, 3, 4)))

    def test_rejects_other_types(self):
        """Test that only bitmap and color assets are accepted."""
        with self.assertRaises(TypeError):
            AssetTable().add("icon.a")

    def test_equality_ignores_order(self):
        """Test that insertion order does not affect equality."""
        self.assertEqual(AssetTable([self.bitmap, self.color]), AssetTable([self.color, self.bitmap]))
        self.assertNotEqual(AssetTable([self.bitmap]), AssetTable([self.color]))

    def test_iteration_order(self):
        """Test that iteration follows insertion order and sorting follows ids."""
        table = AssetTable([self.color, self.bitmap])

        self.assertEqual(table.ids(), ["color.bg", "icon.a"])
        self.assertEqual([a.asset_id for a in AssetTable([self.bitmap, self.color])], ["icon.a", "color.bg"])
        self.assertEqual([a.asset_id for a in table.sorted_assets()], ["color.bg", "icon.a"])

    def test_subsets(self):
        """Test without, restricted_to and copy."""
        table = AssetTable([self.bitmap, self.color])

        self.assertEqual(table.without(["icon.a"]).ids(), ["color.bg"])
        self.assertEqual(table.restricted_to(["icon.a", "unknown"]).ids(), ["icon.a"])

        copied = table.copy()
        self.assertEqual(copied, table)
        self.assertIsNot(copied, table)
        copied.add(ColorAsset("extra", (1, 1, 1, 1)))
        self.assertNotIn("extra", table)


if __name__ == "__main__":
    unittest.main()
