"""
Tests for atlas layout engine functionality.
"""

import unittest

from ..assets.errors import CorruptLayoutError, MalformedAssetError, ResourceExhaustedError
from ..assets.table import AssetRole, BitmapAsset
from ..processing.atlas import AtlasConfig, AtlasLayout, AtlasLayoutEngine, LayoutEntry, Rectangle


def _bitmap(asset_id, width, height, role=AssetRole.OTHER, value=0):
    return BitmapAsset.solid(asset_id, width, height, (value, value, value, 255), role)


class TestRectangle(unittest.TestCase):
    """Test Rectangle class functionality."""

    def test_rectangle_properties(self):
        """Test rectangle property calculations."""
        rect = Rectangle(10, 20, 30, 40)

        self.assertEqual(rect.right, 40)
        self.assertEqual(rect.bottom, 60)
        self.assertEqual(rect.area, 1200)

    def test_contains_point(self):
        """Test point containment."""
        rect = Rectangle(10, 20, 30, 40)

        self.assertTrue(rect.contains_point(15, 25))
        self.assertTrue(rect.contains_point(10, 20))  # Edge case
        self.assertFalse(rect.contains_point(40, 60))  # Right/bottom edges
        self.assertFalse(rect.contains_point(5, 15))

    def test_intersects(self):
        """Test rectangle intersection."""
        rect1 = Rectangle(10, 10, 20, 20)
        rect2 = Rectangle(30, 10, 20, 20)  # Touching
        rect3 = Rectangle(15, 15, 10, 10)  # Overlapping

        self.assertFalse(rect1.intersects(rect2))
        self.assertTrue(rect1.intersects(rect3))

    def test_fits_within(self):
        """Test bounds checking."""
        self.assertTrue(Rectangle(0, 0, 4, 4).fits_within(4, 4))
        self.assertFalse(Rectangle(1, 0, 4, 4).fits_within(4, 4))
        self.assertFalse(Rectangle(-1, 0, 2, 2).fits_within(4, 4))


class TestAtlasPacking(unittest.TestCase):
    """Test AtlasLayoutEngine.pack."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = AtlasLayoutEngine(AtlasConfig(width=64))
        self.bitmaps = [
            _bitmap("b.small", 8, 8),
            _bitmap("a.tall", 10, 30),
            _bitmap("icon.x", 16, 16, AssetRole.ICON),
            _bitmap("c.wide", 40, 12),
            _bitmap("icon.y", 16, 16, AssetRole.ICON),
            _bitmap("d.same", 8, 8),
        ]

    def test_empty(self):
        """Test that zero bitmaps yield a zero-area atlas."""
        layout = self.engine.pack([])

        self.assertEqual((layout.width, layout.height), (0, 0))
        self.assertEqual(layout.entries, ())
        self.assertEqual(layout.efficiency, 0.0)

    def test_zero_dimension_rejected(self):
        """Test that zero-area bitmaps are rejected before packing."""
        with self.assertRaises(MalformedAssetError) as ctx:
            self.engine.pack([_bitmap("ok", 2, 2), BitmapAsset("flat", 4, 0, b"")])
        self.assertEqual(ctx.exception.asset_id, "flat")

    def test_duplicate_rejected(self):
        """Test that repeated ids are rejected."""
        with self.assertRaises(MalformedAssetError):
            self.engine.pack([_bitmap("same", 2, 2), _bitmap("same", 3, 3)])

    def test_deterministic(self):
        """Test that packing is independent of input order and repeatable."""
        first = self.engine.pack(self.bitmaps)
        second = self.engine.pack(list(reversed(self.bitmaps)))

        self.assertEqual(first, second)
        self.assertEqual(first, self.engine.pack(self.bitmaps))

    def test_no_overlap_and_in_bounds(self):
        """Test that every rectangle is inside the atlas and pairwise disjoint."""
        layout = self.engine.pack(self.bitmaps)
        rects = [entry.rect for entry in layout.entries]

        self.assertEqual(len(rects), len(self.bitmaps))
        for i, rect in enumerate(rects):
            self.assertTrue(rect.fits_within(layout.width, layout.height))
            for other in rects[i + 1:]:
                self.assertFalse(rect.intersects(other))
        self.assertEqual(self.engine.validate_layout(layout.width, layout.height, layout.entries), [])

    def test_icons_first_and_grouped(self):
        """Test that icons occupy the first shelf and other bitmaps start below them."""
        layout = self.engine.pack(self.bitmaps)
        ids = [entry.asset_id for entry in layout.entries]
        positions = layout.positions()

        self.assertEqual(ids[:2], ["icon.x", "icon.y"])
        self.assertEqual(positions["icon.x"], Rectangle(0, 0, 16, 16))
        self.assertEqual(positions["icon.y"], Rectangle(16, 0, 16, 16))
        # Tallest non-icon starts a new shelf below the icons
        self.assertEqual(positions["a.tall"], Rectangle(0, 16, 10, 30))

    def test_height_then_id_order(self):
        """Test ordering by descending height with ties broken by id."""
        layout = self.engine.pack(self.bitmaps)
        ids = [entry.asset_id for entry in layout.entries]

        self.assertEqual(ids[2:], ["a.tall", "c.wide", "b.small", "d.same"])

    def test_shelf_wrap(self):
        """Test that bitmaps wrap to a new shelf at the configured width."""
        engine = AtlasLayoutEngine(AtlasConfig(width=20))
        layout = engine.pack([_bitmap("a", 12, 5), _bitmap("b", 12, 5)])

        self.assertEqual(layout.positions()["b"], Rectangle(0, 5, 12, 5))
        self.assertEqual((layout.width, layout.height), (12, 10))

    def test_wide_bitmap_widens_shelf(self):
        """Test that a bitmap wider than the configured width still fits."""
        engine = AtlasLayoutEngine(AtlasConfig(width=8))
        layout = engine.pack([_bitmap("wide", 30, 2)])

        self.assertEqual((layout.width, layout.height), (30, 2))

    def test_padding(self):
        """Test that padding separates neighbouring rectangles."""
        engine = AtlasLayoutEngine(AtlasConfig(width=64, padding=2))
        layout = engine.pack([_bitmap("a", 4, 4), _bitmap("b", 4, 4)])

        self.assertEqual(layout.positions()["b"], Rectangle(6, 0, 4, 4))
        self.assertEqual(layout.width, 10)

    def test_pixel_limit(self):
        """Test that oversized atlases are refused."""
        engine = AtlasLayoutEngine(AtlasConfig(width=64, max_pixels=100))
        with self.assertRaises(ResourceExhaustedError):
            engine.pack([_bitmap("big", 20, 20)])


class TestAtlasUnpacking(unittest.TestCase):
    """Test AtlasLayoutEngine.render and unpack."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = AtlasLayoutEngine(AtlasConfig(width=32))
        self.bitmaps = [
            _bitmap("red", 4, 4, AssetRole.ICON, 200),
            _bitmap("green", 6, 3, value=100),
            _bitmap("blue", 2, 7, value=50),
        ]

    def test_render_unpack_round_trip(self):
        """Test that rendered bitmaps are cut back out unchanged."""
        layout = self.engine.pack(self.bitmaps)
        pixels = self.engine.render(layout, self.bitmaps)
        unpacked = self.engine.unpack(layout.width, layout.height, layout.entries, pixels)

        self.assertEqual(len(pixels), layout.width * layout.height * 4)
        for bitmap in self.bitmaps:
            self.assertEqual(unpacked[bitmap.asset_id], bitmap)

    def test_render_empty(self):
        """Test rendering an empty layout."""
        self.assertEqual(self.engine.render(AtlasLayout(0, 0), []), b"")
        self.assertEqual(self.engine.unpack(0, 0, (), b""), {})

    def test_out_of_bounds(self):
        """Test that rectangles outside the atlas are rejected."""
        entries = (LayoutEntry("a", Rectangle(2, 2, 4, 4)),)
        with self.assertRaises(CorruptLayoutError):
            self.engine.unpack(4, 4, entries, b"\x00" * 64)

    def test_overlap(self):
        """Test that overlapping rectangles are rejected, never clipped."""
        entries = (
            LayoutEntry("a", Rectangle(0, 0, 3, 3)),
            LayoutEntry("b", Rectangle(2, 2, 2, 2)),
        )
        with self.assertRaises(CorruptLayoutError) as ctx:
            self.engine.unpack(4, 4, entries, b"\x00" * 64)
        self.assertIn("overlap", str(ctx.exception))

    def test_wrong_buffer_length(self):
        """Test that a pixel buffer not matching the atlas size is rejected."""
        entries = (LayoutEntry("a", Rectangle(0, 0, 2, 2)),)
        with self.assertRaises(CorruptLayoutError):
            self.engine.unpack(4, 4, entries, b"\x00" * 10)

    def test_validate_layout_messages(self):
        """Test that validation reports every problem."""
        entries = (
            LayoutEntry("a", Rectangle(0, 0, 0, 2)),
            LayoutEntry("b", Rectangle(0, 0, 2, 2)),
            LayoutEntry("b", Rectangle(5, 5, 2, 2)),
        )
        errors = self.engine.validate_layout(4, 4, entries)

        self.assertTrue(any("invalid dimensions" in e for e in errors))
        self.assertTrue(any("more than once" in e for e in errors))
        self.assertTrue(any("beyond" in e for e in errors))


if __name__ == "__main__":
    unittest.main()
