"""
Atlas layout for packing theme bitmaps into a single image and back.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..assets.errors import CorruptLayoutError, MalformedAssetError, ResourceExhaustedError
from ..assets.table import AssetRole, BitmapAsset
from ..utils.image import ImageUtils

logger = logging.getLogger(__name__)

# Icons are packed ahead of every other bitmap
ROLE_ORDER = {AssetRole.ICON: 0, AssetRole.OTHER: 1}


@dataclass
class AtlasConfig:
    """Configuration for atlas packing."""
    width: int = 512
    padding: int = 0
    max_pixels: int = 16 * 1024 * 1024


@dataclass(frozen=True)
class Rectangle:
    """Rectangle for atlas layout calculations."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    def contains_point(self, x: int, y: int) -> bool:
        """Check if point is inside rectangle."""
        return self.x <= x < self.right and self.y <= y < self.bottom

    def intersects(self, other: 'Rectangle') -> bool:
        """Check if this rectangle intersects with another."""
        return not (self.right <= other.x or other.right <= self.x or
                    self.bottom <= other.y or other.bottom <= self.y)

    def fits_within(self, width: int, height: int) -> bool:
        """Check if the rectangle lies inside a width x height area."""
        return self.x >= 0 and self.y >= 0 and self.right <= width and self.bottom <= height


@dataclass(frozen=True)
class LayoutEntry:
    """Placement of one bitmap asset inside the atlas."""
    asset_id: str
    rect: Rectangle
    role: AssetRole = AssetRole.OTHER


LayoutMap = Tuple[LayoutEntry, ...]


@dataclass(frozen=True)
class AtlasLayout:
    """Atlas dimensions and the placement of every bitmap."""
    width: int
    height: int
    entries: LayoutMap = ()

    @property
    def efficiency(self) -> float:
        """Layout efficiency (used area / total area)."""
        total_area = self.width * self.height
        used = sum(entry.rect.area for entry in self.entries)
        return used / total_area if total_area > 0 else 0.0

    def positions(self) -> Dict[str, Rectangle]:
        return {entry.asset_id: entry.rect for entry in self.entries}


class AtlasLayoutEngine:
    """Deterministic shelf packer for theme bitmaps."""

    def __init__(self, config: Optional[AtlasConfig] = None):
        """Initialize layout engine with configuration."""
        self.config = config or AtlasConfig()

    def pack(self, bitmaps: Sequence[BitmapAsset]) -> AtlasLayout:
        """
        Assign every bitmap a rectangle in one atlas.

        Bitmaps are grouped by role (icons first), then ordered by descending
        height and asset id. Role is deliberately the leading sort key: it is
        the layout grouping tag, so all icons share the top shelves of the
        atlas whatever their height. Each group opens a new shelf; shelves
        are stacked downwards only as far as needed.

        Args:
            bitmaps: Bitmaps to pack, in any order

        Returns:
            AtlasLayout with the atlas size and layout map

        Raises:
            MalformedAssetError: If a bitmap has a zero dimension or an id repeats
            ResourceExhaustedError: If the resulting atlas exceeds the pixel limit
        """
        self._check_bitmaps(bitmaps)
        if not bitmaps:
            return AtlasLayout(0, 0, ())

        padding = self.config.padding
        shelf_width = max(self.config.width, max(b.width for b in bitmaps))
        ordered = sorted(bitmaps, key=lambda b: (ROLE_ORDER[b.role], -b.height, b.asset_id))

        entries: List[LayoutEntry] = []
        x = y = shelf_height = 0
        current_role = None

        for bitmap in ordered:
            shelf_started = x > 0
            if shelf_started and (bitmap.role != current_role or x + bitmap.width > shelf_width):
                y += shelf_height + padding
                x = 0
                shelf_height = 0

            entries.append(LayoutEntry(bitmap.asset_id, Rectangle(x, y, bitmap.width, bitmap.height), bitmap.role))
            x += bitmap.width + padding
            shelf_height = max(shelf_height, bitmap.height)
            current_role = bitmap.role

        width = max(entry.rect.right for entry in entries)
        height = max(entry.rect.bottom for entry in entries)
        self._check_size(width, height)

        layout = AtlasLayout(width, height, tuple(entries))
        logger.debug(f"Packed {len(entries)} bitmaps into {width}x{height} atlas "
                     f"(efficiency {layout.efficiency:.2f})")
        return layout

    def render(self, layout: AtlasLayout, bitmaps: Sequence[BitmapAsset]) -> bytes:
        """
        Paint bitmaps into an RGBA pixel buffer following `layout`.

        Unused atlas space is fully transparent.
        """
        if layout.width == 0 or layout.height == 0:
            return b""

        by_id = {bitmap.asset_id: bitmap for bitmap in bitmaps}
        canvas = np.zeros((layout.height, layout.width, 4), dtype=np.uint8)
        for entry in layout.entries:
            bitmap = by_id[entry.asset_id]
            rect = entry.rect
            canvas[rect.y:rect.bottom, rect.x:rect.right] = ImageUtils.to_array(bitmap.pixels, bitmap.size)
        return canvas.tobytes()

    def unpack(self, width: int, height: int, entries: Sequence[LayoutEntry],
               pixels: bytes) -> Dict[str, BitmapAsset]:
        """
        Cut every bitmap described by a layout map out of an atlas.

        Args:
            width: Atlas width
            height: Atlas height
            entries: Layout map entries
            pixels: RGBA pixel buffer of the atlas

        Returns:
            Dictionary mapping asset ids to bitmaps

        Raises:
            CorruptLayoutError: If any rectangle is out of bounds or overlaps another
        """
        errors = self.validate_layout(width, height, entries)
        if errors:
            raise CorruptLayoutError("; ".join(errors))

        if len(pixels) != width * height * 4:
            raise CorruptLayoutError(
                f"Atlas pixel buffer has {len(pixels)} bytes, expected {width * height * 4}"
            )

        bitmaps: Dict[str, BitmapAsset] = {}
        if not entries:
            return bitmaps

        atlas = ImageUtils.to_array(pixels, (width, height))
        for entry in entries:
            rect = entry.rect
            region = np.ascontiguousarray(atlas[rect.y:rect.bottom, rect.x:rect.right])
            bitmaps[entry.asset_id] = BitmapAsset(
                entry.asset_id, rect.width, rect.height, region.tobytes(), entry.role
            )
        return bitmaps

    def validate_layout(self, width: int, height: int, entries: Sequence[LayoutEntry]) -> List[str]:
        """
        Validate that layout rectangles lie inside the atlas and are pairwise disjoint.

        Returns:
            List of validation error messages
        """
        errors = []
        seen = set()

        for entry in entries:
            rect = entry.rect
            if entry.asset_id in seen:
                errors.append(f"Frame '{entry.asset_id}' appears more than once")
            seen.add(entry.asset_id)

            if rect.width <= 0 or rect.height <= 0:
                errors.append(f"Frame '{entry.asset_id}' has invalid dimensions: {rect.width}x{rect.height}")
            elif not rect.fits_within(width, height):
                errors.append(
                    f"Frame '{entry.asset_id}' at ({rect.x}, {rect.y}, {rect.width}x{rect.height}) "
                    f"extends beyond the {width}x{height} atlas"
                )

        # Sweep along y: only rectangles whose vertical spans overlap can intersect
        ordered = sorted(entries, key=lambda e: (e.rect.y, e.rect.x))
        for index, entry in enumerate(ordered):
            for other in ordered[index + 1:]:
                if other.rect.y >= entry.rect.bottom:
                    break
                if entry.rect.intersects(other.rect):
                    errors.append(f"Frames '{entry.asset_id}' and '{other.asset_id}' overlap")

        return errors

    def _check_bitmaps(self, bitmaps: Sequence[BitmapAsset]) -> None:
        seen = set()
        for bitmap in bitmaps:
            if bitmap.width == 0 or bitmap.height == 0:
                raise MalformedAssetError(
                    f"Bitmap '{bitmap.asset_id}' has zero area: {bitmap.width}x{bitmap.height}",
                    bitmap.asset_id
                )
            if bitmap.asset_id in seen:
                raise MalformedAssetError(f"Bitmap id '{bitmap.asset_id}' appears more than once", bitmap.asset_id)
            seen.add(bitmap.asset_id)

    def _check_size(self, width: int, height: int) -> None:
        if width * height > self.config.max_pixels:
            raise ResourceExhaustedError(
                f"Atlas size {width}x{height} exceeds the limit of {self.config.max_pixels} pixels",
                width * height, self.config.max_pixels
            )
