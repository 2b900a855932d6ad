"""
In-memory asset registry shared by every theme codec.
Holds bitmap and color assets under unique identifiers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from PIL import Image

from .errors import MalformedAssetError


class AssetKind(Enum):
    """Tag distinguishing the two asset variants."""
    BITMAP = "bitmap"
    COLOR = "color"


class AssetRole(Enum):
    """Layout grouping tag for bitmap assets."""
    ICON = "icon"
    OTHER = "other"


RGBA = Tuple[int, int, int, int]


@dataclass(frozen=True)
class BitmapAsset:
    """A named RGBA bitmap."""
    kind: ClassVar[AssetKind] = AssetKind.BITMAP

    asset_id: str
    width: int
    height: int
    pixels: bytes
    role: AssetRole = AssetRole.OTHER

    def __post_init__(self):
        """Validate bitmap dimensions and pixel buffer length."""
        if not isinstance(self.asset_id, str) or not self.asset_id:
            raise MalformedAssetError("Asset id must be a non-empty string", self.asset_id)
        if self.width < 0 or self.height < 0:
            raise MalformedAssetError(
                f"Bitmap '{self.asset_id}' has negative dimensions: {self.width}x{self.height}",
                self.asset_id
            )
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise MalformedAssetError(
                f"Bitmap '{self.asset_id}' has {len(self.pixels)} pixel bytes, expected {expected}",
                self.asset_id
            )
        if not isinstance(self.role, AssetRole):
            object.__setattr__(self, "role", AssetRole(self.role))
        if not isinstance(self.pixels, bytes):
            object.__setattr__(self, "pixels", bytes(self.pixels))

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @classmethod
    def solid(cls, asset_id: str, width: int, height: int, rgba: RGBA,
              role: AssetRole = AssetRole.OTHER) -> "BitmapAsset":
        """Create a bitmap filled with a single color."""
        return cls(asset_id, width, height, bytes(rgba) * (width * height), role)

    @classmethod
    def from_image(cls, asset_id: str, image: Image.Image,
                   role: AssetRole = AssetRole.OTHER) -> "BitmapAsset":
        """Create a bitmap from an RGBA PIL image."""
        if image.mode != "RGBA":
            raise MalformedAssetError(
                f"Bitmap '{asset_id}' must be built from an RGBA image, got {image.mode}",
                asset_id
            )
        return cls(asset_id, image.width, image.height, image.tobytes(), role)

    def to_image(self) -> Image.Image:
        """Return the bitmap as a PIL image."""
        return Image.frombytes("RGBA", (self.width, self.height), self.pixels)


@dataclass(frozen=True)
class ColorAsset:
    """A named RGBA color value."""
    kind: ClassVar[AssetKind] = AssetKind.COLOR

    asset_id: str
    rgba: RGBA

    def __post_init__(self):
        if not isinstance(self.asset_id, str) or not self.asset_id:
            raise MalformedAssetError("Asset id must be a non-empty string", self.asset_id)
        rgba = tuple(self.rgba)
        if len(rgba) != 4 or not all(isinstance(c, int) and 0 <= c <= 255 for c in rgba):
            raise MalformedAssetError(
                f"Color '{self.asset_id}' must be four integers in 0..255, got {self.rgba!r}",
                self.asset_id
            )
        object.__setattr__(self, "rgba", rgba)

    @property
    def hex(self) -> str:
        return "#" + "".join(f"{c:02x}" for c in self.rgba)

    @classmethod
    def from_hex(cls, asset_id: str, value: str) -> "ColorAsset":
        """Parse a '#rrggbbaa' (or '#rrggbb') color string."""
        text = value[1:] if value.startswith("#") else value
        if len(text) == 6:
            text += "ff"
        if len(text) != 8:
            raise MalformedAssetError(f"Color '{asset_id}' has invalid value {value!r}", asset_id)
        try:
            rgba = tuple(int(text[i:i + 2], 16) for i in range(0, 8, 2))
        except ValueError:
            raise MalformedAssetError(f"Color '{asset_id}' has invalid value {value!r}", asset_id)
        return cls(asset_id, rgba)


Asset = Union[BitmapAsset, ColorAsset]


class AssetTable:
    """
    Mapping from asset id to exactly one bitmap or color asset.

    Tables are built fresh for each codec operation and compared without
    regard to insertion order.
    """

    def __init__(self, assets: Optional[Iterable[Asset]] = None):
        self._assets: Dict[str, Asset] = {}
        for asset in assets or ():
            self.add(asset)

    def add(self, asset: Asset) -> None:
        """
        Register an asset.

        Raises:
            ValueError: If an asset with the same id is already present
        """
        if not isinstance(asset, (BitmapAsset, ColorAsset)):
            raise TypeError(f"Unsupported asset type: {type(asset)}")
        if asset.asset_id in self._assets:
            raise ValueError(f"Duplicate asset id: {asset.asset_id}")
        self._assets[asset.asset_id] = asset

    def __getitem__(self, asset_id: str) -> Asset:
        return self._assets[asset_id]

    def get(self, asset_id: str) -> Optional[Asset]:
        return self._assets.get(asset_id)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def __iter__(self) -> Iterator[Asset]:
        return iter(self._assets.values())

    def __len__(self) -> int:
        return len(self._assets)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AssetTable):
            return NotImplemented
        return self._assets == other._assets

    def __repr__(self) -> str:
        return f"AssetTable({len(self.bitmaps())} bitmaps, {len(self.colors())} colors)"

    def ids(self) -> List[str]:
        return list(self._assets)

    def bitmaps(self) -> List[BitmapAsset]:
        return [a for a in self._assets.values() if a.kind is AssetKind.BITMAP]

    def colors(self) -> List[ColorAsset]:
        return [a for a in self._assets.values() if a.kind is AssetKind.COLOR]

    def sorted_assets(self) -> List[Asset]:
        """Return all assets ordered by id."""
        return [self._assets[key] for key in sorted(self._assets)]

    def without(self, asset_ids: Iterable[str]) -> "AssetTable":
        """Return a new table omitting the given ids."""
        excluded = set(asset_ids)
        return AssetTable(a for a in self._assets.values() if a.asset_id not in excluded)

    def restricted_to(self, asset_ids: Iterable[str]) -> "AssetTable":
        """Return a new table holding only the given ids."""
        kept = set(asset_ids)
        return AssetTable(a for a in self._assets.values() if a.asset_id in kept)

    def copy(self) -> "AssetTable":
        return AssetTable(self._assets.values())
