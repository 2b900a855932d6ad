"""
Image cache codec: one packed atlas image plus a companion layout map.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from PIL import Image

from ..assets.errors import (
    CorruptLayoutError, DanglingAssetReferenceError, MalformedAssetError, ResourceExhaustedError,
    ThemeCodecError
)
from ..assets.table import AssetRole, AssetTable, ColorAsset
from ..config import PackagerConfig
from ..utils.atomic import content_file_name, discard, read_bytes, write_bytes_atomic, write_text_atomic
from ..utils.image import ImageUtils
from ..utils.templates import create_environment
from .atlas import AtlasConfig, AtlasLayout, AtlasLayoutEngine, LayoutEntry, Rectangle

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1

# PNG text chunk listing the ids packed into the atlas
ASSET_INDEX_KEY = "theme:assets"


@dataclass(frozen=True)
class CacheFiles:
    """Paths of an image cache on disk."""
    atlas: Path
    layout: Path

    @classmethod
    def in_directory(cls, directory: Union[str, Path], cache_name: str = "ImageCache",
                     atlas_name: Optional[str] = None) -> "CacheFiles":
        directory = Path(directory)
        return cls(directory / (atlas_name or f"{cache_name}.png"), directory / f"{cache_name}.json")


class CacheImageCodec:
    """Serializes an asset table to and from a packed atlas and layout map."""

    def __init__(self, config: Optional[PackagerConfig] = None):
        """Initialize the codec with configuration."""
        self.config = config or PackagerConfig()
        self.layout_engine = AtlasLayoutEngine(AtlasConfig(
            width=self.config.atlas_width,
            padding=self.config.atlas_padding,
            max_pixels=self.config.max_atlas_pixels
        ))

    def encode(self, table: AssetTable) -> Tuple[bytes, bytes]:
        """
        Encode a table as (atlas PNG bytes, layout map bytes).

        An empty atlas is encoded as zero bytes.

        Raises:
            MalformedAssetError: If a bitmap cannot be packed
        """
        atlas_bytes, layout, colors = self._encode(table)
        return atlas_bytes, self.serialize_layout(layout, colors)

    def _encode(self, table: AssetTable) -> Tuple[bytes, AtlasLayout, List[ColorAsset]]:
        bitmaps = table.bitmaps()
        layout = self.layout_engine.pack(bitmaps)

        atlas_bytes = b""
        if layout.entries:
            pixels = self.layout_engine.render(layout, bitmaps)
            image = Image.frombytes("RGBA", (layout.width, layout.height), pixels)
            index = json.dumps(sorted(entry.asset_id for entry in layout.entries))
            atlas_bytes = ImageUtils.encode_png(
                image, self.config.compression_level, text={ASSET_INDEX_KEY: index}
            )

        logger.info(f"Encoded image cache: {len(layout.entries)} bitmaps, "
                    f"{len(table.colors())} colors, {layout.width}x{layout.height} atlas")
        return atlas_bytes, layout, table.colors()

    def decode(self, atlas_bytes: bytes, layout_bytes: bytes) -> AssetTable:
        """
        Decode an atlas and layout map back into a fresh asset table.

        Raises:
            UnsupportedPixelFormatError: If the atlas is not RGBA-compatible
            DanglingAssetReferenceError: If frames reference ids absent from the atlas
            CorruptLayoutError: If the layout map is unreadable or does not fit the atlas
            ResourceExhaustedError: If declared sizes exceed the configured limits
        """
        width, height, entries, colors = self.parse_layout(layout_bytes)

        if width * height > self.config.max_atlas_pixels:
            raise ResourceExhaustedError(
                f"Layout map declares a {width}x{height} atlas, over the limit of "
                f"{self.config.max_atlas_pixels} pixels",
                width * height, self.config.max_atlas_pixels
            )

        if not atlas_bytes:
            if entries:
                raise DanglingAssetReferenceError(entry.asset_id for entry in entries)
            if width or height:
                raise CorruptLayoutError(f"Layout map declares a {width}x{height} atlas but the atlas is empty")
            pixels = b""
        else:
            pixels = self._read_atlas(atlas_bytes, width, height, entries)

        bitmaps = self.layout_engine.unpack(width, height, entries, pixels)

        table = AssetTable()
        try:
            for entry in entries:
                table.add(bitmaps[entry.asset_id])
            for color in colors:
                table.add(color)
        except ValueError as e:
            raise CorruptLayoutError(f"Layout map lists an asset twice: {e}")

        logger.info(f"Decoded image cache: {len(entries)} bitmaps, {len(colors)} colors")
        return table

    def _read_atlas(self, atlas_bytes: bytes, width: int, height: int,
                    entries: List[LayoutEntry]) -> bytes:
        try:
            image = ImageUtils.load_image(atlas_bytes, self.config.max_atlas_pixels)
        except ValueError as e:
            raise CorruptLayoutError(f"Atlas image is unreadable: {e}")

        packed_ids = self._read_asset_index(image)
        image = ImageUtils.ensure_rgba(image)

        if packed_ids is not None:
            dangling = [entry.asset_id for entry in entries if entry.asset_id not in packed_ids]
            if dangling:
                raise DanglingAssetReferenceError(dangling)

        if image.size != (width, height):
            raise CorruptLayoutError(
                f"Atlas size {image.width}x{image.height} does not match layout map size {width}x{height}"
            )
        return image.tobytes()

    def _read_asset_index(self, image: Image.Image) -> Optional[set]:
        """Return the packed id set, or None when an editor stripped the chunk."""
        raw = image.info.get(ASSET_INDEX_KEY)
        if raw is None:
            return None
        try:
            ids = json.loads(raw)
        except ValueError as e:
            raise CorruptLayoutError(f"Atlas asset index is unreadable: {e}")
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise CorruptLayoutError("Atlas asset index must be a list of ids")
        return set(ids)

    def serialize_layout(self, layout: AtlasLayout, colors: List[ColorAsset],
                         atlas_name: Optional[str] = None) -> bytes:
        """
        Serialize a layout and the color list as deterministic JSON.

        `atlas_name` records the file holding the atlas when the cache is
        saved to disk.
        """
        meta: Dict[str, Any] = {
            "size": {"w": layout.width, "h": layout.height},
            "format": "RGBA",
            "version": CACHE_FORMAT_VERSION
        }
        if atlas_name is not None:
            meta["image"] = atlas_name
        document = {
            "meta": meta,
            "frames": [
                {
                    "id": entry.asset_id,
                    "x": entry.rect.x,
                    "y": entry.rect.y,
                    "w": entry.rect.width,
                    "h": entry.rect.height,
                    "role": entry.role.value
                }
                for entry in layout.entries
            ],
            "colors": {color.asset_id: list(color.rgba) for color in colors}
        }
        return (json.dumps(document, indent=2, sort_keys=True) + "\n").encode("utf-8")

    def parse_layout(self, layout_bytes: bytes) -> Tuple[int, int, List[LayoutEntry], List[ColorAsset]]:
        """
        Parse a layout map payload.

        Returns:
            (atlas width, atlas height, layout entries, colors)

        Raises:
            CorruptLayoutError: If the payload is not a valid layout map
        """
        try:
            document = json.loads(layout_bytes.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise CorruptLayoutError(f"Layout map is not valid JSON: {e}")

        try:
            meta = document["meta"]
            version = meta.get("version", CACHE_FORMAT_VERSION)
            if version > CACHE_FORMAT_VERSION:
                raise CorruptLayoutError(f"Layout map version {version} is newer than {CACHE_FORMAT_VERSION}")
            if meta.get("format", "RGBA") != "RGBA":
                raise CorruptLayoutError(f"Layout map declares unsupported format {meta.get('format')}")

            width = _as_int(meta["size"]["w"])
            height = _as_int(meta["size"]["h"])
            if width < 0 or height < 0:
                raise CorruptLayoutError(f"Layout map declares negative atlas size {width}x{height}")

            entries = [
                LayoutEntry(
                    _as_str(frame["id"]),
                    Rectangle(_as_int(frame["x"]), _as_int(frame["y"]), _as_int(frame["w"]), _as_int(frame["h"])),
                    AssetRole(frame.get("role", AssetRole.OTHER.value))
                )
                for frame in document.get("frames", [])
            ]
            colors = [
                ColorAsset(_as_str(asset_id), tuple(_as_int(c) for c in value))
                for asset_id, value in document.get("colors", {}).items()
            ]
        except CorruptLayoutError:
            raise
        except (KeyError, TypeError, ValueError, AttributeError, MalformedAssetError) as e:
            raise CorruptLayoutError(f"Layout map is malformed: {e}")

        return width, height, entries, colors

    def image_map(self, layout_bytes: bytes) -> List[Tuple[str, Rectangle]]:
        """Return the (asset id, rectangle) association described by a layout map."""
        _, _, entries, _ = self.parse_layout(layout_bytes)
        return [(entry.asset_id, entry.rect) for entry in entries]

    def render_image_map_html(self, layout_bytes: bytes, image_name: str = "ImageCache.png") -> str:
        """Render an HTML image map documenting where each bitmap sits in the atlas."""
        width, height, entries, colors = self.parse_layout(layout_bytes)
        template = create_environment().get_template("image_map.html.j2")
        return template.render(
            image_name=image_name,
            width=width,
            height=height,
            entries=entries,
            colors=sorted(colors, key=lambda c: c.asset_id)
        )

    def save(self, table: AssetTable, directory: Union[str, Path]) -> CacheFiles:
        """
        Write the image cache files into `directory`.

        The atlas is published under a content-derived name first and the
        layout map, which names it, is replaced last; a reader sees either
        the previous cache or the new one. The atlas the previous layout map
        named is removed afterwards.
        """
        directory = Path(directory)
        previous = self._published_atlas(directory)

        atlas_bytes, layout, colors = self._encode(table)
        atlas_name = content_file_name(self.config.cache_name, atlas_bytes, ".png")
        files = CacheFiles.in_directory(directory, self.config.cache_name, atlas_name)

        write_bytes_atomic(files.atlas, atlas_bytes)
        try:
            write_bytes_atomic(files.layout, self.serialize_layout(layout, colors, atlas_name))
        except BaseException:
            if previous != atlas_name:
                discard(files.atlas)
            raise
        if previous is not None and previous != atlas_name:
            discard(directory / previous)

        logger.info(f"Saved image cache to {files.atlas}")
        return files

    def load(self, directory: Union[str, Path]) -> AssetTable:
        """
        Read the image cache files from `directory`.

        Raises:
            OperationalError: If either file cannot be read
            CorruptLayoutError: If the layout map names an unusable atlas file
        """
        layout_bytes = read_bytes(CacheFiles.in_directory(directory, self.config.cache_name).layout)
        files = CacheFiles.in_directory(directory, self.config.cache_name, self.atlas_name(layout_bytes))
        atlas_bytes = read_bytes(files.atlas)
        return self.decode(atlas_bytes, layout_bytes)

    def atlas_name(self, layout_bytes: bytes) -> str:
        """
        Return the atlas file name a saved layout map refers to.

        Layout maps without one refer to `<cache_name>.png`.

        Raises:
            CorruptLayoutError: If the layout map is unreadable or the name is not a plain file name
        """
        try:
            meta = json.loads(layout_bytes.decode("utf-8"))["meta"]
            name = meta.get("image", f"{self.config.cache_name}.png")
        except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise CorruptLayoutError(f"Layout map is malformed: {e}")
        if not isinstance(name, str) or not name or Path(name).name != name:
            raise CorruptLayoutError(f"Layout map names an invalid atlas file {name!r}")
        return name

    def save_image_map(self, directory: Union[str, Path]) -> Path:
        """Write an HTML image map next to an existing image cache."""
        layout_path = CacheFiles.in_directory(directory, self.config.cache_name).layout
        layout_bytes = read_bytes(layout_path)
        html = self.render_image_map_html(layout_bytes, self.atlas_name(layout_bytes))
        return write_text_atomic(layout_path.with_suffix(".html"), html)

    def _published_atlas(self, directory: Path) -> Optional[str]:
        """Atlas file named by the layout map currently in `directory`."""
        layout_path = CacheFiles.in_directory(directory, self.config.cache_name).layout
        if not layout_path.exists():
            return None
        try:
            return self.atlas_name(read_bytes(layout_path))
        except ThemeCodecError as e:
            logger.warning(f"Ignoring unreadable layout map {layout_path}: {e}")
            return None


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {value!r}")
    return value


def _as_str(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ValueError(f"expected a non-empty string, got {value!r}")
    return value
