"""
Component codec: one PNG per bitmap asset plus a shared TOML manifest.

Manifest layout::

    [theme]
    version = 1

    [[images]]
    id = "icon.play"
    file = "icon.play.3fa4c2d19b0e.png"
    role = "icon"

    [[colors]]
    id = "color.bg"
    value = "#202020ff"

Ids the toml writer cannot reproduce exactly are stored percent-encoded
under ``quoted_id`` instead of ``id``.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union
from urllib.parse import quote, unquote

import toml

from ..assets.errors import (
    ManifestError, MalformedAssetError, MissingAssetError, OperationalError, ThemeCodecError
)
from ..assets.table import AssetRole, AssetTable, BitmapAsset, ColorAsset
from ..config import PackagerConfig
from ..utils.atomic import content_file_name, discard, read_bytes, write_bytes_atomic, write_text_atomic
from ..utils.image import ImageUtils

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1

_SAFE_NAME = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9._-]*$')


def component_file_name(asset_id: str, data: bytes) -> str:
    """
    Derive the image file name for a bitmap asset holding `data`.

    Ids made of file-name-safe characters start the name verbatim; anything
    else is sanitised and suffixed with a short digest of the id so distinct
    ids never share a file. A digest of the image bytes follows, so saving
    new pixels never overwrites a file the current manifest names.
    """
    if _SAFE_NAME.match(asset_id):
        stem = asset_id
    else:
        safe = re.sub(r'[^A-Za-z0-9._-]', '_', asset_id).lstrip('.') or "asset"
        digest = hashlib.sha1(asset_id.encode("utf-8", "surrogatepass")).hexdigest()[:8]
        stem = f"{safe}-{digest}"
    return content_file_name(stem, data, ".png")


def _id_fields(asset_id: str) -> Dict[str, str]:
    """Manifest fields naming `asset_id`."""
    if _toml_keeps(asset_id):
        return {"id": asset_id}
    return {"quoted_id": quote(asset_id, safe="", errors="surrogatepass")}


def _toml_keeps(text: str) -> bool:
    # toml mangles some escapes (quotes, backslash runs, control characters)
    if not text.isprintable():
        return False
    try:
        return toml.loads(toml.dumps({"id": text})) == {"id": text}
    except (ValueError, IndexError):
        return False


def _entry_id(entry: Any, section: str) -> str:
    """Read the asset id of a manifest entry."""
    if not isinstance(entry, dict):
        raise ManifestError(f"Manifest '{section}' entries must be tables")

    if "id" in entry and "quoted_id" in entry:
        raise ManifestError(f"Manifest '{section}' entry has both 'id' and 'quoted_id'")
    if isinstance(entry.get("id"), str) and entry["id"]:
        return entry["id"]
    if isinstance(entry.get("quoted_id"), str) and entry["quoted_id"]:
        try:
            return unquote(entry["quoted_id"], errors="surrogatepass")
        except UnicodeDecodeError as e:
            raise ManifestError(f"Manifest '{section}' entry has an undecodable 'quoted_id': {e}")
    raise ManifestError(f"Manifest '{section}' entry must carry a non-empty 'id'")


class ComponentFileCodec:
    """Reads and writes an asset table as a directory of individual files."""

    def __init__(self, config: Optional[PackagerConfig] = None):
        self.config = config or PackagerConfig()

    def manifest_path(self, directory: Union[str, Path]) -> Path:
        return Path(directory) / self.config.manifest_name

    def save(self, table: AssetTable, directory: Union[str, Path]) -> int:
        """
        Write every bitmap as a PNG and every color into the manifest.

        Image files are published first under content-derived names and the
        manifest is replaced last, so a reader sees either the previous theme
        or the new one. Images only the previous manifest named are removed
        once the new manifest is in place.

        Args:
            table: Assets to save
            directory: Destination directory (created if needed)

        Returns:
            Number of files written, manifest included

        Raises:
            OperationalError: If the directory or a file cannot be written
        """
        directory = Path(directory)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OperationalError(f"Cannot create component directory {directory}: {e}", str(directory), e)

        previous_files = self._published_files(directory)

        images: List[Dict[str, str]] = []
        colors: List[Dict[str, str]] = []

        try:
            for asset in table.sorted_assets():
                if isinstance(asset, BitmapAsset):
                    if asset.width == 0 or asset.height == 0:
                        raise MalformedAssetError(
                            f"Bitmap '{asset.asset_id}' has zero area: {asset.width}x{asset.height}",
                            asset.asset_id
                        )
                    data = ImageUtils.encode_png(asset.to_image(), self.config.compression_level)
                    file_name = component_file_name(asset.asset_id, data)
                    write_bytes_atomic(directory / file_name, data)
                    images.append({**_id_fields(asset.asset_id), "file": file_name, "role": asset.role.value})
                else:
                    colors.append({**_id_fields(asset.asset_id), "value": asset.hex})

            manifest = {
                "theme": {"version": MANIFEST_VERSION},
                "images": images,
                "colors": colors,
            }
            write_text_atomic(self.manifest_path(directory), toml.dumps(manifest))
        except BaseException:
            # The previous manifest is still in place; drop the files staged for this save
            for image in images:
                if image["file"] not in previous_files:
                    discard(directory / image["file"])
            raise

        for file_name in sorted(previous_files - {image["file"] for image in images}):
            discard(directory / file_name)

        logger.info(f"Saved {len(images)} images and {len(colors)} colors to {directory}")
        return len(images) + 1

    def load(self, directory: Union[str, Path]) -> AssetTable:
        """
        Read a component directory into a fresh asset table.

        Files not named by the manifest are ignored.

        Raises:
            ManifestError: If the manifest is missing or malformed
            MissingAssetError: If the manifest names a file that does not exist
            UnsupportedPixelFormatError: If an image is not RGBA-compatible
            OperationalError: If the directory or a file cannot be read
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise OperationalError(f"Component directory not found: {directory}", str(directory))

        images, colors = self._read_manifest(directory)
        table = AssetTable()

        try:
            for asset_id, file_name, role in images:
                table.add(self._load_image(directory, asset_id, file_name, role))
            for color in colors:
                table.add(color)
        except ValueError as e:
            raise ManifestError(f"Manifest lists an asset twice: {e}")

        logger.info(f"Loaded {len(table.bitmaps())} images and {len(table.colors())} colors from {directory}")
        return table

    def _published_files(self, directory: Path) -> Set[str]:
        """Image files named by the manifest currently in `directory`."""
        if not self.manifest_path(directory).exists():
            return set()
        try:
            images, _ = self._read_manifest(directory)
        except ThemeCodecError as e:
            logger.warning(f"Ignoring unreadable manifest in {directory}: {e}")
            return set()
        return {file_name for _, file_name, _ in images}

    def _read_manifest(self, directory: Path) -> Tuple[List[Tuple[str, str, AssetRole]], List[ColorAsset]]:
        """
        Parse the manifest into (id, file, role) image entries and color assets.
        """
        path = self.manifest_path(directory)
        if not path.exists():
            raise ManifestError(f"Component manifest not found: {path}", str(path))

        try:
            manifest = toml.loads(read_bytes(path).decode("utf-8"))
        except (ValueError, IndexError) as e:
            raise ManifestError(f"Component manifest is not valid TOML: {e}", str(path))

        theme = manifest.get("theme", {})
        if not isinstance(theme, dict):
            raise ManifestError("Manifest 'theme' must be a table", str(path))
        version = theme.get("version", MANIFEST_VERSION)
        if version != MANIFEST_VERSION:
            raise ManifestError(f"Unsupported manifest version {version}", str(path))

        image_entries = manifest.get("images", [])
        color_entries = manifest.get("colors", [])
        if not isinstance(image_entries, list) or not isinstance(color_entries, list):
            raise ManifestError("Manifest 'images' and 'colors' must be arrays of tables", str(path))

        try:
            images = [self._image_entry(entry) for entry in image_entries]
            colors = [self._color_entry(entry) for entry in color_entries]
        except ManifestError as e:
            e.path = str(path)
            raise
        return images, colors

    def _image_entry(self, entry: Any) -> Tuple[str, str, AssetRole]:
        asset_id = _entry_id(entry, "images")
        file_name = entry.get("file")
        if not isinstance(file_name, str) or not file_name:
            raise ManifestError(f"Image '{asset_id}' must name its file")
        if Path(file_name).name != file_name:
            raise ManifestError(f"Image '{asset_id}' file must be a plain name, got {file_name!r}")

        try:
            role = AssetRole(entry.get("role", AssetRole.OTHER.value))
        except ValueError:
            raise ManifestError(f"Image '{asset_id}' has unknown role {entry.get('role')!r}")
        return asset_id, file_name, role

    def _color_entry(self, entry: Any) -> ColorAsset:
        asset_id = _entry_id(entry, "colors")
        value = entry.get("value")
        if not isinstance(value, str):
            raise ManifestError(f"Color '{asset_id}' must be a '#rrggbbaa' string")
        try:
            return ColorAsset.from_hex(asset_id, value)
        except MalformedAssetError as e:
            raise ManifestError(str(e))

    def _load_image(self, directory: Path, asset_id: str, file_name: str, role: AssetRole) -> BitmapAsset:
        path = directory / file_name
        if not path.is_file():
            raise MissingAssetError(asset_id, str(path))

        try:
            image = ImageUtils.load_image(read_bytes(path), self.config.max_atlas_pixels)
        except ValueError as e:
            raise MalformedAssetError(f"Image file {path} for '{asset_id}' is unreadable: {e}", asset_id)
        image = ImageUtils.ensure_rgba(image, str(path))
        return BitmapAsset.from_image(asset_id, image, role)
