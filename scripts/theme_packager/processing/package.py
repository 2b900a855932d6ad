"""
Theme package archive: a versioned, checksummed container bundling an
asset table with its metadata.

Container layout (little-endian)::

    magic       8 bytes   b"THMPKG\\x00\\x01"
    count       u32       number of entries
    entries     count x  (u16 name_len, name, u64 offset, u64 length)
    data        entry bodies at their offsets

Required entries are ``metadata`` (JSON) and ``payload`` (binary asset
table). Unknown entries are ignored.
"""

import hashlib
import json
import logging
import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from ..assets.errors import (
    CorruptPayloadError, InvalidArchiveError, MalformedAssetError, OperationalError,
    ResourceExhaustedError
)
from ..assets.table import AssetKind, AssetRole, AssetTable, BitmapAsset, ColorAsset
from ..config import PackagerConfig
from ..utils.atomic import read_bytes, write_bytes_atomic
from .compatibility import (
    Compatible, CompatibleWithLoss, CompatibilityOutcome, Incompatible, evaluate_compatibility
)

logger = logging.getLogger(__name__)

CODEC_FORMAT_VERSION = 1

MAGIC = b"THMPKG\x00\x01"
PAYLOAD_MAGIC = b"TPAY"
METADATA_ENTRY = "metadata"
PAYLOAD_ENTRY = "payload"

_HEADER = struct.Struct("<8sI")
_SPAN = struct.Struct("<QQ")
_COUNT = struct.Struct("<I")
_ASSET_HEAD = struct.Struct("<BH")
_BITMAP_HEAD = struct.Struct("<BII")

_KIND_CODES = {AssetKind.BITMAP: 0, AssetKind.COLOR: 1}
_ROLE_CODES = {AssetRole.ICON: 0, AssetRole.OTHER: 1}
_ROLES_BY_CODE = {code: role for role, code in _ROLE_CODES.items()}


class PackageStateError(RuntimeError):
    """Raised when a package is materialized without a readable compatibility outcome."""
    pass


@dataclass
class PackageMetadata:
    """Versioning and integrity information stored alongside the payload."""
    format_version: int = CODEC_FORMAT_VERSION
    min_compatible_version: int = CODEC_FORMAT_VERSION
    checksum: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": self.format_version,
            "min_compatible_version": self.min_compatible_version,
            "checksum": self.checksum,
            "attributes": dict(self.attributes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PackageMetadata":
        """
        Build metadata from its JSON form.

        Raises:
            InvalidArchiveError: If a field is missing or has the wrong type
        """
        if not isinstance(data, dict):
            raise InvalidArchiveError("Package metadata must be a JSON object")
        try:
            format_version = data["format_version"]
            min_compatible_version = data["min_compatible_version"]
            checksum = data["checksum"]
        except KeyError as e:
            raise InvalidArchiveError(f"Package metadata is missing {e}")

        for name, value in (("format_version", format_version),
                            ("min_compatible_version", min_compatible_version)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidArchiveError(f"Package metadata field '{name}' must be a non-negative integer")
        if not isinstance(checksum, str):
            raise InvalidArchiveError("Package metadata field 'checksum' must be a string")

        attributes = data.get("attributes", {})
        if not isinstance(attributes, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in attributes.items()):
            raise InvalidArchiveError("Package metadata 'attributes' must map strings to strings")

        return cls(format_version, min_compatible_version, checksum, dict(attributes))


@dataclass
class RawPackage:
    """
    A structurally parsed package.

    The payload is untrusted until `PackageArchive.validate` has checked its
    checksum and recorded a compatibility outcome.
    """
    metadata: PackageMetadata
    payload: bytes
    entries: Dict[str, Tuple[int, int]]
    path: Optional[Path] = None
    outcome: Optional[CompatibilityOutcome] = None
    _table: Optional[AssetTable] = field(default=None, repr=False)


class PackageArchive:
    """Reads, validates and writes theme package files."""

    def __init__(self, config: Optional[PackagerConfig] = None,
                 format_version: int = CODEC_FORMAT_VERSION,
                 known_ids: Optional[Iterable[str]] = None):
        """
        Initialize the archive codec.

        Args:
            config: Packager configuration providing the decode limits
            format_version: Format version of the running codec
            known_ids: Asset ids the running codec recognises; None accepts every id
        """
        self.config = config or PackagerConfig()
        self.format_version = format_version
        self.known_ids = None if known_ids is None else frozenset(known_ids)

    def open(self, path: Union[str, Path]) -> RawPackage:
        """
        Parse the container framing of a package file.

        No checksum or version checks happen here.

        Raises:
            OperationalError: If the file cannot be read
            InvalidArchiveError: If the framing is malformed
            ResourceExhaustedError: If the file or its entry table exceeds the limits
        """
        path = Path(path)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise OperationalError(f"Cannot access package {path}: {e}", str(path), e)

        if size > self.config.max_package_bytes:
            raise ResourceExhaustedError(
                f"Package {path} is {size} bytes, over the limit of {self.config.max_package_bytes}",
                size, self.config.max_package_bytes
            )

        try:
            data = read_bytes(path)
        except MemoryError:
            raise ResourceExhaustedError(f"Out of memory reading package {path}", size)

        try:
            raw = self.parse(data)
        except InvalidArchiveError as e:
            e.path = str(path)
            raise
        raw.path = path
        logger.debug(f"Opened package {path}: entries {sorted(raw.entries)}")
        return raw

    def parse(self, data: bytes) -> RawPackage:
        """Parse container bytes into a RawPackage."""
        if len(data) < _HEADER.size:
            raise InvalidArchiveError("Package is too short to hold a header")

        magic, count = _HEADER.unpack_from(data, 0)
        if magic != MAGIC:
            raise InvalidArchiveError(f"Not a theme package: bad magic {magic!r}")
        if count > self.config.max_package_entries:
            raise ResourceExhaustedError(
                f"Package declares {count} entries, over the limit of {self.config.max_package_entries}",
                count, self.config.max_package_entries
            )

        entries: Dict[str, Tuple[int, int]] = {}
        offset = _HEADER.size
        for _ in range(count):
            name, offset = _read_utf8(data, offset)
            if len(data) < offset + _SPAN.size:
                raise InvalidArchiveError("Package entry table is truncated")
            start, length = _SPAN.unpack_from(data, offset)
            offset += _SPAN.size
            if name in entries:
                raise InvalidArchiveError(f"Package entry '{name}' appears more than once")
            entries[name] = (start, length)

        table_end = offset
        for name, (start, length) in entries.items():
            if start < table_end or start + length > len(data):
                raise InvalidArchiveError(
                    f"Package entry '{name}' spans bytes {start}..{start + length} outside the data area"
                )

        for required in (METADATA_ENTRY, PAYLOAD_ENTRY):
            if required not in entries:
                raise InvalidArchiveError(f"Package has no '{required}' entry")

        start, length = entries[METADATA_ENTRY]
        try:
            document = json.loads(data[start:start + length].decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise InvalidArchiveError(f"Package metadata is not valid JSON: {e}")
        metadata = PackageMetadata.from_dict(document)

        start, length = entries[PAYLOAD_ENTRY]
        return RawPackage(metadata, bytes(data[start:start + length]), entries)

    def validate(self, raw: RawPackage, running_version: Optional[int] = None) -> CompatibilityOutcome:
        """
        Check the payload checksum and decide compatibility.

        The outcome is recorded on `raw` and gates `materialize`.

        Raises:
            CorruptPayloadError: If the payload does not match the checksum
            InvalidArchiveError: If a checksummed payload cannot be parsed
            ResourceExhaustedError: If payload size fields exceed the limits
        """
        running = self.format_version if running_version is None else running_version

        actual = hashlib.sha256(raw.payload).hexdigest()
        if actual != raw.metadata.checksum:
            raise CorruptPayloadError(raw.metadata.checksum, actual, str(raw.path) if raw.path else None)

        # Versions alone decide incompatibility; such payloads are never parsed
        outcome = evaluate_compatibility(
            raw.metadata.format_version, raw.metadata.min_compatible_version, running, (), None
        )
        if isinstance(outcome, Incompatible):
            raw.outcome = outcome
            logger.warning(f"Package is incompatible: {outcome.reason}")
            return outcome

        table = self.decode_payload(raw.payload)
        outcome = evaluate_compatibility(
            raw.metadata.format_version,
            raw.metadata.min_compatible_version,
            running,
            table.ids(),
            self.known_ids
        )

        raw._table = table
        raw.outcome = outcome
        if isinstance(outcome, CompatibleWithLoss) and outcome.dropped_ids:
            logger.warning(f"Package is newer than this codec; dropping {len(outcome.dropped_ids)} unknown assets")
        return outcome

    def materialize(self, raw: RawPackage) -> AssetTable:
        """
        Return the package's assets as a fresh table.

        Raises:
            PackageStateError: If `validate` has not returned a readable outcome
        """
        if isinstance(raw.outcome, Incompatible):
            raise PackageStateError(f"Cannot materialize an incompatible package: {raw.outcome.reason}")
        if raw.outcome is None or raw._table is None:
            raise PackageStateError("Package must be validated before it is materialized")
        if isinstance(raw.outcome, CompatibleWithLoss):
            return raw._table.without(raw.outcome.dropped_ids)
        return raw._table.copy()

    def write(self, table: AssetTable, metadata: Optional[PackageMetadata],
              path: Union[str, Path]) -> Path:
        """
        Write `table` as a package file.

        The running format version and the payload checksum are stamped over
        whatever `metadata` carries. The file is re-opened and validated
        before it replaces `path`.

        Raises:
            ValueError: If the minimum compatible version is above the running version
            OperationalError: If the file cannot be written
        """
        metadata = metadata or PackageMetadata(min_compatible_version=self.format_version)
        if metadata.min_compatible_version > self.format_version:
            raise ValueError(
                f"Minimum compatible version {metadata.min_compatible_version} is above "
                f"the running version {self.format_version}"
            )

        payload = self.encode_payload(table)
        stamped = PackageMetadata(
            format_version=self.format_version,
            min_compatible_version=metadata.min_compatible_version,
            checksum=hashlib.sha256(payload).hexdigest(),
            attributes=dict(metadata.attributes)
        )
        data = self.build_container({
            METADATA_ENTRY: json.dumps(stamped.to_dict(), sort_keys=True).encode("utf-8"),
            PAYLOAD_ENTRY: payload,
        })

        def verify(temp_path: Path) -> None:
            written = self.open(temp_path)
            outcome = self.validate(written, self.format_version)
            if not isinstance(outcome, Compatible) or self.materialize(written) != table:
                raise InvalidArchiveError("Written package does not read back identically", str(temp_path))

        target = write_bytes_atomic(path, data, verify)
        logger.info(f"Wrote package {target}: {len(table)} assets, format version {self.format_version}")
        return target

    @staticmethod
    def build_container(entries: Dict[str, bytes]) -> bytes:
        """Frame named entry bodies into container bytes."""
        table_size = sum(2 + len(name.encode("utf-8")) + _SPAN.size for name in entries)
        offset = _HEADER.size + table_size

        header = bytearray(_HEADER.pack(MAGIC, len(entries)))
        body = bytearray()
        for name, content in entries.items():
            header += _write_utf8(name)
            header += _SPAN.pack(offset + len(body), len(content))
            body += content
        return bytes(header + body)

    def encode_payload(self, table: AssetTable) -> bytes:
        """Serialize a table deterministically, assets ordered by id."""
        assets = table.sorted_assets()
        out = bytearray(PAYLOAD_MAGIC)
        out += _COUNT.pack(len(assets))
        for asset in assets:
            encoded_id = asset.asset_id.encode("utf-8")
            if len(encoded_id) > 0xFFFF:
                raise MalformedAssetError(f"Asset id is too long to package: {asset.asset_id[:32]}...", asset.asset_id)
            out += _ASSET_HEAD.pack(_KIND_CODES[asset.kind], len(encoded_id))
            out += encoded_id
            if isinstance(asset, BitmapAsset):
                out += _BITMAP_HEAD.pack(_ROLE_CODES[asset.role], asset.width, asset.height)
                out += asset.pixels
            else:
                out += bytes(asset.rgba)
        return bytes(out)

    def decode_payload(self, payload: bytes) -> AssetTable:
        """
        Parse a payload back into a table.

        Raises:
            InvalidArchiveError: If the payload is truncated or malformed
            ResourceExhaustedError: If a bitmap declares more pixels than allowed
        """
        if not payload.startswith(PAYLOAD_MAGIC) or len(payload) < len(PAYLOAD_MAGIC) + _COUNT.size:
            raise InvalidArchiveError("Package payload has no asset table header")

        (count,) = _COUNT.unpack_from(payload, len(PAYLOAD_MAGIC))
        offset = len(PAYLOAD_MAGIC) + _COUNT.size
        # Every asset record needs at least its kind, id length and one id byte
        if count * (_ASSET_HEAD.size + 1) > len(payload) - offset:
            raise InvalidArchiveError(f"Package payload declares {count} assets but is only {len(payload)} bytes")

        table = AssetTable()
        try:
            for _ in range(count):
                asset, offset = self._read_asset(payload, offset)
                table.add(asset)
        except MemoryError:
            raise ResourceExhaustedError("Out of memory decoding package payload", len(payload))
        except (MalformedAssetError, ValueError) as e:
            raise InvalidArchiveError(f"Package payload is malformed: {e}")

        if offset != len(payload):
            raise InvalidArchiveError(f"Package payload has {len(payload) - offset} trailing bytes")
        return table

    def _read_asset(self, payload: bytes, offset: int):
        _need(payload, offset, _ASSET_HEAD.size)
        kind, id_length = _ASSET_HEAD.unpack_from(payload, offset)
        offset += _ASSET_HEAD.size
        _need(payload, offset, id_length)
        asset_id = payload[offset:offset + id_length].decode("utf-8")
        offset += id_length

        if kind == _KIND_CODES[AssetKind.COLOR]:
            _need(payload, offset, 4)
            rgba = tuple(payload[offset:offset + 4])
            return ColorAsset(asset_id, rgba), offset + 4

        if kind != _KIND_CODES[AssetKind.BITMAP]:
            raise InvalidArchiveError(f"Asset '{asset_id}' has unknown kind {kind}")

        _need(payload, offset, _BITMAP_HEAD.size)
        role_code, width, height = _BITMAP_HEAD.unpack_from(payload, offset)
        offset += _BITMAP_HEAD.size
        if role_code not in _ROLES_BY_CODE:
            raise InvalidArchiveError(f"Bitmap '{asset_id}' has unknown role {role_code}")
        if width * height > self.config.max_atlas_pixels:
            raise ResourceExhaustedError(
                f"Bitmap '{asset_id}' declares {width}x{height} pixels, over the limit of "
                f"{self.config.max_atlas_pixels}",
                width * height, self.config.max_atlas_pixels
            )

        length = width * height * 4
        _need(payload, offset, length)
        pixels = payload[offset:offset + length]
        return BitmapAsset(asset_id, width, height, pixels, _ROLES_BY_CODE[role_code]), offset + length


def _write_utf8(value: str) -> bytes:
    encoded = value.encode("utf-8")
    if len(encoded) > 0xFFFF:
        raise ValueError("string too long for u16 length prefix")
    return struct.pack("<H", len(encoded)) + encoded


def _read_utf8(buffer: bytes, offset: int) -> Tuple[str, int]:
    if len(buffer) < offset + 2:
        raise InvalidArchiveError("Package entry table is truncated")
    (length,) = struct.unpack_from("<H", buffer, offset)
    offset += 2
    if len(buffer) < offset + length:
        raise InvalidArchiveError("Package entry name is truncated")
    try:
        return buffer[offset:offset + length].decode("utf-8"), offset + length
    except UnicodeDecodeError as e:
        raise InvalidArchiveError(f"Package entry name is not UTF-8: {e}")


def _need(buffer: bytes, offset: int, length: int) -> None:
    if len(buffer) < offset + length:
        raise InvalidArchiveError(f"Package payload is truncated at byte {offset}")
