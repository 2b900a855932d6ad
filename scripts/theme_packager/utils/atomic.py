"""
Atomic file publishing.

Writers stage output in a temporary file next to the destination and only
replace the destination once everything has been written, so a reader sees
either the old content or the new content.

Outputs made of several files publish their parts under content-derived
names (see `content_file_name`) and replace one index file last; the index
is the only file ever overwritten with different content.
"""

import os
import stat
import hashlib
import tempfile
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

from ..assets.errors import OperationalError

logger = logging.getLogger(__name__)


@contextmanager
def atomic_write(path: Union[str, Path],
                 verify: Optional[Callable[[Path], None]] = None) -> Iterator[BinaryIO]:
    """
    Open a temporary binary file that replaces `path` on successful exit.

    The published file keeps the permissions of the file it replaces, or
    gets the process umask defaults when `path` is new.

    `verify`, when given, is called with the closed temporary file before it
    is published; any exception it raises discards the temporary file.

    Raises:
        OperationalError: If the temporary file cannot be created or published
    """
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
    except OSError as e:
        raise OperationalError(f"Cannot create temporary file for {target}: {e}", str(target), e)

    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(temp_path, _publish_mode(target))
        if verify is not None:
            verify(temp_path)
        os.replace(temp_path, target)
        logger.debug(f"Published {target}")
    except OSError as e:
        discard(temp_path)
        raise OperationalError(f"Cannot write {target}: {e}", str(target), e)
    except BaseException:
        discard(temp_path)
        raise


def write_bytes_atomic(path: Union[str, Path], data: bytes,
                       verify: Optional[Callable[[Path], None]] = None) -> Path:
    """Atomically replace `path` with `data`."""
    with atomic_write(path, verify) as handle:
        handle.write(data)
    return Path(path)


def write_text_atomic(path: Union[str, Path], text: str) -> Path:
    """Atomically replace `path` with UTF-8 encoded `text`."""
    return write_bytes_atomic(path, text.encode("utf-8"))


def read_bytes(path: Union[str, Path]) -> bytes:
    """
    Read a whole file.

    Raises:
        OperationalError: If the file cannot be read
    """
    try:
        with open(path, "rb") as handle:
            return handle.read()
    except OSError as e:
        raise OperationalError(f"Cannot read {path}: {e}", str(path), e)


def content_file_name(stem: str, data: bytes, suffix: str) -> str:
    """
    Name a file after `stem` and a digest of the bytes it will hold.

    Files named this way are never overwritten with different content, so
    an index that still names one keeps reading what it was written with.
    """
    digest = hashlib.sha1(data).hexdigest()[:12]
    return f"{stem}.{digest}{suffix}"


def discard(path: Path) -> None:
    """Remove `path` if it exists; failures are logged, not raised."""
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")


def _publish_mode(target: Path) -> int:
    try:
        return stat.S_IMODE(target.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask
