"""Filesystem storage for uploaded files (avatars, report files, chat attachments)."""
import logging
import time
from pathlib import Path
from typing import BinaryIO, Union

from .errors import NotFoundError

logger = logging.getLogger("taskflow-core.blobstore")

MAX_EXTENSION_LENGTH = 16


def _extension(original_name: str) -> str:
    suffix = Path(original_name or "").suffix.lower()
    if len(suffix) > MAX_EXTENSION_LENGTH or not suffix[1:].isalnum():
        return ""
    return suffix


def save(
    base_dir: Union[str, Path],
    original_name: str,
    data: bytes,
    prefix: str = "file",
) -> tuple[str, int]:
    """
    Store ``data`` under a new unique name in ``base_dir``.

    Names are ``<prefix>_<nanoseconds><ext>``, keeping the original file's
    extension. Existing files are never overwritten.

    Args:
        base_dir: Target directory (created if missing)
        original_name: Client-supplied file name, used for the extension only
        data: File content
        prefix: Name prefix (e.g. ``report``)

    Returns:
        (path, size); ``("", 0)`` when ``data`` is empty
    """
    if not data:
        return "", 0

    directory = Path(base_dir)
    directory.mkdir(parents=True, exist_ok=True)
    ext = _extension(original_name)

    stamp = time.time_ns()
    while True:
        path = directory / f"{prefix}_{stamp}{ext}"
        try:
            with path.open("xb") as f:
                f.write(data)
            break
        except FileExistsError:
            stamp += 1

    logger.debug(f"Stored {len(data)} bytes at {path}")
    return str(path), len(data)


def open_blob(path: Union[str, Path]) -> BinaryIO:
    """
    Open a stored file for reading.

    Raises:
        NotFoundError: If ``path`` is empty or the file is gone
    """
    if not path:
        raise NotFoundError("File not found")
    try:
        return open(path, "rb")
    except (FileNotFoundError, IsADirectoryError) as e:
        raise NotFoundError("File not found") from e


def remove(path: Union[str, Path]) -> None:
    """Delete a stored file if it still exists."""
    if path:
        Path(path).unlink(missing_ok=True)
