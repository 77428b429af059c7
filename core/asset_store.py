"""
Directory-backed store for processed output files.

Filenames follow `{tag}_{timestamp}[_{original_stem}].{ext}` where the
timestamp is milliseconds since the epoch. Lookups only resolve names
inside the store directory.
"""

import logging
import re
import time
from pathlib import Path
from typing import List, Optional, Union

from core.constants import ErrorMessages
from core.exceptions import AssetNotFoundError, InputValidationError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def generate_filename(
    tag: str,
    extension: str,
    original_name: Optional[str] = None,
    timestamp: Optional[int] = None,
) -> str:
    """
    Build an output filename for an operation.

    Args:
        tag: Operation tag, e.g. "resized" or "collage"
        extension: File extension without the dot
        original_name: Uploaded filename whose stem is appended when present
        timestamp: Milliseconds to use instead of the current time

    Returns:
        Filename such as "resized_1700000000000_photo.jpg"
    """
    if timestamp is None:
        timestamp = int(time.time() * 1000)
    stem = ""
    if original_name:
        stem = _UNSAFE_CHARS.sub("_", Path(original_name).stem).strip("._")
    name = f"{tag}_{timestamp}_{stem}" if stem else f"{tag}_{timestamp}"
    return f"{name}.{extension.lstrip('.')}"


class AssetStore:
    """Local filesystem store for output images"""

    def __init__(self, base_path: Union[str, Path]):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Asset store ready at {self.base_path}")

    def _resolve(self, filename: str) -> Path:
        """Map a filename to a path inside the store, rejecting traversal."""
        if not filename or filename != Path(filename).name or filename in (".", ".."):
            raise InputValidationError(ErrorMessages.INVALID_FILENAME.format(filename=filename))
        path = (self.base_path / filename).resolve()
        if path.parent != self.base_path:
            raise InputValidationError(ErrorMessages.INVALID_FILENAME.format(filename=filename))
        return path

    def save(self, filename: str, data: bytes) -> str:
        path = self._resolve(filename)
        path.write_bytes(data)
        logger.debug(f"Stored {filename} ({len(data)} bytes)")
        return filename

    def path(self, filename: str) -> Path:
        """
        Absolute path of a stored file.

        Raises:
            AssetNotFoundError: If the file does not exist
        """
        path = self._resolve(filename)
        if not path.is_file():
            raise AssetNotFoundError(filename)
        return path

    def read(self, filename: str) -> bytes:
        return self.path(filename).read_bytes()

    def exists(self, filename: str) -> bool:
        try:
            return self._resolve(filename).is_file()
        except InputValidationError:
            return False

    def list(self, prefix: str = "") -> List[str]:
        """Stored filenames starting with `prefix`, newest first"""
        files = [p for p in self.base_path.iterdir() if p.is_file() and p.name.startswith(prefix)]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.name for p in files]

    def delete(self, filename: str) -> None:
        self.path(filename).unlink()
        logger.info(f"Deleted {filename}")
