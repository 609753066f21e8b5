"""Default ``DiskSink`` writing files under a root directory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Iterable


class LocalDiskSink:
    """Write byte streams to local files.

    Relative file names are resolved against *root* (the current working
    directory by default).  Existing files are overwritten.
    """

    def __init__(self, root: Path | None = None) -> None:
        """Store the directory relative names are resolved against."""
        self._root = root

    def resolve(self, filename: str) -> Path:
        """Return the absolute path *filename* would be written to."""
        path = Path(filename)
        if path.is_absolute():
            return path
        return (self._root or Path.cwd()) / path

    def write(self, filename: str, chunks: Iterable[bytes]) -> Path:
        """Write *chunks* to *filename* and return the written path."""
        path = self.resolve(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        with path.open("wb") as fh:
            for chunk in chunks:
                if chunk:
                    fh.write(chunk)
                    size += len(chunk)
        logger.debug(f"Wrote {size} bytes to {path}")
        return path
