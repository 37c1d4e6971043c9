"""Dump file used as the byte sink for reads and the source for writes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional

from .errors import DumpFileError, SourceTooShortError

logger = logging.getLogger(__name__)


class DumpFile:
    """Raw binary image of an EEPROM range, one byte per address."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._handle: Optional[BinaryIO] = None

    def truncate_and_open_for_append(self) -> None:
        self.close()
        try:
            self.path.write_bytes(b"")
            self._handle = self.path.open("ab")
        except OSError as exc:
            raise DumpFileError(f"Cannot write {self.path}: {exc}") from exc

    def append_bytes(self, data: bytes) -> None:
        if self._handle is None:
            raise DumpFileError(f"{self.path} is not open for appending")
        self._handle.write(data)

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def open_and_read_exactly(self, count: int) -> bytes:
        """Return the first *count* bytes of the file.

        Raises:
            SourceTooShortError: If the file holds fewer than *count* bytes.
            DumpFileError: If the file cannot be read.
        """

        try:
            with self.path.open("rb") as handle:
                data = handle.read(count)
        except OSError as exc:
            raise DumpFileError(f"Unable to read file {self.path}: {exc}") from exc
        if len(data) < count:
            raise SourceTooShortError(str(self.path), count, len(data))
        logger.debug("Loaded %d bytes from %s", len(data), self.path)
        return data
