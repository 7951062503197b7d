"""Ingestion sources: anything that produces raw rows."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable
from pathlib import Path

import aiofiles
import aiofiles.os

from logmetrikks.exceptions import LoadError, LoadErrorKind

logger = logging.getLogger(__name__)


class IngestionSource(ABC):
    """Produces raw rows as ``(line_number, row)`` pairs.

    Blank lines are dropped by the source and never reach the parser.
    When ``has_header`` is set the first row produced is a header that
    the consumer skips.
    """

    has_header: bool = False

    @abstractmethod
    def rows(self) -> AsyncIterator[tuple[int, str]]:
        """Yield ``(line_number, raw_row)`` pairs in source order.

        Raises:
            LoadError: SOURCE_UNAVAILABLE if the source cannot be read.
        """

    @property
    def description(self) -> str:
        return type(self).__name__


class FileSource(IngestionSource):
    """Reads rows from a text file with aiofiles."""

    def __init__(self, path: Path | str, *, has_header: bool = True, encoding: str = "utf-8") -> None:
        self.path = Path(path)
        self.has_header = has_header
        self.encoding = encoding

    @property
    def description(self) -> str:
        return str(self.path)

    async def rows(self) -> AsyncIterator[tuple[int, str]]:
        try:
            stat_result = await aiofiles.os.stat(self.path)
        except OSError as e:
            raise LoadError(
                LoadErrorKind.SOURCE_UNAVAILABLE,
                f"Cannot read input {self.path}: {e.strerror or e}",
            ) from e
        logger.info("Reading %s (%d bytes)", self.path, stat_result.st_size)

        try:
            # Undecodable bytes become U+FFFD so a single bad byte cannot abort the run
            async with aiofiles.open(self.path, "r", encoding=self.encoding, errors="replace") as file:
                line_number = 0
                async for line in file:
                    line_number += 1
                    if not line.strip():
                        continue
                    yield line_number, line
        except OSError as e:
            raise LoadError(
                LoadErrorKind.SOURCE_UNAVAILABLE,
                f"Cannot read input {self.path}: {e.strerror or e}",
            ) from e


class IterableSource(IngestionSource):
    """Serves rows from memory, e.g. for tests or embedding callers."""

    def __init__(self, rows: Iterable[str], *, has_header: bool = False) -> None:
        self._rows = list(rows)
        self.has_header = has_header

    @property
    def description(self) -> str:
        return f"<memory: {len(self._rows)} rows>"

    async def rows(self) -> AsyncIterator[tuple[int, str]]:
        for line_number, row in enumerate(self._rows, start=1):
            if not row.strip():
                continue
            yield line_number, row
