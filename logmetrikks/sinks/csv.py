"""CSV directory sink."""
from __future__ import annotations

import contextlib
import csv
import io
import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
import aiofiles.os

from logmetrikks.domain.analytics.dtos import ResultKind
from logmetrikks.domain.logs.models import FIELD_NAMES
from logmetrikks.sinks.base import ResultSink

if TYPE_CHECKING:
    from logmetrikks.domain.analytics.dtos import AggregationResult
    from logmetrikks.services.orchestrator.schemas import RunReport

logger = logging.getLogger(__name__)

RESULT_HEADER = ("key", "metric")
PARTITIONS_DIR = "partitions"
PART_FILE = "part-00000.csv"
SUMMARY_FILE = "summary.json"
PARTIAL_SUFFIX = ".partial"


def render_csv(header: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Render rows as CSV text with ``\\n`` line endings."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


class CsvDirectorySink(ResultSink):
    """
    Writes each result to ``<directory>/<name>.csv``.

    Layout::

        results/
            total_count.csv
            status_distribution.csv
            ...
            partition_export.csv
            partitions/status=404/part-00000.csv
            summary.json

    Output depends only on the results, so re-running an unchanged input
    with an unchanged configuration produces byte-identical files.
    """

    name = "csv"

    def __init__(self, directory: Path | str, *, encoding: str = "utf-8") -> None:
        self.directory = Path(directory)
        self.encoding = encoding

    async def open(self) -> None:
        await aiofiles.os.makedirs(self.directory, exist_ok=True)
        logger.info("Writing results to %s", self.directory)

    async def write(self, result: "AggregationResult") -> None:
        if result.kind is ResultKind.SCALAR:
            text = render_csv(RESULT_HEADER, [("total", result.scalar)])
        else:
            text = render_csv(RESULT_HEADER, result.as_pairs())
        await self._write_text(self.directory / f"{result.name}.csv", text)

        if result.kind is ResultKind.PARTITIONS:
            for stream_name, records in result.streams.items():
                target = self.directory / PARTITIONS_DIR / stream_name
                await aiofiles.os.makedirs(target, exist_ok=True)
                text = render_csv(FIELD_NAMES, (record.as_row() for record in records))
                await self._write_text(target / PART_FILE, text)
            logger.debug("Exported %d partition stream(s)", len(result.streams))

    async def write_report(self, report: "RunReport") -> None:
        text = json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n"
        await self._write_text(self.directory / SUMMARY_FILE, text)

    async def _write_text(self, path: Path, text: str) -> None:
        """Write to a sibling ``.partial`` file, then rename it over ``path``.

        A write interrupted by a deadline or an I/O error leaves the
        previous file untouched.
        """
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        try:
            async with aiofiles.open(partial, "w", encoding=self.encoding, newline="") as file:
                await file.write(text)
            await aiofiles.os.replace(partial, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                await aiofiles.os.remove(partial)
            raise
        logger.debug("Wrote %s", path)
