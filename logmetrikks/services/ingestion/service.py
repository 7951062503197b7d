"""Log ingestion service - reads a source, parses rows, loads the store.

This service orchestrates:
- Reading raw rows from an IngestionSource
- Parsing via LogParser
- Loading parsed records into the PartitionedStore in batches
- Keeping the diagnostic tally of rejected and flagged rows

Malformed rows are skipped and counted unless strict mode is on, in
which case the first one aborts ingestion with a LoadError.
"""
from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from logmetrikks.exceptions import LoadError, LoadErrorKind, ParseError, ParseErrorKind

if TYPE_CHECKING:
    from logmetrikks.domain.logs.models import LogRecord
    from logmetrikks.domain.logs.store import PartitionedStore
    from logmetrikks.services.ingestion.sources import IngestionSource
    from logmetrikks.services.logparser.logparser import LogParser


logger = logging.getLogger(__name__)


@dataclass
class IngestionStats:
    """Diagnostic tally of one ingestion run.

    ``rows_read`` excludes the header and blank lines, so
    ``records_loaded + malformed_rows + invalid_status_rows == rows_read``.
    """

    rows_read: int = 0
    records_loaded: int = 0
    malformed_rows: int = 0
    invalid_status_rows: int = 0
    invalid_addresses: int = 0
    unparseable_timestamps: int = 0
    out_of_range_statuses: int = 0
    header_skipped: bool = False

    @property
    def rejected_rows(self) -> int:
        """Rows that did not become records."""
        return self.malformed_rows + self.invalid_status_rows

    def to_dict(self) -> dict[str, int | bool]:
        data = asdict(self)
        data["rejected_rows"] = self.rejected_rows
        return data


class LogIngestionService:
    """Loads one ingestion source into a store.

    Example:
        service = LogIngestionService(parser=parser, store=store, strict=False)
        stats = await service.ingest(FileSource("access.csv"))
        frozen = store.freeze()
    """

    def __init__(
        self,
        parser: "LogParser",
        store: "PartitionedStore",
        *,
        strict: bool = False,
        batch_size: int = 1000,
    ) -> None:
        """Initialize the log ingestion service.

        Args:
            parser: LogParser instance for parsing rows.
            store: Store to load records into.
            strict: If True, the first rejected row aborts ingestion.
            batch_size: Records buffered before they are appended to the store.
        """
        self.parser: LogParser = parser
        self.store: PartitionedStore = store
        self.strict: bool = strict
        self.batch_size: int = batch_size

        self.stats = IngestionStats()
        self._pending: list[LogRecord] = []

    async def ingest(self, source: "IngestionSource") -> IngestionStats:
        """Read every row of ``source`` into the store.

        Returns:
            The diagnostic tally for this run.

        Raises:
            LoadError: SOURCE_UNAVAILABLE if the source cannot be read,
                STRICT_MODE on the first rejected row in strict mode.
        """
        started = time.monotonic()
        logger.info(
            "Started ingestion from %s (strict=%s, header=%s)",
            source.description,
            self.strict,
            source.has_header,
        )
        skip_header = source.has_header
        try:
            async for line_number, raw_row in source.rows():
                if skip_header:
                    skip_header = False
                    self.stats.header_skipped = True
                    logger.debug("Skipping header row: %r", raw_row.rstrip("\r\n"))
                    continue

                self.stats.rows_read += 1
                try:
                    record = self.parser.parse(raw_row, line_number)
                except ParseError as e:
                    self._reject(e)
                    continue

                self._track_flags(record)
                self._pending.append(record)
                if len(self._pending) >= self.batch_size:
                    self._flush()
        finally:
            # Keep what was parsed so far; loading is not transactional
            self._flush()

        logger.info(
            "Finished ingestion: %d rows read, %d loaded, %d rejected in %.3fs",
            self.stats.rows_read,
            self.stats.records_loaded,
            self.stats.rejected_rows,
            time.monotonic() - started,
        )
        return self.stats

    def _reject(self, error: ParseError) -> None:
        """Count a rejected row or abort when strict."""
        if error.kind is ParseErrorKind.INVALID_STATUS:
            self.stats.invalid_status_rows += 1
        else:
            self.stats.malformed_rows += 1

        if self.strict:
            logger.error("Strict mode: aborting ingestion at %s", error)
            raise LoadError(LoadErrorKind.STRICT_MODE, f"Rejected row in strict mode: {error}") from error

        logger.debug("Skipping rejected row (%s): %s", error.kind.value, error)

    def _track_flags(self, record: "LogRecord") -> None:
        if not record.valid_address:
            self.stats.invalid_addresses += 1
        if not record.has_valid_timestamp:
            self.stats.unparseable_timestamps += 1
        if not record.status_in_range:
            self.stats.out_of_range_statuses += 1

    def _flush(self) -> None:
        """Append buffered records to the store."""
        if not self._pending:
            return
        self.stats.records_loaded += self.store.load(self._pending)
        logger.debug("Loaded batch of %d records", len(self._pending))
        self._pending = []

    # Statistics properties
    @property
    def parsed_lines(self) -> int:
        """Return the number of parsed lines from the parser."""
        return self.parser.parsed_lines

    @property
    def skipped_lines(self) -> int:
        """Return the number of skipped lines from the parser."""
        return self.parser.skipped_lines
