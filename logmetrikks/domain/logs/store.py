"""Partitioned in-memory store for access log records.

Records are sharded by HTTP status code. Each partition is an
append-only sequence of ``(sequence, record)`` pairs, where ``sequence``
is the global ingestion position. Status-filtered scans only walk the
matching partitions; full scans k-way merge partitions by sequence so
callers always observe ingestion order.

The store has two phases:

- ``PartitionedStore`` accepts ``load`` calls while ingestion runs.
- ``PartitionedStore.freeze()`` hands out a ``FrozenStore`` which has no
  mutation method at all and is safe to share between analysis workers
  without locking.
"""
from __future__ import annotations

import heapq
import logging
import threading
from collections.abc import Collection, Iterable, Iterator
from dataclasses import dataclass, field

from logmetrikks.domain.logs.models import LogRecord
from logmetrikks.exceptions import ScanCancelled, StoreSealedError

logger = logging.getLogger(__name__)

# How many records a scan yields between two cancellation checks.
CANCEL_CHECK_INTERVAL = 1024


@dataclass
class Partition:
    """Records sharing one status code, in ingestion order."""

    status_code: int
    entries: list[tuple[int, LogRecord]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.entries)

    def append(self, sequence: int, record: LogRecord) -> None:
        self.entries.append((sequence, record))


def _check_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise ScanCancelled("Scan cancelled")


def _merge_partitions(
    partitions: list[tuple[tuple[int, LogRecord], ...]],
    cancel: threading.Event | None,
) -> Iterator[LogRecord]:
    """Yield records of several partitions in global ingestion order."""
    _check_cancelled(cancel)
    if len(partitions) == 1:
        merged: Iterable[tuple[int, LogRecord]] = partitions[0]
    else:
        merged = heapq.merge(*partitions, key=lambda entry: entry[0])
    for index, (_sequence, record) in enumerate(merged, start=1):
        if index % CANCEL_CHECK_INTERVAL == 0:
            _check_cancelled(cancel)
        yield record


class PartitionedStore:
    """Mutable store used during the loading phase.

    Example:
        store = PartitionedStore()
        store.load(records)
        frozen = store.freeze()
        for record in frozen.scan_by_status({404, 500}):
            ...
    """

    def __init__(self) -> None:
        self._partitions: dict[int, Partition] = {}
        self._total: int = 0
        self._sealed: bool = False

    @property
    def total_count(self) -> int:
        return self._total

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def load(self, records: Iterable[LogRecord]) -> int:
        """Append records to the partition matching their status code.

        Not transactional: if the iterable raises halfway, the records
        appended so far stay in place. Recovery is a re-run into a fresh
        store.

        Args:
            records: Parsed records in ingestion order.

        Returns:
            Number of records appended by this call.

        Raises:
            StoreSealedError: If the store was already frozen.
        """
        if self._sealed:
            raise StoreSealedError("Store is frozen; records can no longer be loaded")

        appended = 0
        for record in records:
            partition = self._partitions.get(record.status_code)
            if partition is None:
                partition = Partition(status_code=record.status_code)
                self._partitions[record.status_code] = partition
                logger.debug("Created partition for status %d", record.status_code)
            partition.append(self._total, record)
            self._total += 1
            appended += 1
        return appended

    def freeze(self) -> "FrozenStore":
        """End the loading phase and return the read-only view."""
        if self._sealed:
            raise StoreSealedError("Store is already frozen")
        self._sealed = True
        frozen = FrozenStore(
            {
                status: tuple(partition.entries)
                for status, partition in self._partitions.items()
            },
            total=self._total,
        )
        # The frozen view owns the data from here on.
        self._partitions = {}
        logger.info(
            "Store frozen with %d records in %d partitions",
            frozen.total_count,
            len(frozen.statuses),
        )
        return frozen


class FrozenStore:
    """Read-only, fully loaded store shared by all analyses."""

    def __init__(
        self,
        partitions: dict[int, tuple[tuple[int, LogRecord], ...]],
        *,
        total: int,
    ) -> None:
        self._partitions = partitions
        self._total = total

    @property
    def total_count(self) -> int:
        """Number of records in the store. O(1)."""
        return self._total

    @property
    def statuses(self) -> list[int]:
        """Status codes that have a partition, ascending."""
        return sorted(self._partitions)

    def status_counts(self) -> dict[int, int]:
        """Record count per status code, from partition sizes.

        O(number of partitions); records are never rescanned.
        """
        return {status: len(entries) for status, entries in self._partitions.items()}

    def scan_all(self, cancel: threading.Event | None = None) -> Iterator[LogRecord]:
        """Lazily yield every record in ingestion order."""
        return self.scan_by_status(None, cancel=cancel)

    def scan_by_status(
        self,
        statuses: Collection[int] | None,
        cancel: threading.Event | None = None,
    ) -> Iterator[LogRecord]:
        """Lazily yield records whose status is in ``statuses``.

        Only the matching partitions are touched. Statuses without a
        partition are ignored.

        Args:
            statuses: Status codes to scan, or None for every partition.
            cancel: Optional signal checked between partitions and
                periodically while scanning.

        Raises:
            ScanCancelled: When ``cancel`` is set during the scan.
        """
        if statuses is None:
            selected = [self._partitions[status] for status in sorted(self._partitions)]
        else:
            selected = [
                self._partitions[status]
                for status in sorted(set(statuses))
                if status in self._partitions
            ]
        if not selected:
            return iter(())
        return _merge_partitions(selected, cancel)

    def partition(self, status_code: int) -> tuple[LogRecord, ...]:
        """Return the records of one partition, or an empty tuple."""
        return tuple(record for _sequence, record in self._partitions.get(status_code, ()))

    def __len__(self) -> int:
        return self._total
