"""Aggregation engine computing the analytical summaries.

Every analysis reads through the frozen store's scan primitives and
never mutates it, so any number of analyses can run concurrently over
the same store without locking.

Ordering rules (deterministic output is part of the contract):

- status distribution: count desc, status asc
- top paths / top user agents: count desc, first seen asc
- suspicious IPs: failure count desc, address asc
- traffic trend: bucket start asc
- partition export: status asc
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Collection, Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from logmetrikks.domain.analytics.dtos import AggregationResult, ResultKind, ResultRow
from logmetrikks.domain.analytics.models import Granularity, bucket_key, floor_to

if TYPE_CHECKING:
    from logmetrikks.config.settings import AnalysisSettings
    from logmetrikks.domain.logs.models import LogRecord
    from logmetrikks.domain.logs.store import FrozenStore

logger = logging.getLogger(__name__)

TOTAL_COUNT = "total_count"
STATUS_DISTRIBUTION = "status_distribution"
TOP_PATHS = "top_paths"
TOP_USER_AGENTS = "top_user_agents"
SUSPICIOUS_IPS = "suspicious_ips"
TRAFFIC_TREND = "traffic_trend"
PARTITION_EXPORT = "partition_export"

ANALYSIS_NAMES: tuple[str, ...] = (
    TOTAL_COUNT,
    STATUS_DISTRIBUTION,
    TOP_PATHS,
    TOP_USER_AGENTS,
    SUSPICIOUS_IPS,
    TRAFFIC_TREND,
    PARTITION_EXPORT,
)

Analysis = Callable[["threading.Event | None"], AggregationResult]


def top_k_groups(keys: Iterable[str], k: int) -> list[tuple[str, int]]:
    """Group and count keys, then select the ``k`` largest groups.

    Two phases: the full grouping is built first and selection happens
    on the finished counts. ``Counter`` remembers insertion order and
    ``most_common`` is stable, so equal counts keep first-seen order.
    """
    counts: Counter[str] = Counter()
    for key in keys:
        counts[key] += 1
    return counts.most_common(k)


class AggregationEngine:
    """Runs the analyses over a frozen store.

    Example:
        engine = AggregationEngine(store, top_k=3, failure_statuses={404})
        result = engine.suspicious_ips()
        for row in result.rows:
            print(row.key, row.metric)
    """

    def __init__(
        self,
        store: "FrozenStore",
        *,
        top_k: int = 3,
        failure_statuses: Collection[int] = frozenset({404, 500}),
        suspicious_threshold: int = 3,
        granularity: Granularity = Granularity.MINUTE,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Fully loaded, read-only store.
            top_k: Entries kept by the top paths and top user agents analyses.
            failure_statuses: Statuses counted by suspicious IP detection.
            suspicious_threshold: Failure count a client must strictly exceed.
            granularity: Bucket size for the traffic trend.
        """
        if top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {top_k}")
        self.store = store
        self.top_k = top_k
        self.failure_statuses: frozenset[int] = frozenset(failure_statuses)
        self.suspicious_threshold = suspicious_threshold
        self.granularity = Granularity(granularity)

    @classmethod
    def from_settings(cls, store: "FrozenStore", settings: "AnalysisSettings") -> "AggregationEngine":
        """Build an engine from analysis settings."""
        return cls(
            store,
            top_k=settings.top_k,
            failure_statuses=settings.failure_statuses,
            suspicious_threshold=settings.suspicious_threshold,
            granularity=settings.trend_granularity,
        )

    def analyses(self) -> dict[str, Analysis]:
        """Return every analysis keyed by its result name, in report order."""
        return {
            TOTAL_COUNT: self.total_count,
            STATUS_DISTRIBUTION: self.status_distribution,
            TOP_PATHS: self.top_paths,
            TOP_USER_AGENTS: self.top_user_agents,
            SUSPICIOUS_IPS: self.suspicious_ips,
            TRAFFIC_TREND: self.traffic_trend,
            PARTITION_EXPORT: self.partition_export,
        }

    def total_count(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Number of loaded records, from the store's running total."""
        return AggregationResult(
            name=TOTAL_COUNT,
            kind=ResultKind.SCALAR,
            scalar=self.store.total_count,
        )

    def status_distribution(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Records per status code, from partition sizes."""
        counts = self.store.status_counts()
        ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        return AggregationResult(
            name=STATUS_DISTRIBUTION,
            kind=ResultKind.PAIRS,
            rows=tuple(ResultRow(key=status, metric=count) for status, count in ordered),
        )

    def top_paths(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Most requested paths."""
        groups = top_k_groups(
            (record.path for record in self.store.scan_all(cancel)),
            self.top_k,
        )
        return self._pairs(TOP_PATHS, groups)

    def top_user_agents(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Most frequent user agents (traffic sources)."""
        groups = top_k_groups(
            (record.user_agent for record in self.store.scan_all(cancel)),
            self.top_k,
        )
        return self._pairs(TOP_USER_AGENTS, groups)

    def suspicious_ips(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Clients whose failure count is strictly above the threshold.

        Only the partitions of ``failure_statuses`` are scanned.
        """
        failures: Counter[str] = Counter(
            record.client_address
            for record in self.store.scan_by_status(self.failure_statuses, cancel=cancel)
        )
        flagged = sorted(
            (
                (address, count)
                for address, count in failures.items()
                if count > self.suspicious_threshold
            ),
            key=lambda item: (-item[1], item[0]),
        )
        if flagged:
            logger.info(
                "Flagged %d suspicious client(s) above %d failures",
                len(flagged),
                self.suspicious_threshold,
            )
        return self._pairs(SUSPICIOUS_IPS, flagged)

    def traffic_trend(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Request count per time bucket.

        Records without a parseable timestamp are left out and reported in
        the ``unparseable_timestamps`` diagnostic.
        """
        buckets: Counter[datetime] = Counter()
        unparseable = 0
        for record in self.store.scan_all(cancel):
            if record.parsed_timestamp is None:
                unparseable += 1
                continue
            buckets[floor_to(record.parsed_timestamp, self.granularity)] += 1

        if unparseable:
            logger.warning("Excluded %d record(s) with unparseable timestamps from the trend", unparseable)

        return AggregationResult(
            name=TRAFFIC_TREND,
            kind=ResultKind.PAIRS,
            rows=tuple(
                ResultRow(key=bucket_key(start, self.granularity), metric=buckets[start])
                for start in sorted(buckets)
            ),
            diagnostics={"unparseable_timestamps": unparseable},
        )

    def partition_export(self, cancel: threading.Event | None = None) -> AggregationResult:
        """Re-materialize the records grouped by status into named streams."""
        streams: dict[str, tuple["LogRecord", ...]] = {}
        rows: list[ResultRow] = []
        for status in self.store.statuses:
            records = tuple(self.store.scan_by_status((status,), cancel=cancel))
            streams[f"status={status}"] = records
            rows.append(ResultRow(key=status, metric=len(records)))
        return AggregationResult(
            name=PARTITION_EXPORT,
            kind=ResultKind.PARTITIONS,
            rows=tuple(rows),
            streams=streams,
        )

    @staticmethod
    def _pairs(name: str, pairs: Iterable[tuple[str, int]]) -> AggregationResult:
        return AggregationResult(
            name=name,
            kind=ResultKind.PAIRS,
            rows=tuple(ResultRow(key=key, metric=count) for key, count in pairs),
        )
