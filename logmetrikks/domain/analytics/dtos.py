"""Result objects produced by the aggregation engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from logmetrikks.domain.logs.models import LogRecord


class ResultKind(str, Enum):
    """Shape of an aggregation result."""

    SCALAR = "scalar"
    PAIRS = "pairs"
    PARTITIONS = "partitions"


@dataclass(frozen=True)
class ResultRow:
    """One ranked ``(key, metric)`` pair."""

    key: str | int
    metric: int


@dataclass(frozen=True)
class AggregationResult:
    """Named output of one analysis.

    ``rows`` is already in its final order (rank semantics for top-K,
    chronological for trends); sinks must keep that order when rendering.
    Partition exports additionally carry one named record stream per
    status, keyed ``status=<code>``.
    """

    name: str
    kind: ResultKind
    rows: tuple[ResultRow, ...] = ()
    scalar: int | None = None
    diagnostics: dict[str, int] = field(default_factory=dict)
    streams: dict[str, tuple["LogRecord", ...]] = field(default_factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self.rows)

    def as_pairs(self) -> list[tuple[str | int, int]]:
        """Return the rows as plain tuples."""
        return [(row.key, row.metric) for row in self.rows]

    def to_dict(self) -> dict[str, Any]:
        """JSON friendly representation, without the record streams."""
        data: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.kind is ResultKind.SCALAR:
            data["value"] = self.scalar
        else:
            data["rows"] = [{"key": row.key, "metric": row.metric} for row in self.rows]
        if self.diagnostics:
            data["diagnostics"] = dict(sorted(self.diagnostics.items()))
        return data
