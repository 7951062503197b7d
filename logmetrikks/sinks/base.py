"""Abstract base class for result sinks."""
from __future__ import annotations

from abc import ABC, abstractmethod
from types import TracebackType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from logmetrikks.domain.analytics.dtos import AggregationResult
    from logmetrikks.services.orchestrator.schemas import RunReport


class ResultSink(ABC):
    """
    Durable destination for analysis results.

    Sinks receive one named result set per analysis and must render rows
    in the order they were given; the order carries rank semantics.
    Sinks are async context managers: ``open`` on enter, ``close`` on exit.
    """

    name: str = "sink"

    async def open(self) -> None:
        """Prepare the destination (create directories, tables, ...)."""

    @abstractmethod
    async def write(self, result: "AggregationResult") -> None:
        """
        Persist one analysis result.

        Writing a result with a name that was written before replaces it.
        """

    @abstractmethod
    async def write_report(self, report: "RunReport") -> None:
        """Persist the structured summary of a finished run."""

    async def close(self) -> None:
        """Release resources held by the sink."""

    async def __aenter__(self) -> "ResultSink":
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
