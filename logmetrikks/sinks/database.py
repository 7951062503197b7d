"""Database sink backed by SQLAlchemy async + advanced-alchemy repositories."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from advanced_alchemy import base
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from logmetrikks.domain.analytics.dtos import ResultKind
from logmetrikks.domain.results.models import AnalysisResultRow, RunSummary
from logmetrikks.domain.results.repositories import AnalysisResultRepository, RunSummaryRepository
from logmetrikks.sinks.base import ResultSink

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from logmetrikks.domain.analytics.dtos import AggregationResult
    from logmetrikks.services.orchestrator.schemas import RunReport

logger = logging.getLogger(__name__)


class DatabaseSink(ResultSink):
    """
    Writes results into the ``analysis_results`` table.

    Each ``write`` runs in its own transaction and replaces the previous
    rows of that result. Partition exports store their manifest
    ``(status, count)`` rows; the record streams stay on the CSV sink.

    Example:
        async with DatabaseSink("sqlite+aiosqlite:///results.db") as sink:
            await sink.write(result)
    """

    name = "database"

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    @property
    def session_maker(self) -> "async_sessionmaker[AsyncSession]":
        if self._session_maker is None:
            raise RuntimeError("DatabaseSink is not open")
        return self._session_maker

    async def open(self) -> None:
        self._engine = create_async_engine(self.url, echo=self.echo, future=True)
        self._session_maker = async_sessionmaker(self._engine, expire_on_commit=False)
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(base.BigIntBase.metadata.create_all)
        except Exception:
            await self.close()
            raise
        logger.info("Database sink ready (%s)", self._engine.url.render_as_string(hide_password=True))

    async def write(self, result: "AggregationResult") -> None:
        if result.kind is ResultKind.SCALAR:
            pairs = [("total", result.scalar or 0)]
        else:
            pairs = result.as_pairs()
        rows = [
            AnalysisResultRow(result_name=result.name, rank=rank, key=str(key), metric=metric)
            for rank, (key, metric) in enumerate(pairs)
        ]
        async with self.session_maker() as session:
            repo = AnalysisResultRepository(session=session)
            await repo.replace_result(result.name, rows)
            await session.commit()
        logger.debug("Stored %d row(s) for %s", len(rows), result.name)

    async def write_report(self, report: "RunReport") -> None:
        async with self.session_maker() as session:
            repo = RunSummaryRepository(session=session)
            await repo.add(RunSummary(state=report.state.value, report=report.to_dict()), auto_commit=True)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            logger.debug("Disposed database engine")
        self._engine = None
        self._session_maker = None
