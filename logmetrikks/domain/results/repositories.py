"""Repositories for persisted analysis results."""
from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, select
from advanced_alchemy.repository import SQLAlchemyAsyncRepository

from logmetrikks.domain.results.models import AnalysisResultRow, RunSummary


class AnalysisResultRepository(SQLAlchemyAsyncRepository[AnalysisResultRow]):
    """Repository for AnalysisResultRow model."""

    model_type = AnalysisResultRow

    async def replace_result(self, result_name: str, rows: list[AnalysisResultRow]) -> None:
        """Drop the previous rows of ``result_name`` and add ``rows``.

        Does not commit; the caller owns the transaction.
        """
        await self.session.execute(
            delete(AnalysisResultRow).where(AnalysisResultRow.result_name == result_name)
        )
        if rows:
            await self.add_many(rows, auto_commit=False)

    async def get_result(self, result_name: str) -> Sequence[AnalysisResultRow]:
        """Return the rows of one result in rank order."""
        stmt = (
            select(AnalysisResultRow)
            .where(AnalysisResultRow.result_name == result_name)
            .order_by(AnalysisResultRow.rank.asc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()


class RunSummaryRepository(SQLAlchemyAsyncRepository[RunSummary]):
    """Repository for RunSummary model."""

    model_type = RunSummary
