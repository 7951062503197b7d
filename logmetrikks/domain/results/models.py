from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, BigInteger, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from advanced_alchemy import base
from advanced_alchemy.types import DateTimeUTC


class AnalysisResultRow(base.BigIntBase):
    """One ranked row of a named analysis result.

    Rows of a result are replaced as a whole whenever the result is
    written again, so the table always holds the latest run.
    """

    __tablename__ = "analysis_results"

    result_name: Mapped[str] = mapped_column(String(64), nullable=False)
    # 0-based position inside the result; carries rank semantics
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    key: Mapped[str] = mapped_column(Text, nullable=False)
    metric: Mapped[int] = mapped_column(BigInteger, nullable=False)

    written_at: Mapped[datetime] = mapped_column(
        DateTimeUTC(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_analysis_results_name_rank", "result_name", "rank"),
    )

    def __repr__(self) -> str:
        return f"<AnalysisResultRow(result={self.result_name}, rank={self.rank}, key={self.key}, metric={self.metric})>"


class RunSummary(base.BigIntBase):
    """Structured report of one orchestrator run."""

    __tablename__ = "run_summaries"

    state: Mapped[str] = mapped_column(String(16), nullable=False)
    report: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTimeUTC(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<RunSummary(id={self.id}, state={self.state})>"
