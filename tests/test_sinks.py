import asyncio
import json
from collections.abc import Callable
from pathlib import Path

import aiofiles.os
import pytest
from sqlalchemy import select

from logmetrikks.config.settings import IngestionSettings, OutputSettings, Settings
from logmetrikks.domain.analytics.service import AggregationEngine
from logmetrikks.domain.logs.store import FrozenStore
from logmetrikks.domain.results.models import RunSummary
from logmetrikks.domain.results.repositories import AnalysisResultRepository
from logmetrikks.runtime.core import create_sinks
from logmetrikks.services.ingestion.service import IngestionStats
from logmetrikks.services.orchestrator.schemas import AnalysisOutcome, RunReport, RunState
from logmetrikks.sinks.csv import CsvDirectorySink, render_csv
from logmetrikks.sinks.database import DatabaseSink


@pytest.fixture
def engine(build_store: Callable[[list[str]], FrozenStore], mixed_rows: list[str]) -> AggregationEngine:
    return AggregationEngine(build_store(mixed_rows), suspicious_threshold=2)


@pytest.fixture
def report(engine: AggregationEngine) -> RunReport:
    outcomes = {name: AnalysisOutcome(name=name, result=analysis()) for name, analysis in engine.analyses().items()}
    return RunReport(
        state=RunState.DONE,
        ingestion=IngestionStats(rows_read=10, records_loaded=10),
        outcomes=outcomes,
    )


def test_render_csv_quotes_only_when_needed() -> None:
    text = render_csv(("key", "metric"), [("Mozilla/5.0 (X11, Linux)", 2), ("curl", 1)])
    assert text == 'key,metric\n"Mozilla/5.0 (X11, Linux)",2\ncurl,1\n'


@pytest.mark.asyncio
async def test_csv_sink_layout(tmp_path: Path, engine: AggregationEngine, report: RunReport) -> None:
    """Every result gets its own file and partitions get a directory each."""
    out = tmp_path / "results"
    async with CsvDirectorySink(out) as sink:
        for analysis in engine.analyses().values():
            await sink.write(analysis())
        await sink.write_report(report)

    assert (out / "total_count.csv").read_text() == "key,metric\ntotal,10\n"
    assert (out / "status_distribution.csv").read_text() == "key,metric\n404,4\n500,3\n200,2\n301,1\n"
    assert (out / "suspicious_ips.csv").read_text() == "key,metric\n10.0.0.2,4\n10.0.0.3,3\n"
    assert (out / "partition_export.csv").read_text() == "key,metric\n200,2\n301,1\n404,4\n500,3\n"
    assert (out / "partitions" / "status=301" / "part-00000.csv").read_text() == (
        "ip,timestamp,url,status,user_agent\n"
        "10.0.0.1,2024-02-01 11:15:00,/about,301,Mozilla/5.0\n"
    )
    assert sorted(p.name for p in (out / "partitions").iterdir()) == [
        "status=200",
        "status=301",
        "status=404",
        "status=500",
    ]

    summary = json.loads((out / "summary.json").read_text())
    assert summary["state"] == "done"
    assert summary["failed"] == []
    assert summary["analyses"]["total_count"]["result"]["value"] == 10
    assert summary["analyses"]["traffic_trend"]["result"]["diagnostics"] == {"unparseable_timestamps": 1}


@pytest.mark.asyncio
async def test_csv_sink_replaces_previous_result(tmp_path: Path, engine: AggregationEngine) -> None:
    sink = CsvDirectorySink(tmp_path)
    await sink.open()
    await sink.write(engine.top_paths())
    engine.top_k = 1
    await sink.write(engine.top_paths())

    assert (tmp_path / "top_paths.csv").read_text() == "key,metric\n/home,3\n"


@pytest.mark.asyncio
async def test_csv_sink_is_deterministic(tmp_path: Path, engine: AggregationEngine, report: RunReport) -> None:
    """Writing the same results twice produces identical bytes."""
    snapshots = []
    for attempt in ("first", "second"):
        out = tmp_path / attempt
        async with CsvDirectorySink(out) as sink:
            for analysis in engine.analyses().values():
                await sink.write(analysis())
            await sink.write_report(report)
        snapshots.append({str(p.relative_to(out)): p.read_bytes() for p in out.rglob("*") if p.is_file()})

    assert snapshots[0] == snapshots[1]


@pytest.mark.asyncio
async def test_database_sink(tmp_path: Path, engine: AggregationEngine, report: RunReport) -> None:
    sink = DatabaseSink(f"sqlite+aiosqlite:///{tmp_path / 'results.db'}")
    async with sink:
        for analysis in engine.analyses().values():
            await sink.write(analysis())
        # Writing again replaces instead of appending
        await sink.write(engine.top_paths())
        await sink.write_report(report)

        async with sink.session_maker() as session:
            repo = AnalysisResultRepository(session=session)
            top_paths = await repo.get_result("top_paths")
            total = await repo.get_result("total_count")
            statuses = await repo.get_result("status_distribution")
            summaries = (await session.execute(select(RunSummary))).scalars().all()

    assert [(row.rank, row.key, row.metric) for row in top_paths] == [
        (0, "/home", 3),
        (1, "/login", 2),
        (2, "/admin", 1),
    ]
    assert [(row.key, row.metric) for row in total] == [("total", 10)]
    assert [row.key for row in statuses] == ["404", "500", "200", "301"]
    assert len(summaries) == 1
    assert summaries[0].state == "done"
    assert summaries[0].report["analyses"]["total_count"]["result"]["value"] == 10


@pytest.mark.asyncio
async def test_database_sink_requires_open() -> None:
    sink = DatabaseSink("sqlite+aiosqlite:///:memory:")
    with pytest.raises(RuntimeError):
        sink.session_maker


@pytest.mark.asyncio
async def test_csv_sink_keeps_previous_file_when_write_fails(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, engine: AggregationEngine
) -> None:
    sink = CsvDirectorySink(tmp_path)
    await sink.open()
    await sink.write(engine.top_paths())
    before = (tmp_path / "top_paths.csv").read_bytes()

    async def failing_replace(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(aiofiles.os, "replace", failing_replace)
    engine.top_k = 1
    with pytest.raises(OSError):
        await sink.write(engine.top_paths())

    assert (tmp_path / "top_paths.csv").read_bytes() == before
    assert list(tmp_path.glob("*.partial")) == []


@pytest.mark.asyncio
async def test_cancelled_csv_write_leaves_no_truncated_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, engine: AggregationEngine
) -> None:
    """A write cancelled at the deadline keeps the previous file intact."""
    sink = CsvDirectorySink(tmp_path)
    await sink.open()
    await sink.write(engine.top_paths())
    before = (tmp_path / "top_paths.csv").read_bytes()

    async def stalled_replace(*args, **kwargs):
        await asyncio.sleep(10)

    monkeypatch.setattr(aiofiles.os, "replace", stalled_replace)
    engine.top_k = 1
    task = asyncio.create_task(sink.write(engine.top_paths()))
    await asyncio.sleep(0.1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (tmp_path / "top_paths.csv").read_bytes() == before
    assert list(tmp_path.glob("*.partial")) == []


def test_csv_sink_uses_output_encoding(tmp_path: Path) -> None:
    """Output files are not tied to the input encoding."""
    settings = Settings(
        ingestion=IngestionSettings(encoding="utf-16"),
        output=OutputSettings(directory=tmp_path, encoding="latin-1"),
    )

    sinks = create_sinks(settings)

    assert len(sinks) == 1
    assert isinstance(sinks[0], CsvDirectorySink)
    assert sinks[0].encoding == "latin-1"


@pytest.mark.asyncio
async def test_database_sink_open_failure_releases_engine(tmp_path: Path) -> None:
    sink = DatabaseSink(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'results.db'}")

    with pytest.raises(Exception):
        await sink.open()

    with pytest.raises(RuntimeError):
        sink.session_maker
