"""Factories wiring settings into parser, sinks and orchestrator."""

from __future__ import annotations

from logmetrikks.config.settings import Settings
from logmetrikks.services.ingestion.sources import FileSource
from logmetrikks.services.logparser.logparser import LogParser
from logmetrikks.services.orchestrator.service import QueryOrchestrator
from logmetrikks.sinks.base import ResultSink
from logmetrikks.sinks.csv import CsvDirectorySink
from logmetrikks.sinks.database import DatabaseSink


def create_sinks(settings: Settings) -> list[ResultSink]:
    """Build the configured result sinks.

    The CSV directory sink is always present; the database sink is added
    when ``OUTPUT_DATABASE_URL`` is set.
    """
    sinks: list[ResultSink] = [
        CsvDirectorySink(settings.output.directory, encoding=settings.output.encoding)
    ]
    if settings.output.database_url:
        sinks.append(DatabaseSink(settings.output.database_url, echo=settings.output.echo))
    return sinks


def create_source(settings: Settings, path: str) -> FileSource:
    """Build the file ingestion source for ``path``."""
    return FileSource(
        path,
        has_header=settings.ingestion.has_header,
        encoding=settings.ingestion.encoding,
    )


def create_orchestrator(settings: Settings) -> QueryOrchestrator:
    """Create and configure a single-use orchestrator.

    Args:
        settings: Fully resolved settings (environment plus CLI overrides).

    Returns:
        QueryOrchestrator: Orchestrator in the IDLE state.
    """
    return QueryOrchestrator(
        parser=LogParser(delimiter=settings.ingestion.delimiter),
        settings=settings.analysis,
        sinks=create_sinks(settings),
        strict=settings.ingestion.strict,
    )
