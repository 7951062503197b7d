"""Query orchestrator - loads the store and runs the analyses.

This service handles:
- The run state machine (IDLE -> LOADING -> READY -> RUNNING -> DONE | FAILED)
- Sequential loading through LogIngestionService
- Concurrent analyses on a fixed worker pool over the frozen store
- Per-run deadline and cooperative cancellation
- Handing every result and the final report to the result sinks
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from logmetrikks.domain.analytics.service import AggregationEngine
from logmetrikks.domain.logs.store import PartitionedStore
from logmetrikks.exceptions import (
    AnalysisError,
    AnalysisErrorKind,
    InvalidStateTransition,
    LoadError,
    ScanCancelled,
    SinkError,
)
from logmetrikks.services.ingestion.service import LogIngestionService
from logmetrikks.services.orchestrator.schemas import (
    ALLOWED_TRANSITIONS,
    AnalysisOutcome,
    RunReport,
    RunState,
)

if TYPE_CHECKING:
    from logmetrikks.config.settings import AnalysisSettings
    from logmetrikks.domain.analytics.dtos import AggregationResult
    from logmetrikks.domain.analytics.service import Analysis
    from logmetrikks.domain.logs.store import FrozenStore
    from logmetrikks.services.ingestion.sources import IngestionSource
    from logmetrikks.services.logparser.logparser import LogParser
    from logmetrikks.sinks.base import ResultSink

logger = logging.getLogger(__name__)


class QueryOrchestrator:
    """Runs one end-to-end analysis pass.

    An orchestrator is single use: each run ingests into a fresh store,
    so a re-run needs a new orchestrator.

    Example:
        orchestrator = QueryOrchestrator(
            parser=LogParser(),
            settings=AnalysisSettings(),
            sinks=[CsvDirectorySink("results")],
        )
        report = await orchestrator.run(FileSource("access.csv"))
        if not report.ok:
            print(report.failed)
    """

    def __init__(
        self,
        parser: "LogParser",
        settings: "AnalysisSettings",
        *,
        sinks: Sequence["ResultSink"] = (),
        strict: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            parser: Parser used while loading.
            settings: Engine, worker pool and deadline configuration.
            sinks: Destinations for every result and the final report.
            strict: Abort loading on the first rejected row.
        """
        self.parser = parser
        self.settings = settings
        self.sinks: list[ResultSink] = list(sinks)
        self.strict = strict

        self._state: RunState = RunState.IDLE
        self._cancel_requested = threading.Event()
        self._cancel_events: dict[str, threading.Event] = {}
        self.store: FrozenStore | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    def _transition(self, new_state: RunState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidStateTransition(f"Cannot move from {self._state.value} to {new_state.value}")
        logger.debug("Run state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def cancel(self) -> None:
        """Ask every running analysis to stop at its next check.

        Safe to call from any thread or a signal handler.
        """
        self._cancel_requested.set()
        for event in list(self._cancel_events.values()):
            event.set()
        logger.warning("Cancellation requested")

    async def run(self, source: "IngestionSource") -> RunReport:
        """Load ``source`` and run every analysis.

        Returns:
            The run report. Loading failures produce a FAILED report
            rather than an exception.

        Raises:
            InvalidStateTransition: If this orchestrator already ran.
            SinkError: If a result sink cannot be opened. Sinks opened
                before it are closed again.
        """
        self._transition(RunState.LOADING)
        started = time.monotonic()

        async with AsyncExitStack() as stack:
            for sink in self.sinks:
                try:
                    await stack.enter_async_context(sink)
                except Exception as e:
                    logger.error("Could not open the %s sink: %s", sink.name, e)
                    self._transition(RunState.FAILED)
                    raise SinkError(f"Cannot open the {sink.name} sink: {type(e).__name__}: {e}") from e

            store = PartitionedStore()
            ingestion = LogIngestionService(self.parser, store, strict=self.strict)
            try:
                await ingestion.ingest(source)
            except LoadError as e:
                logger.error("Loading failed (%s): %s", e.kind.value, e)
                self._transition(RunState.FAILED)
                report = RunReport(
                    state=RunState.FAILED,
                    ingestion=ingestion.stats,
                    load_error_kind=e.kind,
                    load_error=str(e),
                )
                await self._publish_report(report)
                return report

            self.store = store.freeze()
            self._transition(RunState.READY)

            engine = AggregationEngine.from_settings(self.store, self.settings)
            self._transition(RunState.RUNNING)
            outcomes = await self._run_analyses(engine)
            self._transition(RunState.DONE)

            report = RunReport(state=RunState.DONE, ingestion=ingestion.stats, outcomes=outcomes)
            await self._publish_report(report)

        logger.info(
            "Run finished in %.3fs: %d succeeded, %d failed",
            time.monotonic() - started,
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def _run_analyses(self, engine: AggregationEngine) -> dict[str, AnalysisOutcome]:
        """Dispatch every analysis on the worker pool and collect outcomes."""
        analyses = engine.analyses()
        outcomes: dict[str, AnalysisOutcome] = {}
        self._cancel_events = {name: threading.Event() for name in analyses}
        if self.cancel_requested:
            for event in self._cancel_events.values():
                event.set()

        workers = min(len(analyses), self.settings.max_workers)
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analysis")
        tasks: dict[str, asyncio.Task[None]] = {}
        try:
            for name, analysis in analyses.items():
                tasks[name] = asyncio.create_task(
                    self._run_one(executor, name, analysis, outcomes),
                    name=f"analysis-{name}",
                )
            logger.info(
                "Running %d analyses on %d worker(s) (timeout=%s)",
                len(tasks),
                workers,
                self.settings.timeout,
            )
            _done, pending = await asyncio.wait(tasks.values(), timeout=self.settings.timeout)

            if pending:
                for name, task in tasks.items():
                    if task in pending:
                        self._cancel_events[name].set()
                        task.cancel()
                        outcomes[name] = AnalysisOutcome(
                            name=name,
                            error_kind=AnalysisErrorKind.TIMEOUT,
                            error=f"Analysis exceeded the {self.settings.timeout}s deadline",
                        )
                        logger.error("Analysis %s timed out", name)
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            # Signalled analyses stop on their own; do not block the loop on them
            executor.shutdown(wait=False, cancel_futures=True)

        return {name: outcomes[name] for name in analyses}

    async def _run_one(
        self,
        executor: ThreadPoolExecutor,
        name: str,
        analysis: "Analysis",
        outcomes: dict[str, AnalysisOutcome],
    ) -> None:
        """Run one analysis in the pool and hand its result to the sinks."""
        loop = asyncio.get_running_loop()
        cancel = self._cancel_events[name]
        try:
            result = await loop.run_in_executor(executor, _execute, name, analysis, cancel)
        except AnalysisError as e:
            logger.warning("Analysis %s failed (%s): %s", name, e.kind.value, e)
            outcomes[name] = AnalysisOutcome(name=name, error_kind=e.kind, error=str(e))
            return
        except Exception as e:
            logger.exception("Analysis %s raised an unexpected error", name)
            outcomes[name] = AnalysisOutcome(
                name=name,
                error_kind=AnalysisErrorKind.INTERNAL,
                error=f"{type(e).__name__}: {e}",
            )
            return

        try:
            await self._publish(result)
        except Exception as e:
            logger.exception("Writing %s to the result sinks failed", name)
            outcomes[name] = AnalysisOutcome(
                name=name,
                error_kind=AnalysisErrorKind.INTERNAL,
                error=f"Result sink failed: {type(e).__name__}: {e}",
            )
            return

        outcomes[name] = AnalysisOutcome(name=name, result=result)
        logger.debug("Analysis %s produced %d row(s)", name, len(result))

    async def _publish(self, result: "AggregationResult") -> None:
        for sink in self.sinks:
            await sink.write(result)

    async def _publish_report(self, report: RunReport) -> None:
        for sink in self.sinks:
            try:
                await sink.write_report(report)
            except Exception:
                # The report is still returned to the caller
                logger.exception("Sink %s failed to write the run report", sink.name)


def _execute(name: str, analysis: "Analysis", cancel: threading.Event) -> "AggregationResult":
    """Worker-thread body: run an analysis, map cancellation to AnalysisError."""
    if cancel.is_set():
        raise AnalysisError(AnalysisErrorKind.CANCELLED, "Cancelled before start", analysis=name)
    try:
        return analysis(cancel)
    except ScanCancelled as e:
        raise AnalysisError(AnalysisErrorKind.CANCELLED, "Cancelled during scan", analysis=name) from e
