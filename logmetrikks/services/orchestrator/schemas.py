"""Run state and report objects - pure data, no I/O."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from logmetrikks.domain.analytics.dtos import AggregationResult
from logmetrikks.exceptions import AnalysisErrorKind, LoadErrorKind
from logmetrikks.services.ingestion.service import IngestionStats


class RunState(str, Enum):
    """Lifecycle of one orchestrator run."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.LOADING}),
    RunState.LOADING: frozenset({RunState.READY, RunState.FAILED}),
    RunState.READY: frozenset({RunState.RUNNING, RunState.FAILED}),
    RunState.RUNNING: frozenset({RunState.DONE, RunState.FAILED}),
    RunState.DONE: frozenset(),
    RunState.FAILED: frozenset(),
}


@dataclass
class AnalysisOutcome:
    """Result or failure of a single analysis."""

    name: str
    result: AggregationResult | None = None
    error_kind: AnalysisErrorKind | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None and self.error_kind is None

    def to_dict(self) -> dict[str, Any]:
        if self.succeeded and self.result is not None:
            return {"status": "succeeded", "result": self.result.to_dict()}
        return {
            "status": "failed",
            "error": self.error_kind.value if self.error_kind else None,
            "message": self.error,
        }


@dataclass
class RunReport:
    """Structured summary of a run, produced for both success and failure."""

    state: RunState
    ingestion: IngestionStats
    outcomes: dict[str, AnalysisOutcome] = field(default_factory=dict)
    load_error_kind: LoadErrorKind | None = None
    load_error: str | None = None

    @property
    def succeeded(self) -> list[str]:
        return [name for name, outcome in self.outcomes.items() if outcome.succeeded]

    @property
    def failed(self) -> list[str]:
        return [name for name, outcome in self.outcomes.items() if not outcome.succeeded]

    @property
    def ok(self) -> bool:
        """True when loading succeeded and every analysis produced a result."""
        return self.state is RunState.DONE and not self.failed

    def result(self, name: str) -> AggregationResult | None:
        outcome = self.outcomes.get(name)
        return outcome.result if outcome else None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "state": self.state.value,
            "ingestion": self.ingestion.to_dict(),
            "analyses": {name: outcome.to_dict() for name, outcome in self.outcomes.items()},
            "failed": self.failed,
        }
        if self.load_error_kind is not None:
            data["load_error"] = {"error": self.load_error_kind.value, "message": self.load_error}
        return data
