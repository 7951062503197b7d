"""Error taxonomy for ingestion, storage and analysis."""
from __future__ import annotations

from enum import Enum


class ParseErrorKind(str, Enum):
    """Why a single raw row could not become a LogRecord."""

    MALFORMED_ROW = "malformed_row"
    INVALID_STATUS = "invalid_status"


class LoadErrorKind(str, Enum):
    """Why ingestion as a whole was aborted."""

    SOURCE_UNAVAILABLE = "source_unavailable"
    STRICT_MODE = "strict_mode"


class AnalysisErrorKind(str, Enum):
    """Why a single analysis produced no result."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class LogMetrikksError(Exception):
    """Base class for all logmetrikks errors."""


class ParseError(LogMetrikksError):
    """A raw row was rejected by the parser.

    Per-row and never fatal on its own; the ingestion service decides
    whether to skip the row or abort (strict mode).
    """

    def __init__(self, kind: ParseErrorKind, message: str, *, line_number: int = 0) -> None:
        super().__init__(message)
        self.kind = kind
        self.line_number = line_number

    def __str__(self) -> str:
        if self.line_number:
            return f"line {self.line_number}: {self.args[0]}"
        return str(self.args[0])


class LoadError(LogMetrikksError):
    """Ingestion failed; no analyses can run."""

    def __init__(self, kind: LoadErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class AnalysisError(LogMetrikksError):
    """A single analysis failed. Siblings are unaffected."""

    def __init__(self, kind: AnalysisErrorKind, message: str, *, analysis: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.analysis = analysis


class StoreSealedError(LogMetrikksError):
    """Raised when loading into a store that has already been frozen."""


class ScanCancelled(LogMetrikksError):
    """A store scan observed its cancellation signal."""


class InvalidStateTransition(LogMetrikksError):
    """The orchestrator was asked to move between incompatible states."""


class SinkError(LogMetrikksError):
    """A result sink could not be opened; the run cannot publish anything."""
