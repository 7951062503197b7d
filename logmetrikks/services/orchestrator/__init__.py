"""Query orchestration: state machine, worker pool, result hand-off."""
from .schemas import AnalysisOutcome, RunReport, RunState
from .service import QueryOrchestrator

__all__ = ["AnalysisOutcome", "QueryOrchestrator", "RunReport", "RunState"]
