"""Runtime wiring: factories and logging configuration."""
from logmetrikks.runtime.core import create_orchestrator, create_sinks, create_source
from logmetrikks.runtime.plugins import configure_logging

__all__ = ["configure_logging", "create_orchestrator", "create_sinks", "create_source"]
