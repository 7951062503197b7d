"""Services layer - parsing, ingestion and orchestration."""
from .logparser import LogParser
from .ingestion import LogIngestionService
from .orchestrator import QueryOrchestrator

__all__ = ["LogParser", "LogIngestionService", "QueryOrchestrator"]
