"""Ingestion sources and the service that loads them into a store."""
from .service import IngestionStats, LogIngestionService
from .sources import FileSource, IngestionSource, IterableSource

__all__ = [
    "FileSource",
    "IngestionSource",
    "IngestionStats",
    "IterableSource",
    "LogIngestionService",
]
