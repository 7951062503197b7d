"""Result sinks."""
from logmetrikks.sinks.base import ResultSink
from logmetrikks.sinks.csv import CsvDirectorySink
from logmetrikks.sinks.database import DatabaseSink

__all__ = ["ResultSink", "CsvDirectorySink", "DatabaseSink"]
