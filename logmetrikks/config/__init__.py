"""Configuration module for LogMetrikks."""

from logmetrikks.config.settings import (
    AnalysisSettings,
    IngestionSettings,
    OutputSettings,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "AnalysisSettings",
    "IngestionSettings",
    "OutputSettings",
]
