from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logmetrikks.domain.analytics.models import Granularity


class AnalysisSettings(BaseSettings):
    """Aggregation engine and orchestrator configuration.

    Passed explicitly into the engine and orchestrator constructors;
    nothing reads these values from ambient state at query time.
    """

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_", env_file=".env", extra="ignore")

    top_k: int = Field(default=3, ge=1, description="Number of entries kept by the top pages/user agents analyses")
    failure_statuses: set[int] = Field(
        default_factory=lambda: {404, 500},
        description="Status codes counted as failures for suspicious IP detection",
    )
    suspicious_threshold: int = Field(
        default=3,
        ge=0,
        description="A client is suspicious when its failure count is strictly greater than this",
    )
    trend_granularity: Granularity = Field(
        default=Granularity.MINUTE,
        description="Bucket size for the traffic trend analysis",
    )
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Deadline in seconds for the whole analysis phase. None disables it.",
    )
    max_workers: int = Field(default=7, ge=1, description="Upper bound on concurrently running analyses")


class IngestionSettings(BaseSettings):
    """Ingestion source and parser configuration."""

    model_config = SettingsConfigDict(env_prefix="INGEST_", env_file=".env", extra="ignore")

    delimiter: str = Field(default=",", description="Field delimiter of raw rows")
    has_header: bool = Field(default=True, description="Skip the first row of the source")
    encoding: str = Field(default="utf-8", description="Text encoding of the input file")
    strict: bool = Field(
        default=False,
        description="Abort ingestion on the first malformed row instead of skipping it",
    )

    @model_validator(mode="after")
    def validate_delimiter(self) -> "IngestionSettings":
        """Ensure the delimiter is one character that cannot occur inside a timestamp."""
        if len(self.delimiter) != 1:
            raise ValueError(f"Delimiter must be a single character, got {self.delimiter!r}")
        if self.delimiter.isdigit() or self.delimiter in "-: ":
            raise ValueError(
                f"Delimiter {self.delimiter!r} collides with the timestamp format YYYY-MM-DD HH:MM:SS"
            )
        return self


class OutputSettings(BaseSettings):
    """Result sink configuration."""

    model_config = SettingsConfigDict(env_prefix="OUTPUT_", env_file=".env", extra="ignore")

    directory: Path = Field(default=Path("results"), description="Directory the CSV sink writes into")
    database_url: str | None = Field(
        default=None,
        description="Optional SQLAlchemy async URL; results are also written to this database when set",
    )
    encoding: str = Field(default="utf-8", description="Text encoding of the CSV and summary files")
    echo: bool = Field(default=False, description="Enable SQLAlchemy query logging for the database sink")

    @model_validator(mode="after")
    def validate_database_url(self) -> "OutputSettings":
        """Ensure the database URL uses an async driver."""
        if self.database_url and "+" not in self.database_url.split("://", 1)[0]:
            raise ValueError(
                "Database URL must name an async driver. "
                "Example: sqlite+aiosqlite:///results.db"
            )
        return self


class Settings(BaseSettings):
    """Top level settings for one ``logmetrikks run``.

    Groups the analysis, ingestion and output sections. The CLI starts
    from ``get_settings()`` and rebuilds each section with its flags on top.

    Resolution order, first match wins:
    1. CLI flags (explicit constructor arguments)
    2. Environment variables
    3. .env file
    4. Defaults

    Example .env file:
        APP_LOG_LEVEL=WARNING
        ANALYSIS_TOP_K=5
        ANALYSIS_FAILURE_STATUSES=[403,404,500]
        INGEST_STRICT=true
        OUTPUT_DATABASE_URL=sqlite+aiosqlite:///results.db
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(default=False, description="Log at DEBUG level regardless of log_level")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Sub-configurations
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)

    @property
    def effective_log_level(self) -> str:
        """Root logging level to configure."""
        return "DEBUG" if self.debug else self.log_level


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Environment and .env are read once per process.
    Only the CLI edge should call it; library code receives settings
    objects through constructors.

    Returns:
        Settings: Resolved settings without CLI overrides
    """
    return Settings()
