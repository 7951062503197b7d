import os
from collections.abc import Callable

import pytest

from logmetrikks.domain.logs.store import FrozenStore, PartitionedStore
from logmetrikks.services.logparser.logparser import LogParser

HEADER = "ip,timestamp,url,status,user_agent"

SCENARIO_ROWS: list[str] = [
    HEADER,
    "A,2024-02-01 10:00:00,/home,200,UA1",
    "A,2024-02-01 10:00:00,/home,200,UA1",
    "B,2024-02-01 10:00:30,/home,404,UA2",
    "B,2024-02-01 10:00:30,/home,404,UA2",
    "B,2024-02-01 10:00:30,/home,404,UA2",
    "B,2024-02-01 10:00:30,/home,404,UA2",
]

MIXED_ROWS: list[str] = [
    "10.0.0.1,2024-02-01 10:00:05,/home,200,Mozilla/5.0",
    "10.0.0.2,2024-02-01 10:00:40,/login,404,curl/8.0",
    "10.0.0.2,2024-02-01 10:01:10,/admin,404,curl/8.0",
    "10.0.0.3,2024-02-01 10:59:59,/home,500,python-requests/2.31",
    "10.0.0.2,2024-02-01 11:02:00,/wp-login.php,404,curl/8.0",
    "10.0.0.1,2024-02-01 11:15:00,/about,301,Mozilla/5.0",
    "10.0.0.3,not-a-timestamp,/home,500,python-requests/2.31",
    "2001:db8::1,2024-02-02 00:00:00,,200,Mozilla/5.0 ",
    "10.0.0.2,2024-02-02 00:00:01,/login,404,curl/8.0",
    "10.0.0.3,2024-02-02 00:00:02,/api,500,python-requests/2.31",
]


@pytest.fixture(scope="session", autouse=True)
def baseline_settings_env():
    """Provide baseline env vars so tests are not affected by local .env.

    Pydantic-settings precedence: init args > env vars > .env > defaults.
    Setting these ensures stable defaults regardless of any .env present.
    """
    os.environ.update({
        # App
        "APP_DEBUG": "false",
        "APP_LOG_LEVEL": "INFO",
        # Analysis
        "ANALYSIS_TOP_K": "3",
        "ANALYSIS_FAILURE_STATUSES": "[404, 500]",
        "ANALYSIS_SUSPICIOUS_THRESHOLD": "3",
        "ANALYSIS_TREND_GRANULARITY": "minute",
        "ANALYSIS_MAX_WORKERS": "7",
        # Ingestion
        "INGEST_DELIMITER": ",",
        "INGEST_HAS_HEADER": "true",
        "INGEST_ENCODING": "utf-8",
        "INGEST_STRICT": "false",
    })


@pytest.fixture(autouse=True)
def refresh_settings_cache():
    """Clear settings cache so env changes take effect per test.

    Ensures tests using monkeypatch.setenv() get a fresh Settings instance.
    """
    from logmetrikks.config.settings import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def scenario_rows() -> list[str]:
    """Six requests from two clients, with a header row."""
    return list(SCENARIO_ROWS)


@pytest.fixture
def mixed_rows() -> list[str]:
    """Headerless rows covering several statuses, hours and days."""
    return list(MIXED_ROWS)


@pytest.fixture
def log_parser() -> LogParser:
    """Return an instance of the LogParser class."""
    return LogParser(delimiter=",")


@pytest.fixture
def build_store(log_parser: LogParser) -> Callable[[list[str]], FrozenStore]:
    """Return a factory that parses headerless rows into a frozen store."""
    def _build(rows: list[str]) -> FrozenStore:
        store = PartitionedStore()
        store.load(log_parser.parse(row, line_number) for line_number, row in enumerate(rows, start=1))
        return store.freeze()
    return _build
