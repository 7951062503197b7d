"""Record model for one observed HTTP request."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

FIELD_NAMES: tuple[str, ...] = ("ip", "timestamp", "url", "status", "user_agent")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MIN_STATUS_CODE = 100
MAX_STATUS_CODE = 599


@dataclass(frozen=True)
class LogRecord:
    """One access log row, immutable once created.

    Semantic problems (bad address, unparseable timestamp, odd status)
    are attached as flags instead of rejecting the row, since each
    analysis only cares about a subset of fields.
    """

    client_address: str
    timestamp: str
    path: str
    status_code: int
    user_agent: str
    parsed_timestamp: datetime | None = field(default=None, compare=False)
    valid_address: bool = field(default=True, compare=False)
    line_number: int = field(default=0, compare=False)

    @property
    def has_valid_timestamp(self) -> bool:
        """True when the record can take part in trend analysis."""
        return self.parsed_timestamp is not None

    @property
    def status_in_range(self) -> bool:
        """True when the status code lies in the HTTP range 100-599."""
        return MIN_STATUS_CODE <= self.status_code <= MAX_STATUS_CODE

    def as_row(self) -> tuple[str, str, str, str, str]:
        """Return the record in its original five column shape."""
        return (
            self.client_address,
            self.timestamp,
            self.path,
            str(self.status_code),
            self.user_agent,
        )

    def __repr__(self) -> str:
        return (
            f"<LogRecord(ip={self.client_address}, status={self.status_code}, "
            f"path={self.path!r}, timestamp={self.timestamp})>"
        )
