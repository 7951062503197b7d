import logging
from datetime import datetime
from functools import lru_cache

from IPy import IP

from logmetrikks.domain.logs.models import FIELD_NAMES, TIMESTAMP_FORMAT, LogRecord
from logmetrikks.exceptions import ParseError, ParseErrorKind


logger = logging.getLogger(__name__)


class LogParser:
    """Parses delimited access log rows into LogRecord objects.

    A row must have exactly five fields:
    ``ip,timestamp,url,status,user_agent``.

    Only structural problems reject a row (wrong arity, missing client
    address, non-integer status). Address validity and timestamp
    parseability are attached to the record as flags.
    """

    def __init__(self, delimiter: str = ",") -> None:
        """Create a parser.

        Args:
            delimiter (str, optional): Field delimiter. Defaults to ",".
        """
        self.delimiter = delimiter
        self.field_count = len(FIELD_NAMES)

        # Statistics
        self.parsed_lines: int = 0
        self.skipped_lines: int = 0

        logger.debug("Field delimiter: %r", self.delimiter)

    def parsed_lines_count(self) -> int:
        """Return the number of parsed lines."""
        return self.parsed_lines

    def skipped_lines_count(self) -> int:
        """Return the number of skipped lines."""
        return self.skipped_lines

    @lru_cache(maxsize=4096)
    def validate_address(self, address: str) -> bool:
        """Check that the address is a single IPv4 or IPv6 host literal."""
        if "/" in address:
            return False
        # IPy reads bare integers ("10") and pads partial quads ("10.0")
        if ":" not in address and address.count(".") != 3:
            return False
        try:
            return IP(address).len() == 1
        except ValueError:
            logger.debug("Invalid IP address %s.", address)
            return False

    @staticmethod
    def parse_timestamp(value: str) -> datetime | None:
        """Parse ``YYYY-MM-DD HH:MM:SS``; return None when it does not parse."""
        try:
            return datetime.strptime(value, TIMESTAMP_FORMAT)
        except ValueError:
            return None

    def split(self, raw_row: str) -> list[str]:
        """Strip the line ending and split the row into fields."""
        return raw_row.rstrip("\r\n").split(self.delimiter)

    def parse(self, raw_row: str, line_number: int = 0) -> LogRecord:
        """Parse one raw row.

        Args:
            raw_row: The row as read from the source.
            line_number: Physical line number, for diagnostics.

        Returns:
            The parsed record, with advisory validity flags.

        Raises:
            ParseError: MALFORMED_ROW on arity mismatch or a missing client
                address, INVALID_STATUS when the status is not an integer.
        """
        fields = self.split(raw_row)
        if len(fields) != self.field_count:
            self.skipped_lines += 1
            raise ParseError(
                ParseErrorKind.MALFORMED_ROW,
                f"expected {self.field_count} fields, got {len(fields)}",
                line_number=line_number,
            )

        client_address, timestamp, path, status, user_agent = fields
        if not client_address:
            self.skipped_lines += 1
            raise ParseError(
                ParseErrorKind.MALFORMED_ROW,
                "missing client address",
                line_number=line_number,
            )

        try:
            status_code = int(status)
        except ValueError:
            self.skipped_lines += 1
            raise ParseError(
                ParseErrorKind.INVALID_STATUS,
                f"status {status!r} is not an integer",
                line_number=line_number,
            ) from None

        self.parsed_lines += 1
        return LogRecord(
            client_address=client_address,
            timestamp=timestamp,
            path=path,
            status_code=status_code,
            user_agent=user_agent,
            parsed_timestamp=self.parse_timestamp(timestamp),
            valid_address=self.validate_address(client_address),
            line_number=line_number,
        )
