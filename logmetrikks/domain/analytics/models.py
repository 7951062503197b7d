"""Time bucketing primitives for trend analysis."""
from __future__ import annotations

from datetime import datetime
from enum import Enum


class Granularity(str, Enum):
    """Truncation unit applied to timestamps before grouping."""

    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def key_format(self) -> str:
        """strftime format used to render a bucket start."""
        if self is Granularity.DAY:
            return "%Y-%m-%d"
        return "%Y-%m-%d %H:%M"


def floor_to(ts: datetime, granularity: Granularity) -> datetime:
    """Truncate a datetime to the start of its bucket."""
    result = ts.replace(second=0, microsecond=0)
    if granularity is Granularity.MINUTE:
        return result
    result = result.replace(minute=0)
    if granularity is Granularity.HOUR:
        return result
    return result.replace(hour=0)


def bucket_key(bucket_start: datetime, granularity: Granularity) -> str:
    """Render a bucket start as its result key, e.g. ``2024-02-01 10:00``."""
    return bucket_start.strftime(granularity.key_format)
