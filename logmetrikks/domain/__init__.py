from .analytics.dtos import AggregationResult
from .analytics.dtos import ResultRow
from .analytics.models import Granularity
from .logs.models import LogRecord
from .logs.store import FrozenStore
from .logs.store import PartitionedStore

__all__ = [
    "AggregationResult",
    "ResultRow",
    "Granularity",
    "LogRecord",
    "FrozenStore",
    "PartitionedStore",
]
