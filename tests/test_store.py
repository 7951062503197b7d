import threading

import pytest

from logmetrikks.domain.logs.models import LogRecord
from logmetrikks.domain.logs.store import CANCEL_CHECK_INTERVAL, PartitionedStore
from logmetrikks.exceptions import ScanCancelled, StoreSealedError


def make_record(address: str, status: int, path: str = "/") -> LogRecord:
    return LogRecord(
        client_address=address,
        timestamp="2024-02-01 10:00:00",
        path=path,
        status_code=status,
        user_agent="UA",
    )


@pytest.fixture
def interleaved() -> list[LogRecord]:
    return [
        make_record("a", 200, "/1"),
        make_record("b", 404, "/2"),
        make_record("c", 200, "/3"),
        make_record("d", 500, "/4"),
        make_record("e", 404, "/5"),
        make_record("f", 200, "/6"),
    ]


def test_load_creates_partitions_lazily(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    assert store.load(interleaved) == 6
    frozen = store.freeze()

    assert frozen.statuses == [200, 404, 500]
    assert frozen.status_counts() == {200: 3, 404: 2, 500: 1}
    assert frozen.total_count == 6
    assert len(frozen) == 6


def test_scan_all_preserves_ingestion_order(interleaved: list[LogRecord]) -> None:
    """Full scans merge partitions back into ingestion order."""
    store = PartitionedStore()
    store.load(interleaved)
    frozen = store.freeze()

    assert [r.path for r in frozen.scan_all()] == ["/1", "/2", "/3", "/4", "/5", "/6"]


def test_scan_by_status_touches_only_matching(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    store.load(interleaved)
    frozen = store.freeze()

    assert [r.path for r in frozen.scan_by_status({404, 500})] == ["/2", "/4", "/5"]
    assert [r.path for r in frozen.scan_by_status({404})] == ["/2", "/5"]
    assert list(frozen.scan_by_status({418})) == []
    assert list(frozen.scan_by_status(set())) == []
    assert [r.path for r in frozen.scan_by_status(None)] == ["/1", "/2", "/3", "/4", "/5", "/6"]


def test_duplicates_are_counted_separately() -> None:
    record = make_record("a", 200)
    store = PartitionedStore()
    store.load([record, record, record])
    frozen = store.freeze()

    assert frozen.total_count == 3
    assert len(list(frozen.scan_all())) == 3


def test_multiple_loads_append(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    store.load(interleaved[:2])
    store.load(interleaved[2:])
    frozen = store.freeze()

    assert [r.path for r in frozen.scan_all()] == ["/1", "/2", "/3", "/4", "/5", "/6"]


def test_partial_load_keeps_appended_records(interleaved: list[LogRecord]) -> None:
    """Loading is not transactional."""
    def failing():
        yield interleaved[0]
        yield interleaved[1]
        raise OSError("source went away")

    store = PartitionedStore()
    with pytest.raises(OSError):
        store.load(failing())
    assert store.total_count == 2


def test_frozen_store_rejects_loading(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    store.load(interleaved)
    frozen = store.freeze()

    assert store.is_sealed
    with pytest.raises(StoreSealedError):
        store.load(interleaved)
    with pytest.raises(StoreSealedError):
        store.freeze()
    assert not hasattr(frozen, "load")
    assert frozen.total_count == 6


def test_empty_store() -> None:
    frozen = PartitionedStore().freeze()

    assert frozen.total_count == 0
    assert frozen.status_counts() == {}
    assert frozen.statuses == []
    assert list(frozen.scan_all()) == []
    assert frozen.partition(200) == ()


def test_partition_returns_records_of_one_status(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    store.load(interleaved)
    frozen = store.freeze()

    assert [r.client_address for r in frozen.partition(200)] == ["a", "c", "f"]


def test_scan_cancelled_before_start(interleaved: list[LogRecord]) -> None:
    store = PartitionedStore()
    store.load(interleaved)
    frozen = store.freeze()
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ScanCancelled):
        list(frozen.scan_all(cancel))


def test_scan_cancelled_midway() -> None:
    """Long scans observe the signal periodically."""
    store = PartitionedStore()
    store.load(make_record(str(i), 200) for i in range(CANCEL_CHECK_INTERVAL * 3))
    frozen = store.freeze()
    cancel = threading.Event()

    seen = 0
    with pytest.raises(ScanCancelled):
        for _record in frozen.scan_all(cancel):
            seen += 1
            if seen == 10:
                cancel.set()
    assert seen == CANCEL_CHECK_INTERVAL - 1
