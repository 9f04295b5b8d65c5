# tests/unit/test_module_api.py
"""Tests for the module-level functions backed by the default counter."""

from collections.abc import Iterator
from pathlib import Path

import pytest

import query_counter
from query_counter import QueryCounterSettings, ThresholdNotification


@pytest.fixture(autouse=True)
def reset_default_counter() -> Iterator[None]:
    counter = query_counter.default_counter()
    yield
    counter.configure(QueryCounterSettings(log_notifications=False))


@pytest.fixture
def received() -> Iterator[list[ThresholdNotification]]:
    collected: list[ThresholdNotification] = []
    subscriber = query_counter.notification_bus().subscribe(collected.append)
    yield collected
    query_counter.notification_bus().unregister(subscriber)


def test_functions_delegate_to_default_counter() -> None:
    assert query_counter.query_count() is None
    with query_counter.count_queries() as scope:
        assert query_counter.default_counter().current_scope() is scope
        query_counter.record_query("SELECT 1", None, None, 1, 0.0, 0.001)
        query_counter.record_cached_query()
        query_counter.record_transaction_begin(1.0)
        query_counter.record_transaction_end(True, end_time=1.5)

        assert query_counter.query_count() == 1
        assert query_counter.row_count() == 1
        assert query_counter.cached_query_count() == 1
        assert query_counter.cache_hit_rate() == 0.5
        assert query_counter.transaction_count() == 1
        assert query_counter.transaction_time() == 0.5
        assert query_counter.single_transaction_time() == 0.5
        assert query_counter.rollback_count() == 0
        assert len(query_counter.transactions()) == 1
        assert len(query_counter.transaction_groups()) == 1
        assert query_counter.info()["query_count"] == 1
    assert query_counter.info() is None


def test_threshold_accessors(received: list[ThresholdNotification]) -> None:
    query_counter.default_thresholds().row_count = 2
    with query_counter.count_queries():
        query_counter.current_thresholds().row_count = 1
        query_counter.record_query("SELECT 1", None, None, 1, 0.0, 0.001)
    assert [n.kind for n in received] == ["row_count"]
    assert query_counter.default_thresholds().row_count == 2


def test_configure_from_file(tmp_path: Path) -> None:
    config_file = tmp_path / "query_counter.yaml"
    config_file.write_text("thresholds:\n  transaction_time: 3.0\nlog_notifications: false\n")

    settings = query_counter.configure_from_file(config_file, setup_logging=False)

    assert settings.thresholds.transaction_time == 3.0
    assert query_counter.default_thresholds().transaction_time == 3.0


def test_version() -> None:
    assert query_counter.__version__ == "1.0.0"
