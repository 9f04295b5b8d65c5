# src/query_counter/__init__.py
"""Scoped database query counting with threshold notifications.

Within a unit of work (a request, a job) the counter accumulates query,
row, timing and cache-hit counts, groups transactions by the call site that
finished them, and publishes notifications when a query, a transaction or
the scope's transaction count crosses a configured threshold.

Components:
- engine: QueryCounter, the recording/scope/query API facade
- registry: ScopeRegistry binding one ScopeCounter per execution context
- counter: ScopeCounter aggregates for one scope
- ledger: TransactionLedger grouping transactions by CallSiteTrace
- trace: CallSiteTrace capture with internal frames stripped
- thresholds: ThresholdSet with scope-over-default resolution
- evaluator: threshold decisions and notification assembly
- events: typed notifications
- bus / hookspecs / subscribers: pluggy-based notification delivery
- config: pydantic settings and Dynaconf loading
- integrations: SQLAlchemy listeners, ASGI middleware, job decorator

Usage:
    import query_counter

    query_counter.default_thresholds().query_time = 0.5

    with query_counter.count_queries():
        handle_request()
        query_counter.info()   # {"query_count": 3, "row_count": 3, ...}

    query_counter.query_count()  # None - not counting outside a scope

The module-level functions all delegate to one process-wide QueryCounter,
returned by default_counter().
"""

from pathlib import Path

from query_counter.bus import NotificationBus
from query_counter.clock import Clock, ManualClock, SystemClock
from query_counter.config import QueryCounterSettings, ThresholdSettings, load_settings
from query_counter.counter import ScopeCounter
from query_counter.engine import QueryCounter
from query_counter.errors import QueryCounterError, SubscriberRegistrationError, ThresholdConfigError
from query_counter.events import (
    NotificationKind,
    QueryThresholdExceeded,
    ThresholdNotification,
    TransactionCountExceeded,
    TransactionTimeExceeded,
)
from query_counter.hookspecs import hookimpl
from query_counter.ledger import TransactionGroup, TransactionLedger, TransactionRecord
from query_counter.logging import configure_logging
from query_counter.registry import ScopeHandle, ScopeRegistry
from query_counter.thresholds import ThresholdSet
from query_counter.trace import CallSiteTrace

__version__ = "1.0.0"

_default_counter = QueryCounter()


def default_counter() -> QueryCounter:
    """The process-wide QueryCounter behind the module-level functions."""
    return _default_counter


def notification_bus() -> NotificationBus:
    """The bus the default counter publishes notifications to."""
    return _default_counter.bus


def configure(settings: QueryCounterSettings, *, setup_logging: bool = False) -> None:
    """Apply settings to the default counter, optionally configuring logging too."""
    if setup_logging:
        configure_logging(json_output=settings.logging.json_output, level=settings.logging.level)
    _default_counter.configure(settings)


def configure_from_file(config_path: Path, *, setup_logging: bool = True) -> QueryCounterSettings:
    """Load settings from a file (plus QUERY_COUNTER_* env overrides) and apply them."""
    settings = load_settings(config_path)
    configure(settings, setup_logging=setup_logging)
    return settings


# Scope API
count_queries = _default_counter.count_queries

# Recording API
record_query = _default_counter.record_query
record_cached_query = _default_counter.record_cached_query
record_transaction_begin = _default_counter.record_transaction_begin
record_transaction_end = _default_counter.record_transaction_end
record_transaction = _default_counter.record_transaction

# Query API
current_scope = _default_counter.current_scope
query_count = _default_counter.query_count
row_count = _default_counter.row_count
query_time = _default_counter.query_time
cached_query_count = _default_counter.cached_query_count
cache_hit_rate = _default_counter.cache_hit_rate
transaction_count = _default_counter.transaction_count
transaction_time = _default_counter.transaction_time
single_transaction_time = _default_counter.single_transaction_time
rollback_count = _default_counter.rollback_count
transactions = _default_counter.transactions
transaction_groups = _default_counter.transaction_groups
info = _default_counter.info

# Threshold configuration API
default_thresholds = _default_counter.default_thresholds
current_thresholds = _default_counter.current_thresholds

__all__ = [
    "CallSiteTrace",
    "Clock",
    "ManualClock",
    "NotificationBus",
    "NotificationKind",
    "QueryCounter",
    "QueryCounterError",
    "QueryCounterSettings",
    "QueryThresholdExceeded",
    "ScopeCounter",
    "ScopeHandle",
    "ScopeRegistry",
    "SubscriberRegistrationError",
    "SystemClock",
    "ThresholdConfigError",
    "ThresholdNotification",
    "ThresholdSet",
    "ThresholdSettings",
    "TransactionCountExceeded",
    "TransactionGroup",
    "TransactionLedger",
    "TransactionRecord",
    "TransactionTimeExceeded",
    "cache_hit_rate",
    "cached_query_count",
    "configure",
    "configure_from_file",
    "configure_logging",
    "count_queries",
    "current_scope",
    "current_thresholds",
    "default_counter",
    "default_thresholds",
    "hookimpl",
    "info",
    "load_settings",
    "notification_bus",
    "query_count",
    "query_time",
    "record_cached_query",
    "record_query",
    "record_transaction",
    "record_transaction_begin",
    "record_transaction_end",
    "rollback_count",
    "row_count",
    "single_transaction_time",
    "transaction_count",
    "transaction_groups",
    "transaction_time",
    "transactions",
]
