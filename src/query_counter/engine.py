# src/query_counter/engine.py
"""QueryCounter: the recording, scope and query APIs in one object.

Database hooks call the record_* methods; middleware wraps units of work in
count_queries(); application code reads the accessors. Every record_* call
outside a scope is a no-op and every accessor returns None outside a scope,
so "nothing counted yet" (0) and "not counting" (None) stay distinguishable.

Thread Safety:
    One QueryCounter may be used from any number of threads and asyncio
    tasks at once. Each execution context sees only its own scope; the
    process-wide default thresholds are the only shared mutable state.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import structlog

from query_counter.bus import NotificationBus
from query_counter.clock import DEFAULT_CLOCK, Clock
from query_counter.config import DEFAULT_IGNORED_STATEMENT_KINDS, QueryCounterSettings
from query_counter.counter import ScopeCounter
from query_counter.evaluator import evaluate_query, evaluate_scope_end, evaluate_transaction
from query_counter.events import ThresholdNotification
from query_counter.ledger import TransactionGroup, TransactionRecord
from query_counter.registry import ScopeRegistry
from query_counter.subscribers import LoggingSubscriber
from query_counter.thresholds import THRESHOLD_FIELDS, ThresholdSet
from query_counter.trace import CallSiteTrace, capture_call_site

logger = structlog.get_logger(__name__)


class QueryCounter:
    """Scoped database query and transaction counter.

    Example:
        counter = QueryCounter()
        counter.default_thresholds().query_time = 0.5
        counter.bus.subscribe(print)

        with counter.count_queries():
            run_request()
            counter.info()   # {"query_count": 12, "row_count": 340, ...}
        counter.info()       # None
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        bus: NotificationBus | None = None,
        ignored_statement_kinds: Iterable[str] = DEFAULT_IGNORED_STATEMENT_KINDS,
        ignored_trace_prefixes: Iterable[str] = (),
    ) -> None:
        """Initialize the counter.

        Args:
            clock: Source of default transaction start/end times (SystemClock if None)
            bus: Where notifications are published (a fresh bus if None)
            ignored_statement_kinds: Statement kinds excluded from all counters
            ignored_trace_prefixes: Extra path prefixes stripped from the front
                of call-site traces, in addition to this package
        """
        self._clock = DEFAULT_CLOCK if clock is None else clock
        self._bus = NotificationBus() if bus is None else bus
        self._defaults = ThresholdSet()
        self._registry = ScopeRegistry(self._defaults)
        self._ignored_kinds = frozenset(kind.upper() for kind in ignored_statement_kinds)
        self._trace_prefixes: tuple[str, ...] = tuple(ignored_trace_prefixes)
        self._logging_subscriber: LoggingSubscriber | None = None

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    @property
    def registry(self) -> ScopeRegistry:
        return self._registry

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def ignored_statement_kinds(self) -> frozenset[str]:
        return self._ignored_kinds

    @property
    def ignored_trace_prefixes(self) -> tuple[str, ...]:
        return self._trace_prefixes

    def add_ignored_trace_prefix(self, prefix: str) -> None:
        """Strip frames under prefix from the front of call-site traces."""
        if prefix not in self._trace_prefixes:
            self._trace_prefixes = (*self._trace_prefixes, prefix)

    def configure(self, settings: QueryCounterSettings) -> None:
        """Apply validated settings: default thresholds, ignored kinds, logging subscriber."""
        self._defaults.replace({name: getattr(settings.thresholds, name) for name in THRESHOLD_FIELDS})
        self._ignored_kinds = frozenset(settings.ignored_statement_kinds)

        if settings.log_notifications and self._logging_subscriber is None:
            self._logging_subscriber = LoggingSubscriber()
            self._bus.register(self._logging_subscriber, name=LoggingSubscriber.name)
        elif not settings.log_notifications and self._logging_subscriber is not None:
            self._bus.unregister(self._logging_subscriber)
            self._logging_subscriber = None

        logger.info(
            "Query counter configured",
            thresholds=self._defaults.as_dict(),
            ignored_statement_kinds=sorted(self._ignored_kinds),
            log_notifications=settings.log_notifications,
        )

    # -------------------------------------------------------------------------
    # Scope API
    # -------------------------------------------------------------------------

    @contextmanager
    def count_queries(self) -> Iterator[ScopeCounter]:
        """Count queries and transactions for the duration of the block.

        The transaction_count threshold is evaluated when the block exits,
        whether it finished normally or raised. The previous binding (usually
        none) is restored on every path and exceptions propagate unchanged.

        Yields:
            The ScopeCounter bound for the block.
        """
        handle = self._registry.enter()
        try:
            yield handle.counter
        finally:
            try:
                self._finish_scope(handle.counter)
            finally:
                self._registry.exit(handle)

    def _finish_scope(self, counter: ScopeCounter) -> None:
        notification = evaluate_scope_end(counter.thresholds, counter.ledger)
        if notification is not None:
            self._publish(notification)

    # -------------------------------------------------------------------------
    # Recording API
    # -------------------------------------------------------------------------

    def record_query(
        self,
        sql: str,
        statement_kind: str | None,
        binds: Sequence[Any] | None,
        row_count: int,
        start_time: float,
        end_time: float,
    ) -> None:
        """Record one executed query and check the per-query thresholds.

        Args:
            sql: Statement text
            statement_kind: Driver-supplied label; ignored kinds are not counted
            binds: Bind parameter values
            row_count: Rows returned (or affected)
            start_time: Monotonic time the query started
            end_time: Monotonic time the query finished
        """
        if statement_kind is not None and statement_kind.upper() in self._ignored_kinds:
            return
        counter = self._registry.current()
        if counter is None:
            return

        counter.add_query(row_count, end_time - start_time)
        for notification in evaluate_query(
            counter.thresholds,
            sql=sql,
            binds=() if binds is None else binds,
            row_count=row_count,
            start_time=start_time,
            end_time=end_time,
            capture_trace=self._capture_trace,
        ):
            self._publish(notification)

    def record_cached_query(self) -> None:
        """Record a query answered from a query cache. Never checked against thresholds."""
        counter = self._registry.current()
        if counter is not None:
            counter.add_cached_query()

    def record_transaction_begin(self, start_time: float | None = None) -> None:
        """Record a transaction begin. Only the outermost begin starts the timer."""
        counter = self._registry.current()
        if counter is None:
            return
        counter.begin_transaction(self._clock.monotonic() if start_time is None else start_time)

    def record_transaction_end(
        self,
        committed: bool,
        start_time: float | None = None,
        end_time: float | None = None,
    ) -> None:
        """Record a commit or rollback. Only the outermost one is added to the ledger.

        Args:
            committed: False for a rollback
            start_time: Overrides the start remembered from the outermost begin
            end_time: Monotonic end time (the clock's current time if None)
        """
        counter = self._registry.current()
        if counter is None:
            return
        opened_at = counter.end_transaction()
        if opened_at is None:
            return

        self._add_transaction(
            counter,
            committed,
            opened_at if start_time is None else start_time,
            self._clock.monotonic() if end_time is None else end_time,
        )

    def record_transaction(self, committed: bool, start_time: float, end_time: float) -> None:
        """Record one finished outermost transaction.

        For callers that track nesting themselves, e.g. per database
        connection. Bypasses the scope's open transaction depth, so
        transactions on different connections may overlap freely.

        Args:
            committed: False for a rollback
            start_time: Monotonic time of the outermost begin
            end_time: Monotonic time of the outermost commit or rollback
        """
        counter = self._registry.current()
        if counter is None:
            return
        self._add_transaction(counter, committed, start_time, end_time)

    def _add_transaction(self, counter: ScopeCounter, committed: bool, start_time: float, end_time: float) -> None:
        record = counter.add_transaction(self._capture_trace(), start_time, end_time, committed=committed)
        notification = evaluate_transaction(counter.thresholds, record)
        if notification is not None:
            self._publish(notification)

    def _capture_trace(self) -> CallSiteTrace:
        return capture_call_site(self._trace_prefixes)

    def _publish(self, notification: ThresholdNotification) -> None:
        self._bus.publish(notification)

    # -------------------------------------------------------------------------
    # Query API (None outside a scope)
    # -------------------------------------------------------------------------

    def current_scope(self) -> ScopeCounter | None:
        return self._registry.current()

    def query_count(self) -> int | None:
        counter = self._registry.current()
        return None if counter is None else counter.query_count

    def row_count(self) -> int | None:
        counter = self._registry.current()
        return None if counter is None else counter.row_count

    def query_time(self) -> float | None:
        counter = self._registry.current()
        return None if counter is None else counter.query_time

    def cached_query_count(self) -> int | None:
        counter = self._registry.current()
        return None if counter is None else counter.cached_query_count

    def cache_hit_rate(self) -> float | None:
        counter = self._registry.current()
        return None if counter is None else counter.cache_hit_rate

    def transaction_count(self) -> int | None:
        counter = self._registry.current()
        return None if counter is None else counter.transaction_count

    def transaction_time(self) -> float | None:
        counter = self._registry.current()
        return None if counter is None else counter.transaction_time

    def single_transaction_time(self) -> float | None:
        """Span from the first transaction's start to the last one's end, or None outside a scope."""
        counter = self._registry.current()
        return None if counter is None else counter.single_transaction_time

    def rollback_count(self) -> int | None:
        counter = self._registry.current()
        return None if counter is None else counter.rollback_count

    def transactions(self) -> list[TransactionRecord] | None:
        """Every recorded transaction ordered by start time, or None outside a scope."""
        counter = self._registry.current()
        return None if counter is None else counter.ledger.records()

    def transaction_groups(self) -> list[TransactionGroup] | None:
        """Recorded transactions grouped by call site, or None outside a scope."""
        counter = self._registry.current()
        return None if counter is None else counter.ledger.groups()

    def info(self) -> dict[str, int | float] | None:
        counter = self._registry.current()
        return None if counter is None else counter.info()

    # -------------------------------------------------------------------------
    # Threshold configuration API
    # -------------------------------------------------------------------------

    def default_thresholds(self) -> ThresholdSet:
        """The process-wide defaults every scope falls back to."""
        return self._defaults

    def current_thresholds(self) -> ThresholdSet:
        """The current scope's thresholds, or the defaults outside a scope."""
        counter = self._registry.current()
        return self._defaults if counter is None else counter.thresholds
