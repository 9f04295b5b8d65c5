# src/query_counter/counter.py
"""Live aggregation state for one scope."""

from __future__ import annotations

from query_counter.ledger import TransactionLedger, TransactionRecord
from query_counter.thresholds import ThresholdSet
from query_counter.trace import CallSiteTrace


class ScopeCounter:
    """Counters, transaction ledger and thresholds for one unit of work.

    Created by ScopeRegistry.enter() and owned by that scope alone; never
    shared between concurrent scopes, so nothing here is locked. All numeric
    counters only ever grow.

    Attributes:
        query_count: Queries recorded (ignored statement kinds excluded)
        row_count: Rows returned or affected across those queries
        query_time: Seconds spent in those queries
        cached_query_count: Queries answered from a query cache
        rollback_count: Outermost transactions that were rolled back
        ledger: Outermost transactions grouped by call site
        thresholds: Scope thresholds, layered over the process-wide defaults
    """

    def __init__(self, defaults: ThresholdSet | None = None) -> None:
        self.query_count = 0
        self.row_count = 0
        self.query_time = 0.0
        self.cached_query_count = 0
        self.rollback_count = 0
        self.ledger = TransactionLedger()
        self.thresholds = ThresholdSet(parent=defaults)
        self._open_transactions = 0
        self._transaction_start: float | None = None

    def add_query(self, row_count: int, elapsed_time: float) -> None:
        self.query_count += 1
        self.row_count += row_count
        self.query_time += elapsed_time

    def add_cached_query(self) -> None:
        self.cached_query_count += 1

    @property
    def open_transactions(self) -> int:
        return self._open_transactions

    def begin_transaction(self, start_time: float) -> bool:
        """Count a begin. Returns True if this opened the outermost transaction."""
        self._open_transactions += 1
        if self._open_transactions == 1:
            self._transaction_start = start_time
            return True
        return False

    def end_transaction(self) -> float | None:
        """Count a commit or rollback.

        Returns:
            The outermost transaction's start time if this closed it, else
            None. Also None when nothing is open, i.e. the transaction began
            before the scope did.
        """
        if self._open_transactions == 0:
            return None
        self._open_transactions -= 1
        if self._open_transactions > 0:
            return None
        start_time = self._transaction_start
        self._transaction_start = None
        return start_time

    def add_transaction(
        self,
        trace: CallSiteTrace,
        start_time: float,
        end_time: float,
        *,
        committed: bool,
    ) -> TransactionRecord:
        record = self.ledger.add(trace, start_time, end_time, committed=committed)
        if not committed:
            self.rollback_count += 1
        return record

    @property
    def transaction_count(self) -> int:
        return self.ledger.count

    @property
    def transaction_time(self) -> float:
        return self.ledger.elapsed_time

    @property
    def single_transaction_time(self) -> float:
        return self.ledger.single_transaction_time

    @property
    def cache_hit_rate(self) -> float:
        """Share of all lookups served from the query cache; 0.0 before any query."""
        total = self.query_count + self.cached_query_count
        if total == 0:
            return 0.0
        return self.cached_query_count / total

    def info(self) -> dict[str, int | float]:
        """Snapshot of every counter."""
        return {
            "query_count": self.query_count,
            "row_count": self.row_count,
            "query_time": self.query_time,
            "cached_query_count": self.cached_query_count,
            "cache_hit_rate": self.cache_hit_rate,
            "transaction_count": self.transaction_count,
            "transaction_time": self.transaction_time,
            "rollback_count": self.rollback_count,
        }
