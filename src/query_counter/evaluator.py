# src/query_counter/evaluator.py
"""Threshold evaluation.

Pure functions: given a ThresholdSet and what was just observed, decide
which notifications must fire and build them. Nothing here publishes;
the engine hands the returned notifications to the bus.

Evaluation points:
- After every counted query: query_time and row_count (independently)
- After every outermost transaction: transaction_time
- At scope end only: transaction_count, over the scope's whole ledger
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from query_counter.events import (
    NotificationKind,
    QueryThresholdExceeded,
    TransactionCountExceeded,
    TransactionTimeExceeded,
    new_notification_id,
)
from query_counter.ledger import TransactionLedger, TransactionRecord
from query_counter.thresholds import ThresholdSet
from query_counter.trace import CallSiteTrace


def should_fire(limit: float | int | None, observed: float | int) -> bool:
    """Return True iff the limit is set, non-negative, and met or exceeded.

    Example:
        >>> should_fire(None, 10)
        False
        >>> should_fire(0, 0)
        True
        >>> should_fire(-1, 10)
        False
    """
    return limit is not None and limit >= 0 and observed >= limit


def evaluate_query(
    thresholds: ThresholdSet,
    *,
    sql: str,
    binds: Sequence[Any],
    row_count: int,
    start_time: float,
    end_time: float,
    capture_trace: Callable[[], CallSiteTrace],
) -> list[QueryThresholdExceeded]:
    """Check one query against the query_time and row_count limits.

    The trace is captured at most once, and only if something fires.
    """
    elapsed = end_time - start_time
    checks = (
        (NotificationKind.QUERY_TIME, thresholds.query_time, elapsed),
        (NotificationKind.ROW_COUNT, thresholds.row_count, row_count),
    )
    notifications: list[QueryThresholdExceeded] = []
    trace: CallSiteTrace | None = None
    for kind, limit, observed in checks:
        if not should_fire(limit, observed):
            continue
        if trace is None:
            trace = capture_trace()
        notifications.append(
            QueryThresholdExceeded(
                kind=kind,
                notification_id=new_notification_id(),
                start_time=start_time,
                end_time=end_time,
                threshold=limit,  # type: ignore[arg-type]
                observed=observed,
                sql=sql,
                binds=tuple(binds),
                row_count=row_count,
                trace=trace,
            )
        )
    return notifications


def evaluate_transaction(thresholds: ThresholdSet, record: TransactionRecord) -> TransactionTimeExceeded | None:
    """Check one finished outermost transaction against the transaction_time limit."""
    limit = thresholds.transaction_time
    if not should_fire(limit, record.elapsed_time):
        return None
    return TransactionTimeExceeded(
        kind=NotificationKind.TRANSACTION_TIME,
        notification_id=new_notification_id(),
        start_time=record.start_time,
        end_time=record.end_time,
        threshold=limit,  # type: ignore[arg-type]
        observed=record.elapsed_time,
        trace=record.trace,
    )


def evaluate_scope_end(thresholds: ThresholdSet, ledger: TransactionLedger) -> TransactionCountExceeded | None:
    """Check a finished scope's total transaction count.

    The notification window spans the earliest recorded start to the latest
    recorded end. An empty ledger only fires for a limit of 0, with a zero
    window.
    """
    limit = thresholds.transaction_count
    count = ledger.count
    if not should_fire(limit, count):
        return None
    start_time = ledger.start_time
    end_time = ledger.end_time
    return TransactionCountExceeded(
        kind=NotificationKind.TRANSACTION_COUNT,
        notification_id=new_notification_id(),
        start_time=0.0 if start_time is None else start_time,
        end_time=0.0 if end_time is None else end_time,
        threshold=limit,  # type: ignore[arg-type]
        observed=count,
        transactions=tuple(ledger.records()),
    )
