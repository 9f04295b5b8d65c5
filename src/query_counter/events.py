# src/query_counter/events.py
"""Threshold notification definitions.

A notification is published every time an observed value meets or exceeds a
configured limit. Every notification carries the limit, the observed value,
the monotonic time window it covers and a unique id; each kind adds its own
payload:

- query_time / row_count: the SQL, its bind values, the row count and the
  call site that ran it
- transaction_time: the call site that finished the transaction
- transaction_count: every transaction recorded in the scope
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from query_counter.ledger import TransactionRecord
from query_counter.trace import CallSiteTrace

NOTIFICATION_NAMESPACE = "query_counter"


class NotificationKind(StrEnum):
    """Which threshold fired."""

    QUERY_TIME = "query_time"
    ROW_COUNT = "row_count"
    TRANSACTION_TIME = "transaction_time"
    TRANSACTION_COUNT = "transaction_count"


def new_notification_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ThresholdNotification:
    """Base for all threshold notifications.

    Attributes:
        kind: Which threshold fired
        notification_id: Unique id of this firing
        start_time: Monotonic start of the observed window
        end_time: Monotonic end of the observed window
        threshold: The configured limit
        observed: The value that met or exceeded it
    """

    kind: NotificationKind
    notification_id: str
    start_time: float
    end_time: float
    threshold: float | int
    observed: float | int

    @property
    def name(self) -> str:
        """Event name, e.g. "query_counter.query_time"."""
        return f"{NOTIFICATION_NAMESPACE}.{self.kind}"

    @property
    def payload(self) -> dict[str, Any]:
        return {"threshold": self.threshold, "observed": self.observed}


@dataclass(frozen=True, slots=True)
class QueryThresholdExceeded(ThresholdNotification):
    """A single query was too slow or returned too many rows."""

    sql: str
    binds: tuple[Any, ...]
    row_count: int
    trace: CallSiteTrace

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "threshold": self.threshold,
            "observed": self.observed,
            "sql": self.sql,
            "binds": self.binds,
            "row_count": self.row_count,
            "trace": self.trace,
        }


@dataclass(frozen=True, slots=True)
class TransactionTimeExceeded(ThresholdNotification):
    """A single outermost transaction was held too long."""

    trace: CallSiteTrace

    @property
    def payload(self) -> dict[str, Any]:
        return {"threshold": self.threshold, "observed": self.observed, "trace": self.trace}


@dataclass(frozen=True, slots=True)
class TransactionCountExceeded(ThresholdNotification):
    """A scope finished with too many transactions."""

    transactions: tuple[TransactionRecord, ...]

    @property
    def payload(self) -> dict[str, Any]:
        return {
            "threshold": self.threshold,
            "observed": self.observed,
            "transactions": self.transactions,
        }
