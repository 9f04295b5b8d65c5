# src/query_counter/subscribers.py
"""Built-in notification subscribers."""

from __future__ import annotations

import structlog

from query_counter.events import QueryThresholdExceeded, ThresholdNotification, TransactionCountExceeded, TransactionTimeExceeded
from query_counter.hookspecs import hookimpl

logger = structlog.get_logger(__name__)


class LoggingSubscriber:
    """Logs every threshold notification as a structured warning.

    Only the first frame of a trace is logged; full traces and transaction
    lists are left to dedicated subscribers.
    """

    name = "logging"

    @hookimpl
    def query_counter_notify(self, notification: ThresholdNotification) -> None:
        fields: dict[str, object] = {
            "kind": str(notification.kind),
            "notification_id": notification.notification_id,
            "threshold": notification.threshold,
            "observed": notification.observed,
        }
        match notification:
            case QueryThresholdExceeded():
                fields["sql"] = notification.sql
                fields["row_count"] = notification.row_count
                fields["caller"] = notification.trace.caller
            case TransactionTimeExceeded():
                fields["caller"] = notification.trace.caller
            case TransactionCountExceeded():
                fields["call_sites"] = len({record.trace for record in notification.transactions})
        logger.warning("Database threshold exceeded", **fields)
