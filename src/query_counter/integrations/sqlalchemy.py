# src/query_counter/integrations/sqlalchemy.py
"""SQLAlchemy event listeners feeding a QueryCounter.

Engine-level listeners time every cursor execution and record one
transaction per Connection root transaction, from its begin to its commit
or rollback. Transactions on different connections may overlap; each is
recorded on its own. Savepoints live inside the root transaction and are
not recorded separately. A transaction that began before the current scope
is not recorded.

Session-level listeners make ORM SELECT row counts exact: the ORM result
is frozen, its rows counted, and an equivalent result returned to the
caller.

Row counts for row-returning Core statements executed outside the ORM come
from the DBAPI cursor's rowcount, which many drivers (sqlite3 included)
report as -1 for SELECT; those are recorded as 0 rows.

Note that SQLAlchemy autobegins a transaction on first use of a Connection
and rolls it back on close, so read-only connections show up in the ledger
as rolled-back transactions.

Usage:
    from query_counter.integrations.sqlalchemy import SQLAlchemyInstrumentation

    instrumentation = SQLAlchemyInstrumentation()
    instrumentation.attach_engine(engine)
    instrumentation.attach_session(Session)   # Session class or sessionmaker
"""

from __future__ import annotations

import contextlib
import contextvars
import re
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import sqlalchemy
from sqlalchemy import event
from sqlalchemy.engine import Connection, Engine, Result
from sqlalchemy.orm import ORMExecuteState

from query_counter.counter import ScopeCounter
from query_counter.engine import QueryCounter
from query_counter.logging import get_logger
from query_counter.trace import module_prefix

logger = get_logger(__name__)

_START_KEY = "query_counter_start_times"

# Execution option a caller can set to label a statement explicitly, e.g.
# conn.execution_options(statement_kind="SCHEMA")
STATEMENT_KIND_OPTION = "statement_kind"

_SCHEMA_KEYWORDS = frozenset({"PRAGMA", "CREATE", "ALTER", "DROP"})
_LEADING_KEYWORD = re.compile(r"^\s*([A-Za-z]+)")


@dataclass(frozen=True, slots=True)
class _CursorExecution:
    statement: str
    kind: str | None
    binds: tuple[Any, ...]
    start_time: float
    end_time: float


@dataclass(slots=True)
class _OpenTransaction:
    start_time: float
    scope: ScopeCounter | None


# Cursor executions made while an ORM SELECT is being invoked. The session
# listener records them once the result has been materialized.
_pending_select: contextvars.ContextVar[list[_CursorExecution] | None] = contextvars.ContextVar(
    "query_counter_pending_select", default=None
)


def classify_statement(statement: str) -> str | None:
    """Derive a statement kind from the leading SQL keyword.

    Returns "SCHEMA" for DDL and PRAGMA, "EXPLAIN" for EXPLAIN, else None.

    Example:
        >>> classify_statement("  PRAGMA table_info(users)")
        'SCHEMA'
        >>> classify_statement("SELECT 1") is None
        True
    """
    match = _LEADING_KEYWORD.match(statement)
    if match is None:
        return None
    keyword = match.group(1).upper()
    if keyword in _SCHEMA_KEYWORDS:
        return "SCHEMA"
    if keyword == "EXPLAIN":
        return "EXPLAIN"
    return None


def _bind_values(parameters: Any, executemany: bool) -> tuple[Any, ...]:
    if parameters is None:
        return ()
    if executemany:
        return tuple(_bind_values(params, False) for params in parameters)
    if isinstance(parameters, Mapping):
        return tuple(parameters.values())
    return tuple(parameters)


class SQLAlchemyInstrumentation:
    """Attaches QueryCounter recording to SQLAlchemy engines and sessions.

    One instance can be attached to several engines and session targets;
    detach() removes every listener it added.
    """

    def __init__(self, counter: QueryCounter | None = None) -> None:
        if counter is None:
            from query_counter import default_counter

            counter = default_counter()
        self._counter = counter
        self._listeners: list[tuple[Any, str, Callable[..., Any]]] = []
        # Keyed by Connection, not conn.info: pools such as SingletonThreadPool
        # hand one DBAPI connection to several open Connections.
        self._transactions: weakref.WeakKeyDictionary[Connection, _OpenTransaction] = weakref.WeakKeyDictionary()

        # Commits fire from inside SQLAlchemy (and contextlib for engine.begin()),
        # so call sites start at the first frame outside both.
        counter.add_ignored_trace_prefix(module_prefix(sqlalchemy))
        counter.add_ignored_trace_prefix(module_prefix(contextlib))

    @property
    def counter(self) -> QueryCounter:
        return self._counter

    def attach_engine(self, engine: Engine) -> None:
        """Record queries and transactions executed through engine."""
        self._listen(engine, "before_cursor_execute", self._before_cursor_execute)
        self._listen(engine, "after_cursor_execute", self._after_cursor_execute)
        self._listen(engine, "begin", self._on_begin)
        self._listen(engine, "commit", self._on_commit)
        self._listen(engine, "rollback", self._on_rollback)
        logger.debug("Query counter attached to engine", engine=repr(engine))

    def attach_session(self, target: Any) -> None:
        """Count ORM SELECT rows exactly for sessions created from target.

        Args:
            target: A Session, sessionmaker or the Session class itself
        """
        self._listen(target, "do_orm_execute", self._on_orm_execute)
        logger.debug("Query counter attached to session target", target=repr(target))

    def detach(self) -> None:
        """Remove every listener added by this instance."""
        for target, name, fn in reversed(self._listeners):
            if event.contains(target, name, fn):
                event.remove(target, name, fn)
        self._listeners.clear()
        logger.debug("Query counter detached")

    def _listen(self, target: Any, name: str, fn: Callable[..., Any]) -> None:
        event.listen(target, name, fn)
        self._listeners.append((target, name, fn))

    # -------------------------------------------------------------------------
    # Query timing
    # -------------------------------------------------------------------------

    def _before_cursor_execute(
        self,
        conn: Connection,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        conn.info.setdefault(_START_KEY, []).append(self._counter.clock.monotonic())

    def _after_cursor_execute(
        self,
        conn: Connection,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        end_time = self._counter.clock.monotonic()
        start_times = conn.info.get(_START_KEY)
        if not start_times:
            return
        start_time = start_times.pop()

        kind = None
        if context is not None:
            kind = context.execution_options.get(STATEMENT_KIND_OPTION)
        if kind is None:
            kind = classify_statement(statement)
        binds = _bind_values(parameters, executemany)

        if cursor.description is not None:
            pending = _pending_select.get()
            if pending is not None:
                pending.append(_CursorExecution(statement, kind, binds, start_time, end_time))
                return

        self._counter.record_query(statement, kind, binds, max(cursor.rowcount, 0), start_time, end_time)

    def _on_orm_execute(self, orm_execute_state: ORMExecuteState) -> Result[Any] | None:
        if not orm_execute_state.is_select or self._counter.current_scope() is None:
            return None

        pending: list[_CursorExecution] = []
        token = _pending_select.set(pending)
        try:
            frozen = orm_execute_state.invoke_statement().freeze()
        finally:
            _pending_select.reset(token)

        row_count = len(frozen.data)
        for index, execution in enumerate(pending):
            self._counter.record_query(
                execution.statement,
                execution.kind,
                execution.binds,
                row_count if index == 0 else 0,
                execution.start_time,
                execution.end_time,
            )
        return frozen()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _on_begin(self, conn: Connection) -> None:
        self._transactions[conn] = _OpenTransaction(
            start_time=self._counter.clock.monotonic(),
            scope=self._counter.current_scope(),
        )

    def _on_commit(self, conn: Connection) -> None:
        self._finish(conn, committed=True)

    def _on_rollback(self, conn: Connection) -> None:
        self._finish(conn, committed=False)

    def _finish(self, conn: Connection, *, committed: bool) -> None:
        transaction = self._transactions.pop(conn, None)
        if transaction is None or transaction.scope is None:
            return
        if transaction.scope is not self._counter.current_scope():
            return
        self._counter.record_transaction(committed, transaction.start_time, self._counter.clock.monotonic())
