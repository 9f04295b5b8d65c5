# src/query_counter/integrations/asgi.py
"""ASGI middleware that counts queries per request.

Every HTTP and websocket connection runs inside its own scope. Lifespan
events pass straight through. Optional threshold overrides apply to every
request handled by the wrapped app without touching the process-wide
defaults.

Usage:
    app = QueryCounterMiddleware(app, thresholds={"query_time": 0.5, "transaction_count": 10})
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, MutableMapping
from types import MappingProxyType
from typing import Any

from query_counter.engine import QueryCounter
from query_counter.thresholds import ThresholdSet

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_COUNTED_SCOPE_TYPES = frozenset({"http", "websocket"})


class QueryCounterMiddleware:
    """Wraps each HTTP/websocket call of an ASGI app in a query counting scope.

    Args:
        app: The ASGI application to wrap
        thresholds: Per-request threshold overrides, validated up front
        counter: QueryCounter to use (the package default if None)

    Raises:
        ThresholdConfigError: If thresholds contains an unknown name or bad value.
    """

    def __init__(
        self,
        app: ASGIApp,
        thresholds: Mapping[str, Any] | None = None,
        counter: QueryCounter | None = None,
    ) -> None:
        if counter is None:
            from query_counter import default_counter

            counter = default_counter()
        self.app = app
        self.counter = counter
        self.thresholds: Mapping[str, Any] | None = None
        if thresholds is not None:
            ThresholdSet().set(thresholds)
            self.thresholds = MappingProxyType(dict(thresholds))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in _COUNTED_SCOPE_TYPES:
            await self.app(scope, receive, send)
            return

        with self.counter.count_queries() as scope_counter:
            if self.thresholds is not None:
                scope_counter.thresholds.set(self.thresholds)
            await self.app(scope, receive, send)
