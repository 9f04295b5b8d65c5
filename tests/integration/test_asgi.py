# tests/integration/test_asgi.py
"""QueryCounterMiddleware driven directly with asyncio."""

import asyncio
from typing import Any

import pytest

from query_counter import QueryCounter, ThresholdConfigError, ThresholdNotification
from query_counter.integrations.asgi import QueryCounterMiddleware


async def receive() -> dict[str, Any]:
    return {"type": "http.request", "body": b"", "more_body": False}


def make_app(counter: QueryCounter, queries: int, seen: list[dict[str, int | float] | None]):
    async def app(scope: dict[str, Any], receive: Any, send: Any) -> None:
        for _ in range(queries):
            counter.record_query("SELECT * FROM widgets", None, (), 1, 0.0, 0.01)
            await asyncio.sleep(0)
        seen.append(counter.info())
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"ok"})

    return app


def call(middleware: QueryCounterMiddleware, scope_type: str = "http") -> list[dict[str, Any]]:
    sent: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        sent.append(message)

    asyncio.run(middleware({"type": scope_type, "path": "/widgets"}, receive, send))
    return sent


def test_request_runs_in_its_own_scope(counter: QueryCounter) -> None:
    seen: list[dict[str, int | float] | None] = []
    middleware = QueryCounterMiddleware(make_app(counter, 3, seen), counter=counter)

    sent = call(middleware)

    assert [message["type"] for message in sent] == ["http.response.start", "http.response.body"]
    [info] = seen
    assert info is not None
    assert info["query_count"] == 3
    assert info["row_count"] == 3
    assert counter.info() is None


def test_lifespan_is_not_counted(counter: QueryCounter) -> None:
    seen: list[dict[str, int | float] | None] = []
    middleware = QueryCounterMiddleware(make_app(counter, 1, seen), counter=counter)

    call(middleware, scope_type="lifespan")

    assert seen == [None]


def test_concurrent_requests_are_isolated(counter: QueryCounter) -> None:
    seen: list[dict[str, int | float] | None] = []
    first = QueryCounterMiddleware(make_app(counter, 2, seen), counter=counter)
    second = QueryCounterMiddleware(make_app(counter, 5, seen), counter=counter)

    async def send(message: dict[str, Any]) -> None:
        pass

    async def main() -> None:
        await asyncio.gather(
            first({"type": "http", "path": "/a"}, receive, send),
            second({"type": "http", "path": "/b"}, receive, send),
        )

    asyncio.run(main())

    assert sorted(info["query_count"] for info in seen if info is not None) == [2, 5]


def test_threshold_overrides_apply_per_request(
    counter: QueryCounter, notifications: list[ThresholdNotification]
) -> None:
    seen: list[dict[str, int | float] | None] = []
    middleware = QueryCounterMiddleware(make_app(counter, 2, seen), thresholds={"row_count": 1}, counter=counter)

    call(middleware)

    assert len(notifications) == 2
    assert counter.default_thresholds().row_count is None


def test_invalid_thresholds_rejected_at_construction(counter: QueryCounter) -> None:
    with pytest.raises(ThresholdConfigError):
        QueryCounterMiddleware(make_app(counter, 0, []), thresholds={"rows": 1}, counter=counter)
