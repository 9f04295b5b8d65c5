# src/query_counter/integrations/jobs.py
"""Decorator that counts queries per background job run.

Usage:
    @counted_job
    def rebuild_index(): ...

    @counted_job(thresholds={"transaction_count": 100})
    async def import_batch(rows): ...

    @counted_job(thresholds=False)      # no notifications for this job
    def nightly_cleanup(): ...
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Mapping
from typing import Any, Literal, TypeVar, overload

from query_counter.counter import ScopeCounter
from query_counter.engine import QueryCounter
from query_counter.thresholds import ThresholdSet

F = TypeVar("F", bound=Callable[..., Any])

JobThresholds = Mapping[str, Any] | Literal[False] | None


def _apply_thresholds(scope_counter: ScopeCounter, thresholds: JobThresholds) -> None:
    if thresholds is False:
        scope_counter.thresholds.clear()
    elif thresholds is not None:
        scope_counter.thresholds.set(thresholds)


@overload
def counted_job(func: F) -> F: ...


@overload
def counted_job(
    func: None = None,
    *,
    thresholds: JobThresholds = None,
    counter: QueryCounter | None = None,
) -> Callable[[F], F]: ...


def counted_job(
    func: F | None = None,
    *,
    thresholds: JobThresholds = None,
    counter: QueryCounter | None = None,
) -> F | Callable[[F], F]:
    """Run each call of the decorated job inside its own counting scope.

    Works for plain and async functions. Thresholds are validated when the
    decorator is applied, not when the job first runs.

    Args:
        func: The job function (when used without arguments)
        thresholds: Overrides for this job's scope, or False to disable all thresholds
        counter: QueryCounter to use (the package default if None)

    Raises:
        ThresholdConfigError: If thresholds contains an unknown name or bad value.
    """
    if thresholds is not None and thresholds is not False:
        ThresholdSet().set(thresholds)

    def decorate(job: F) -> F:
        def resolve_counter() -> QueryCounter:
            if counter is not None:
                return counter
            from query_counter import default_counter

            return default_counter()

        if inspect.iscoroutinefunction(job):

            @functools.wraps(job)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with resolve_counter().count_queries() as scope_counter:
                    _apply_thresholds(scope_counter, thresholds)
                    return await job(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(job)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with resolve_counter().count_queries() as scope_counter:
                _apply_thresholds(scope_counter, thresholds)
                return job(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    if func is not None:
        return decorate(func)
    return decorate
