# src/query_counter/registry.py
"""Binding of scopes to execution contexts.

Active scopes live in one module-level ContextVar holding an immutable
mapping from ScopeRegistry to its bound ScopeCounter, which gives every
thread and every asyncio task its own bindings while any number of
QueryCounter instances share the variable. enter() saves whatever was bound
for the registry and binds a fresh counter; exit() puts the saved value
back. Scopes therefore nest with strict stack discipline, and a scope
entered inside a task can never leak into the task's parent or into the
next job on a pooled thread, provided exit() runs on every path
(count_queries() guarantees that).
"""

from __future__ import annotations

import contextvars
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from query_counter.counter import ScopeCounter
from query_counter.thresholds import ThresholdSet

_EMPTY: Mapping[ScopeRegistry, ScopeCounter] = MappingProxyType({})

# Replaced, never mutated: contexts copied from each other share the mapping.
_active_scopes: contextvars.ContextVar[Mapping[ScopeRegistry, ScopeCounter]] = contextvars.ContextVar(
    "query_counter_active_scopes", default=_EMPTY
)


@dataclass(frozen=True, slots=True)
class ScopeHandle:
    """Returned by enter(); pass it back to exit()."""

    counter: ScopeCounter
    previous: ScopeCounter | None


class ScopeRegistry:
    """Maps the current execution context to at most one active ScopeCounter."""

    def __init__(self, defaults: ThresholdSet) -> None:
        self._defaults = defaults

    @property
    def defaults(self) -> ThresholdSet:
        return self._defaults

    def enter(self) -> ScopeHandle:
        """Bind a fresh counter to the calling context, remembering the previous one."""
        counter = ScopeCounter(defaults=self._defaults)
        handle = ScopeHandle(counter=counter, previous=self.current())
        self._bind(counter)
        return handle

    def exit(self, handle: ScopeHandle) -> None:
        """Restore the binding saved by enter(), which may be None."""
        self._bind(handle.previous)

    def current(self) -> ScopeCounter | None:
        return _active_scopes.get().get(self)

    def _bind(self, counter: ScopeCounter | None) -> None:
        scopes = dict(_active_scopes.get())
        if counter is None:
            scopes.pop(self, None)
        else:
            scopes[self] = counter
        _active_scopes.set(MappingProxyType(scopes))
