# src/query_counter/thresholds.py
"""Layered notification thresholds.

There is one process-wide ThresholdSet holding the defaults. Each scope gets
its own ThresholdSet layered over it: a field the scope never assigned is
read live from the defaults, so a default changed mid-scope still applies;
a field the scope did assign (even to None) shadows the default for the rest
of the scope. Assigning on a scope never touches the defaults.

Thread Safety:
    The process-wide defaults are shared by every concurrent scope. Writes
    are serialized by a per-set lock; reads are plain dict lookups and see
    the last completed write. Scope-local sets are only touched by their own
    execution context.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from query_counter.config import ThresholdSettings
from query_counter.errors import ThresholdConfigError

THRESHOLD_FIELDS: tuple[str, ...] = ("query_time", "row_count", "transaction_time", "transaction_count")

_COERCE: dict[str, type] = {
    "query_time": float,
    "row_count": int,
    "transaction_time": float,
    "transaction_count": int,
}


class ThresholdSet:
    """Four optional limits with fallback to a parent set.

    A set without a parent is a root (the process-wide defaults). A set with
    a parent resolves each field from its own overrides first, then from the
    parent at the moment of lookup.

    Example:
        defaults = ThresholdSet()
        defaults.query_time = 1.0
        scoped = ThresholdSet(parent=defaults)
        scoped.query_time          # 1.0 (from defaults)
        scoped.query_time = 0.1
        defaults.query_time        # still 1.0
        scoped.set({"row_count": 500, "bogus": 1})  # raises ThresholdConfigError
    """

    __slots__ = ("_lock", "_overrides", "_parent")

    def __init__(self, parent: ThresholdSet | None = None) -> None:
        self._parent = parent
        self._overrides: dict[str, float | int | None] = {}
        self._lock = threading.Lock()

    @property
    def parent(self) -> ThresholdSet | None:
        return self._parent

    def get(self, name: str) -> float | int | None:
        """Resolve a field: own override, else the parent's value, else None.

        Raises:
            ThresholdConfigError: If name is not a threshold field.
        """
        if name not in THRESHOLD_FIELDS:
            raise ThresholdConfigError(name, f"Unknown threshold. Valid thresholds: {', '.join(THRESHOLD_FIELDS)}")
        overrides = self._overrides
        if name in overrides:
            return overrides[name]
        if self._parent is not None:
            return self._parent.get(name)
        return None

    def is_overridden(self, name: str) -> bool:
        """True if this set assigned the field itself rather than inheriting it."""
        return name in self._overrides

    def set(self, values: Mapping[str, Any]) -> None:
        """Assign several fields at once.

        Values are validated and coerced (float for times, int for counts).
        None explicitly means "no limit" and still shadows the parent.
        Nothing is assigned if any key or value is rejected.

        Raises:
            ThresholdConfigError: On an unknown field name or an uncoercible value.
        """
        validated = self._validate(values)
        with self._lock:
            self._overrides.update(validated)

    def replace(self, values: Mapping[str, Any]) -> None:
        """Drop every override and assign values, as one step.

        Concurrent readers see either the old overrides or the new ones,
        never the empty state in between.

        Raises:
            ThresholdConfigError: On an unknown field name or an uncoercible value.
        """
        validated = self._validate(values)
        with self._lock:
            self._overrides = validated

    @staticmethod
    def _validate(values: Mapping[str, Any]) -> dict[str, float | int | None]:
        try:
            validated = ThresholdSettings.model_validate(dict(values))
        except ValidationError as e:
            first = e.errors()[0]
            name = str(first["loc"][0]) if first["loc"] else "<thresholds>"
            if first["type"] == "extra_forbidden":
                message = f"Unknown threshold. Valid thresholds: {', '.join(THRESHOLD_FIELDS)}"
            else:
                message = first["msg"]
            raise ThresholdConfigError(name, message) from e
        coerced: dict[str, float | int | None] = {}
        for name in validated.model_fields_set:
            value = getattr(validated, name)
            coerced[name] = None if value is None else _COERCE[name](value)
        return coerced

    def clear(self) -> None:
        """Disable every limit in this set.

        On a root set the values are simply unset. On a layered set each
        field is overridden with None, so the parent's limits stop applying
        for the rest of the scope.
        """
        with self._lock:
            self._overrides = {} if self._parent is None else dict.fromkeys(THRESHOLD_FIELDS)

    def reset(self, name: str | None = None) -> None:
        """Drop overrides so fields inherit from the parent again (all fields if name is None)."""
        with self._lock:
            if name is None:
                self._overrides = {}
            else:
                self._overrides.pop(name, None)

    def as_dict(self) -> dict[str, float | int | None]:
        """Resolved values of all four fields."""
        return {name: self.get(name) for name in THRESHOLD_FIELDS}

    def _assign(self, name: str, value: Any) -> None:
        self.set({name: value})

    @property
    def query_time(self) -> float | None:
        return self.get("query_time")  # type: ignore[return-value]

    @query_time.setter
    def query_time(self, value: float | None) -> None:
        self._assign("query_time", value)

    @property
    def row_count(self) -> int | None:
        return self.get("row_count")  # type: ignore[return-value]

    @row_count.setter
    def row_count(self, value: int | None) -> None:
        self._assign("row_count", value)

    @property
    def transaction_time(self) -> float | None:
        return self.get("transaction_time")  # type: ignore[return-value]

    @transaction_time.setter
    def transaction_time(self, value: float | None) -> None:
        self._assign("transaction_time", value)

    @property
    def transaction_count(self) -> int | None:
        return self.get("transaction_count")  # type: ignore[return-value]

    @transaction_count.setter
    def transaction_count(self, value: int | None) -> None:
        self._assign("transaction_count", value)

    def __repr__(self) -> str:
        values = ", ".join(f"{name}={value!r}" for name, value in self.as_dict().items())
        return f"ThresholdSet({values})"
