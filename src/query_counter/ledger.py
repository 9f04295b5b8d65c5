# src/query_counter/ledger.py
"""Per-call-site transaction ledger.

The ledger keeps every outermost transaction finished inside a scope,
grouped by the CallSiteTrace that finished it. Groups preserve completion
order; the flattened view is ordered by start time.

Memory is bounded by the number of distinct call sites for traces: equal
traces are interned so each group holds a single trace instance that all of
its records share.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from query_counter.trace import CallSiteTrace


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """One outermost transaction.

    Start and end are monotonic clock values, not wall-clock time.

    Attributes:
        start_time: When the outermost begin happened
        end_time: When the outermost commit or rollback happened
        trace: Call site that finished the transaction
        committed: False if the transaction was rolled back
    """

    start_time: float
    end_time: float
    trace: CallSiteTrace
    committed: bool = True

    @property
    def elapsed_time(self) -> float:
        return self.end_time - self.start_time


@dataclass(slots=True)
class TransactionGroup:
    """All transactions finished from one call site, in completion order."""

    trace: CallSiteTrace
    records: list[TransactionRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def elapsed_time(self) -> float:
        """Sum of the elapsed time of every transaction in the group."""
        return sum(record.elapsed_time for record in self.records)

    @property
    def start_time(self) -> float:
        return min(record.start_time for record in self.records)

    @property
    def end_time(self) -> float:
        return max(record.end_time for record in self.records)

    @property
    def rollback_count(self) -> int:
        return sum(1 for record in self.records if not record.committed)


class TransactionLedger:
    """Groups TransactionRecords by call site.

    Not thread-safe. A ledger belongs to exactly one ScopeCounter, which in
    turn belongs to one execution context.

    Example:
        ledger = TransactionLedger()
        ledger.add(trace, start_time=1.0, end_time=1.5)
        ledger.add(trace, start_time=2.0, end_time=2.25)
        ledger.count          # 2
        ledger.groups()[0]    # one group, count 2, elapsed_time 0.75
    """

    def __init__(self) -> None:
        self._groups: dict[CallSiteTrace, TransactionGroup] = {}

    def intern(self, trace: CallSiteTrace) -> CallSiteTrace:
        """Return the stored instance equal to trace, or trace itself if it is new."""
        group = self._groups.get(trace)
        return trace if group is None else group.trace

    def add(
        self,
        trace: CallSiteTrace,
        start_time: float,
        end_time: float,
        *,
        committed: bool = True,
    ) -> TransactionRecord:
        """Append a transaction under its call site and return the stored record."""
        group = self._groups.get(trace)
        if group is None:
            group = TransactionGroup(trace=trace)
            self._groups[trace] = group
        record = TransactionRecord(
            start_time=start_time,
            end_time=end_time,
            trace=group.trace,
            committed=committed,
        )
        group.records.append(record)
        return record

    def groups(self) -> list[TransactionGroup]:
        """Per-call-site groups in order of each call site's first appearance."""
        return list(self._groups.values())

    def records(self) -> list[TransactionRecord]:
        """Every record across all groups, ordered by start time."""
        flattened = [record for group in self._groups.values() for record in group.records]
        flattened.sort(key=lambda record: record.start_time)
        return flattened

    @property
    def count(self) -> int:
        return sum(group.count for group in self._groups.values())

    @property
    def elapsed_time(self) -> float:
        return sum(group.elapsed_time for group in self._groups.values())

    @property
    def start_time(self) -> float | None:
        """Earliest start across all records, or None when empty."""
        if not self._groups:
            return None
        return min(group.start_time for group in self._groups.values())

    @property
    def end_time(self) -> float | None:
        """Latest end across all records, or None when empty."""
        if not self._groups:
            return None
        return max(group.end_time for group in self._groups.values())

    @property
    def single_transaction_time(self) -> float:
        """Time that would be spent in a transaction if all of them were merged into one.

        This is the span from the earliest start to the latest end, including
        the gaps between transactions. Comparing it with elapsed_time shows
        what wrapping the whole unit of work in one transaction would cost in
        lock hold time.
        """
        if not self._groups:
            return 0.0
        return self.end_time - self.start_time  # type: ignore[operator]

    def __len__(self) -> int:
        return self.count
