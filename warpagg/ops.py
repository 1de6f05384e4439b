"""A single recorded benchmark operation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass
class Operation:
    """One request made during a benchmark run."""

    op_type: str
    start: datetime
    end: datetime
    size: int = 0
    obj_per_op: int = 1
    thread: int = 0
    endpoint: str = ""
    client_id: str = ""
    err: str = ""
    first_byte: datetime | None = None
    categories: int = 0
    file: str = ""

    def duration(self) -> timedelta:
        """Time from start to end of the request."""
        return self.end - self.start

    def ttfb(self) -> timedelta:
        """Time to first byte, or zero when not recorded."""
        if self.first_byte is None:
            return timedelta(0)
        return self.first_byte - self.start


def ops_have_multiple_sizes(ops: Iterable[Operation]) -> bool:
    """Return True if the operations do not all share the same size."""
    sizes = iter(op.size for op in ops)
    first = next(sizes, None)
    if first is None:
        return False
    return any(size != first for size in sizes)