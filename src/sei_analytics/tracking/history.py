"""Bounded rolling history of timestamped records."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator
from datetime import datetime, timedelta
from typing import Generic, Protocol, TypeVar

# Lookback windows accepted by the read surface. ``None`` means unbounded.
TIMEFRAMES: dict[str, timedelta | None] = {
    "1h": timedelta(hours=1),
    "1d": timedelta(days=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}


class Timestamped(Protocol):
    @property
    def timestamp(self) -> datetime: ...


R = TypeVar("R", bound=Timestamped)


def timeframe_delta(timeframe: str) -> timedelta | None:
    """Resolve a timeframe name, raising ValueError for unknown names."""
    try:
        return TIMEFRAMES[timeframe]
    except KeyError:
        raise ValueError(
            f"Unknown timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}"
        ) from None


def within(records: Iterable[R], *, as_of: datetime, timeframe: str) -> list[R]:
    """Records strictly newer than ``as_of - timeframe``."""
    delta = timeframe_delta(timeframe)
    if delta is None:
        return list(records)
    cutoff = as_of - delta
    return [r for r in records if r.timestamp > cutoff]


class HistoryBuffer(Generic[R]):
    """Append-only FIFO window, oldest record first.

    Appending to a full buffer drops exactly the oldest record.
    """

    def __init__(self, maxlen: int, records: Iterable[R] = ()) -> None:
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self._records: deque[R] = deque(records, maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        maxlen = self._records.maxlen
        assert maxlen is not None
        return maxlen

    def append(self, record: R) -> None:
        self._records.append(record)

    def items(self) -> tuple[R, ...]:
        return tuple(self._records)

    def window(self, *, as_of: datetime, timeframe: str) -> list[R]:
        return within(self._records, as_of=as_of, timeframe=timeframe)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[R]:
        return iter(tuple(self._records))
