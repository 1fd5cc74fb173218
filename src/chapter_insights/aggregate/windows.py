"""Calendar windows used for aggregation.

`TimeWindow` represents a half-open UTC interval ``[start, end)``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

Period = Literal["month", "quarter", "year"]


def as_utc(ts: datetime) -> datetime:
    """Return `ts` in UTC; naive values are taken to be UTC already."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _month_start(year: int, month: int) -> datetime:
    # month may overflow by one in either direction
    if month > 12:
        year, month = year + 1, month - 12
    elif month < 1:
        year, month = year - 1, month + 12
    return datetime(year, month, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class TimeWindow:
    """Half-open time interval.

    Attributes:
        start: Inclusive lower bound (UTC).
        end: Exclusive upper bound (UTC).
    """
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", as_utc(self.start))
        object.__setattr__(self, "end", as_utc(self.end))
        if self.end <= self.start:
            raise ValueError(f"window end {self.end} must be after start {self.start}")

    def contains(self, ts: datetime) -> bool:
        return self.start <= as_utc(ts) < self.end

    def previous_month(self) -> TimeWindow:
        """Return the calendar month immediately preceding this window's start."""
        start = _month_start(self.start.year, self.start.month - 1)
        return TimeWindow(start, _month_start(start.year, start.month + 1))


def month_window(ref: datetime) -> TimeWindow:
    """Return the calendar month containing `ref`."""
    ref = as_utc(ref)
    start = _month_start(ref.year, ref.month)
    return TimeWindow(start, _month_start(ref.year, ref.month + 1))


def parse_month(value: str) -> TimeWindow:
    """Parse ``YYYY-MM`` into its calendar month window."""
    try:
        ref = datetime.strptime(value, "%Y-%m")
    except ValueError:
        raise ValueError(f"expected YYYY-MM, got {value!r}") from None
    return month_window(ref)


def period_window(period: Period, now: datetime) -> TimeWindow:
    """Return the month, quarter or year to date containing `now`.

    The window ends at the close of the current period so that records
    timestamped later today are included.
    """
    now = as_utc(now)
    if period == "month":
        return month_window(now)
    if period == "quarter":
        first = (now.month - 1) // 3 * 3 + 1
        start = _month_start(now.year, first)
        return TimeWindow(start, _month_start(now.year, first + 3))
    if period == "year":
        return TimeWindow(
            datetime(now.year, 1, 1, tzinfo=timezone.utc),
            datetime(now.year + 1, 1, 1, tzinfo=timezone.utc),
        )
    raise ValueError(f"unknown period {period!r}")
