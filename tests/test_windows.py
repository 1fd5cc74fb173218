from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chapter_insights.aggregate.windows import (
    TimeWindow,
    month_window,
    parse_month,
    period_window,
)


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_month_window_is_half_open() -> None:
    w = month_window(_utc(2024, 2, 29, 23))
    assert (w.start, w.end) == (_utc(2024, 2, 1), _utc(2024, 3, 1))
    assert w.contains(_utc(2024, 2, 1))
    assert not w.contains(_utc(2024, 3, 1))


def test_previous_month_crosses_year() -> None:
    prev = month_window(_utc(2024, 1, 10)).previous_month()
    assert (prev.start, prev.end) == (_utc(2023, 12, 1), _utc(2024, 1, 1))


def test_period_windows() -> None:
    q = period_window("quarter", _utc(2024, 11, 5))
    assert (q.start, q.end) == (_utc(2024, 10, 1), _utc(2025, 1, 1))
    y = period_window("year", _utc(2024, 6, 1))
    assert (y.start, y.end) == (_utc(2024, 1, 1), _utc(2025, 1, 1))


def test_parse_month() -> None:
    assert parse_month("2024-03").start == _utc(2024, 3, 1)
    with pytest.raises(ValueError):
        parse_month("March")


def test_empty_window_rejected() -> None:
    with pytest.raises(ValueError):
        TimeWindow(_utc(2024, 3, 1), _utc(2024, 3, 1))
