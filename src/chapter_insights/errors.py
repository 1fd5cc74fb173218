"""Failure types raised by the aggregation, feed and trade operations.

Every operation either returns its value or raises one of these. None of them
is ever converted into a zero/empty result: an unknown value would corrupt
growth percentages downstream.
"""

from __future__ import annotations


class ChapterInsightsError(Exception):
    """Base class for all package errors."""


class NotFound(ChapterInsightsError):
    """A referenced chapter, member or trade does not exist."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class AggregationError(ChapterInsightsError):
    """Underlying records could not be read or were malformed."""


class InvalidTransition(ChapterInsightsError):
    """A trade status change violates the trade state machine."""

    def __init__(self, trade_id: str, current: str, requested: str, reason: str | None = None) -> None:
        msg = f"trade {trade_id}: cannot move from {current!r} to {requested!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.trade_id = trade_id
        self.current = current
        self.requested = requested
