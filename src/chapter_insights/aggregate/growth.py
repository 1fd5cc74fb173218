"""Month-over-month growth between two chapter snapshots."""

from __future__ import annotations

from chapter_insights.models import ChapterStats, MonthlyGrowth


def percent_change(current: float, previous: float) -> float:
    """Return the signed percentage change from `previous` to `current`.

    A zero baseline yields 100 when there is new activity and 0 otherwise.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100.0


def compute_growth(current: ChapterStats, previous: ChapterStats) -> MonthlyGrowth:
    """Compare two snapshots quantity by quantity.

    Args:
        current: Snapshot for the window of interest.
        previous: Snapshot for the preceding calendar month.

    Returns:
        `MonthlyGrowth` with members, participation, learning hours and
        revenue deltas in percent.
    """
    return MonthlyGrowth(
        members=percent_change(current.total_members, previous.total_members),
        participation=percent_change(current.avg_participation, previous.avg_participation),
        learning_hours=percent_change(current.total_learning_hours, previous.total_learning_hours),
        revenue=percent_change(current.total_revenue, previous.total_revenue),
    )
