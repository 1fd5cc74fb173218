"""Chapter statistics for a time window.

`compute_chapter_stats` reads one chapter's members, metrics and trades,
rolls them up for the requested window and for the preceding calendar month,
and attaches the growth between the two.

Expectations:
- Only records whose owning member belongs to the chapter are counted.
- `avg_participation` divides by the number of members, not by the number of
  members that submitted something.
- Revenue counts ``paid`` trades only.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from chapter_insights.aggregate.growth import compute_growth
from chapter_insights.aggregate.metrics import (
    metric_totals_by_member,
    paid_revenue,
    participation_scores,
)
from chapter_insights.aggregate.windows import TimeWindow, month_window
from chapter_insights.errors import NotFound
from chapter_insights.models import ChapterStats, MetricEntry, TradeRecord
from chapter_insights.store import ChapterStore

log = logging.getLogger(__name__)


def window_stats(
    chapter_id: str,
    window: TimeWindow,
    member_ids: Sequence[str],
    metrics: Sequence[MetricEntry],
    trades: Sequence[TradeRecord],
) -> ChapterStats:
    """Roll up already-fetched records for a single window.

    Records outside `window` are ignored, so callers can pass a superset.
    The returned snapshot carries zero growth.

    Args:
        chapter_id: Chapter the records belong to.
        window: Window to aggregate.
        member_ids: Members counted in the snapshot.
        metrics: Metric records (any window).
        trades: Trade records (any window).
    """
    in_window = [m for m in metrics if window.contains(m.created_at)]
    totals = metric_totals_by_member(in_window, member_ids)

    participation = participation_scores(totals)
    avg_participation = float(participation.mean()) if len(participation) else 0.0

    revenue = paid_revenue(
        (t for t in trades if window.contains(t.created_at)),
        member_ids,
    )

    return ChapterStats(
        chapter_id=chapter_id,
        window_start=window.start,
        window_end=window.end,
        total_members=len(totals),
        avg_participation=avg_participation,
        total_learning_hours=float(totals["learning"].sum()),
        total_revenue=revenue,
    )


def compute_chapter_stats(
    store: ChapterStore,
    chapter_id: str,
    window: TimeWindow | None = None,
    *,
    now: datetime | None = None,
) -> ChapterStats:
    """Return the chapter snapshot for `window` with month-over-month growth.

    Args:
        store: Record source.
        chapter_id: Chapter to aggregate.
        window: Window of interest; defaults to the calendar month containing
            `now`.
        now: Reference time (defaults to the current UTC time).

    Returns:
        `ChapterStats` whose `monthly_growth` compares `window` against the
        calendar month preceding it.

    Raises:
        NotFound: if the chapter does not exist.
        AggregationError: if any underlying read fails.
    """
    now = now or datetime.now(timezone.utc)
    window = window or month_window(now)
    previous = window.previous_month()

    chapter = store.get_chapter(chapter_id)
    if chapter is None:
        raise NotFound("chapter", chapter_id)

    members = store.list_members(chapter.id)
    metrics = store.list_metrics(chapter.id, start=previous.start, end=window.end)
    trades = store.list_trades(chapter.id, start=previous.start, end=window.end)

    current = window_stats(chapter.id, window, [m.id for m in members], metrics, trades)

    # membership as it stood when the previous window closed
    prior_members = [
        m.id for m in members if m.created_at is None or m.created_at < previous.end
    ]
    prior = window_stats(chapter.id, previous, prior_members, metrics, trades)

    stats = current.model_copy(update={"monthly_growth": compute_growth(current, prior)})
    log.info(
        "Chapter %s stats for %s: members=%d revenue=%.2f",
        chapter.id,
        window.start.strftime("%Y-%m"),
        stats.total_members,
        stats.total_revenue,
    )
    return stats
