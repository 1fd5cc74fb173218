"""Chapter activity feed.

Three independent sources (metric submissions, trades, member joins) are
mapped into their `ChapterActivity` variant, each sorted newest first, and
k-way merged with `heapq.merge`. Equal timestamps keep source order
(metrics, trades, joins) and then in-source order, so repeated calls on the
same data return the same feed.
"""
from __future__ import annotations

import heapq
import logging
from itertools import islice
from operator import attrgetter
from typing import Iterable, Sequence

from chapter_insights.config import Settings, get_settings
from chapter_insights.errors import NotFound
from chapter_insights.models import (
    UNKNOWN_MEMBER,
    ChapterActivity,
    MemberJoinActivity,
    MemberProfile,
    MemberRef,
    MetricActivity,
    MetricEntry,
    TradeActivity,
    TradeRecord,
)
from chapter_insights.store import ChapterStore

log = logging.getLogger(__name__)

METRIC_LABELS = {
    "participation": "participation points",
    "learning": "learning hours",
    "activity": "activity points",
    "networking": "networking points",
    "trade": "trade value",
}


def format_number(value: float) -> str:
    return f"{value:,.2f}".rstrip("0").rstrip(".")


def format_currency(amount: float) -> str:
    return f"KES {amount:,.0f}"


def metric_activity(metric: MetricEntry, user: MemberRef) -> MetricActivity:
    label = METRIC_LABELS.get(metric.metric_type.value, metric.metric_type.value)
    return MetricActivity(
        id=metric.id,
        description=f"Recorded {format_number(metric.value)} {label}",
        created_at=metric.created_at,
        user=user,
        metric_type=metric.metric_type,
        value=float(metric.value),
    )


def trade_activity(trade: TradeRecord, user: MemberRef) -> TradeActivity:
    description = f"Recorded {format_currency(trade.amount)} trade"
    if trade.description:
        description = f"{description} - {trade.description}"
    return TradeActivity(
        id=trade.id,
        description=description,
        created_at=trade.created_at,
        user=user,
        value=float(trade.amount),
    )


def join_activity(member: MemberProfile) -> MemberJoinActivity:
    if member.created_at is None:
        raise ValueError(f"member {member.id} has no join timestamp")
    return MemberJoinActivity(
        id=member.id,
        description=f"{member.full_name or 'A new member'} joined the chapter",
        created_at=member.created_at,
        user=member.ref(),
    )


def _newest_first(items: Iterable[ChapterActivity]) -> list[ChapterActivity]:
    # sorted() keeps equal keys in input order even with reverse=True
    return sorted(items, key=attrgetter("created_at"), reverse=True)


def merge_activity(streams: Sequence[Iterable[ChapterActivity]], limit: int) -> list[ChapterActivity]:
    """Merge activity streams into one feed, newest first, truncated to `limit`.

    Each stream is sorted independently first, so callers may pass records in
    any order.
    """
    ordered = [_newest_first(s) for s in streams]
    merged = heapq.merge(*ordered, key=attrgetter("created_at"), reverse=True)
    return list(islice(merged, limit))


def build_activity_feed(
    store: ChapterStore,
    chapter_id: str,
    limit: int | None = None,
    *,
    settings: Settings | None = None,
) -> list[ChapterActivity]:
    """Return the chapter's most recent activity across all sources.

    Args:
        store: Record source.
        chapter_id: Chapter whose feed to build.
        limit: Maximum number of entries (defaults to `settings.feed_limit`).
        settings: Configuration (defaults to `get_settings()`).

    Returns:
        Activities sorted by `created_at`, most recent first.

    Raises:
        ValueError: if `limit` is negative.
        NotFound: if the chapter does not exist.
        AggregationError: if any underlying read fails.
    """
    if limit is None:
        limit = (settings or get_settings()).feed_limit
    if limit < 0:
        raise ValueError("limit must not be negative")

    chapter = store.get_chapter(chapter_id)
    if chapter is None:
        raise NotFound("chapter", chapter_id)
    if limit == 0:
        return []

    metrics = store.list_metrics(chapter.id, limit=limit)
    trades = store.list_trades(chapter.id, limit=limit)
    members = store.list_members(chapter.id)

    profiles = {m.id: m for m in members}
    missing = {r.user_id for r in [*metrics, *trades]} - profiles.keys()
    if missing:
        profiles.update((p.id, p) for p in store.get_profiles(missing))

    def user_of(user_id: str) -> MemberRef:
        p = profiles.get(user_id)
        return p.ref() if p is not None else UNKNOWN_MEMBER

    joins = _newest_first(join_activity(m) for m in members if m.created_at is not None)

    feed = merge_activity(
        [
            (metric_activity(m, user_of(m.user_id)) for m in metrics),
            (trade_activity(t, user_of(t.user_id)) for t in trades),
            joins[:limit],
        ],
        limit,
    )
    log.debug("Built feed for chapter %s: %d entries", chapter.id, len(feed))
    return feed
