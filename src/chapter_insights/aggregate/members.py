"""Member-level views: roster with scores, leaderboard and pending actions."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from chapter_insights.aggregate.metrics import score_members
from chapter_insights.aggregate.windows import Period, as_utc, period_window
from chapter_insights.config import Settings, get_settings
from chapter_insights.errors import NotFound
from chapter_insights.models import (
    Chapter,
    ChapterMember,
    LeaderboardEntry,
    MemberPage,
    PendingAction,
    TradeStatus,
)
from chapter_insights.store import ChapterStore

log = logging.getLogger(__name__)

REPORT_DUE_AFTER_DAY = 5
HIGH_PRIORITY_INACTIVE = 5


def is_inactive(last_activity: datetime | None, now: datetime, threshold_days: int) -> bool:
    """Return True when a member has no activity within `threshold_days` of `now`."""
    if last_activity is None:
        return True
    return as_utc(now) - as_utc(last_activity) > timedelta(days=threshold_days)


def _require_chapter(store: ChapterStore, chapter_id: str) -> Chapter:
    chapter = store.get_chapter(chapter_id)
    if chapter is None:
        raise NotFound("chapter", chapter_id)
    return chapter


def get_chapter_members(
    store: ChapterStore,
    chapter_id: str,
    page: int = 1,
    limit: int = 20,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> MemberPage:
    """Return one page of chapter members, newest joined first.

    Each member carries the timestamp of their latest metric or trade, the
    inactivity flag, and composite scores over the trailing score window.

    Args:
        store: Record source.
        chapter_id: Chapter to list.
        page: 1-based page number.
        limit: Page size.
        now: Reference time (defaults to the current UTC time).
        settings: Thresholds and weights (defaults to `get_settings()`).

    Raises:
        ValueError: on a non-positive page or limit.
        NotFound: if the chapter does not exist.
        AggregationError: if any underlying read fails.
    """
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    settings = settings or get_settings()
    chapter = _require_chapter(store, chapter_id)

    members = store.list_members(chapter.id)
    offset = (page - 1) * limit
    page_members = members[offset : offset + limit]

    recent = store.list_metrics(
        chapter.id, start=now - timedelta(days=settings.score_window_days)
    )
    scores = score_members(recent, [m.id for m in page_members], settings.score_weights)
    last_seen = store.last_activity(chapter.id)

    out = [
        ChapterMember(
            id=m.id,
            full_name=m.full_name,
            business_name=m.business_name,
            email=m.email,
            phone=m.phone,
            role=m.role,
            created_at=m.created_at,
            last_activity=last_seen.get(m.id),
            is_inactive=is_inactive(last_seen.get(m.id), now, settings.inactivity_days),
            metrics=scores[m.id],
        )
        for m in page_members
    ]
    return MemberPage(members=out, total_count=len(members))


def chapter_leaderboard(
    store: ChapterStore,
    chapter_id: str,
    period: Period = "month",
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[LeaderboardEntry]:
    """Rank members that submitted metrics in the period by composite total.

    Ties are ordered by name and then id so the ranking is stable.
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    settings = settings or get_settings()
    chapter = _require_chapter(store, chapter_id)
    window = period_window(period, now)

    members = {m.id: m for m in store.list_members(chapter.id)}
    metrics = store.list_metrics(chapter.id, start=window.start, end=window.end)
    active = [uid for uid in dict.fromkeys(m.user_id for m in metrics) if uid in members]

    scores = score_members(metrics, active, settings.score_weights)
    ranked = sorted(
        active,
        key=lambda uid: (-scores[uid].total, members[uid].full_name or "", uid),
    )
    return [
        LeaderboardEntry(
            rank=i,
            user_id=uid,
            full_name=members[uid].full_name or "",
            business_name=members[uid].business_name or "",
            scores=scores[uid],
        )
        for i, uid in enumerate(ranked, start=1)
    ]


def pending_actions(
    store: ChapterStore,
    chapter_id: str,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> list[PendingAction]:
    """Return the chapter leader's outstanding items.

    Covers inactive members, pending trades awaiting review and the monthly
    report once the reporting day has passed.
    """
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    settings = settings or get_settings()
    chapter = _require_chapter(store, chapter_id)
    actions: list[PendingAction] = []

    last_seen = store.last_activity(chapter.id)
    inactive = sum(
        1
        for m in store.list_members(chapter.id)
        if is_inactive(last_seen.get(m.id), now, settings.inactivity_days)
    )
    if inactive > 0:
        actions.append(
            PendingAction(
                type="Members",
                description=f"{inactive} inactive member{'s' if inactive > 1 else ''} need attention",
                priority="high" if inactive > HIGH_PRIORITY_INACTIVE else "medium",
                count=inactive,
            )
        )

    pending = store.count_trades(chapter.id, status=TradeStatus.PENDING)
    if pending > 0:
        actions.append(
            PendingAction(
                type="Trades",
                description=f"{pending} pending trade{'s' if pending > 1 else ''} to review",
                priority="medium",
                count=pending,
            )
        )

    if now.day > REPORT_DUE_AFTER_DAY:
        actions.append(
            PendingAction(
                type="Reports",
                description="Monthly chapter report due",
                priority="high",
                count=1,
            )
        )

    log.debug("Chapter %s has %d pending actions", chapter.id, len(actions))
    return actions
