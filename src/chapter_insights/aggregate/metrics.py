"""pandas rollups of metric and trade records.

These helpers take validated records, build small pandas frames and reduce
them to per-member totals. They never touch the store, which keeps them easy
to test with hand-built records.

Expectations:
- Metrics are attributed only to the member ids passed in; rows from other
  users are dropped.
- Every requested member appears in the output, with zeros when they have no
  submissions.
"""
from __future__ import annotations

from typing import Iterable

import pandas as pd

from chapter_insights.models import (
    METRIC_TYPES,
    MemberScores,
    MetricEntry,
    ScoreWeights,
    TradeRecord,
    TradeStatus,
)

MAX_PARTICIPATION = 100.0


def metrics_frame(metrics: Iterable[MetricEntry]) -> pd.DataFrame:
    """Return metric records as a frame with `user_id`, `metric_type`, `value`, `created_at`."""
    rows = [
        {
            "user_id": m.user_id,
            "metric_type": m.metric_type.value,
            "value": float(m.value),
            "created_at": m.created_at,
        }
        for m in metrics
    ]
    return pd.DataFrame(rows, columns=["user_id", "metric_type", "value", "created_at"])


def metric_totals_by_member(
    metrics: Iterable[MetricEntry],
    member_ids: Iterable[str],
) -> pd.DataFrame:
    """Sum metric values per member and metric type.

    Args:
        metrics: Metric records to aggregate.
        member_ids: Members to report on, in output order.

    Returns:
        DataFrame indexed by `user_id` (one row per member id) with one float
        column per metric type.
    """
    ids = list(dict.fromkeys(member_ids))
    columns = list(METRIC_TYPES)
    zeros = pd.DataFrame(0.0, index=pd.Index(ids, name="user_id"), columns=columns)

    df = metrics_frame(metrics)
    df = df[df["user_id"].isin(ids)]
    if df.empty:
        return zeros

    totals = (
        df.groupby(["user_id", "metric_type"])["value"]
        .sum()
        .unstack(fill_value=0.0)
    )
    return totals.reindex(index=zeros.index, columns=columns, fill_value=0.0).astype(float)


def participation_scores(totals: pd.DataFrame) -> pd.Series:
    """Per-member participation score, clipped to ``[0, 100]``."""
    return totals["participation"].clip(lower=0.0, upper=MAX_PARTICIPATION)


def score_members(
    metrics: Iterable[MetricEntry],
    member_ids: Iterable[str],
    weights: ScoreWeights,
) -> dict[str, MemberScores]:
    """Return composite scores keyed by member id.

    Members without submissions get all-zero scores rather than being left
    out.
    """
    totals = metric_totals_by_member(metrics, member_ids)
    return {
        str(user_id): MemberScores(
            weights=weights,
            **{name: float(row[name]) for name in METRIC_TYPES},
        )
        for user_id, row in totals.iterrows()
    }


def paid_revenue(trades: Iterable[TradeRecord], member_ids: Iterable[str]) -> float:
    """Sum the amounts of ``paid`` trades initiated by the given members."""
    df = pd.DataFrame(
        [
            {"user_id": t.user_id, "status": t.status.value, "amount": float(t.amount)}
            for t in trades
        ],
        columns=["user_id", "status", "amount"],
    )
    if df.empty:
        return 0.0
    mask = (df["status"] == TradeStatus.PAID.value) & df["user_id"].isin(list(member_ids))
    return float(df.loc[mask, "amount"].sum())
