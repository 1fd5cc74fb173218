from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from chapter_insights.models import (
    ChapterStats,
    LeaderboardEntry,
    MemberScores,
    MetricEntry,
    ScoreWeights,
)


def test_member_total_is_weighted_sum() -> None:
    s = MemberScores(
        participation=10, learning=2, activity=3, networking=4, trade=5,
        weights=ScoreWeights(participation=2.0, learning=0.5),
    )
    assert s.total == pytest.approx(20 + 1 + 3 + 4 + 5)
    dumped = s.model_dump()
    assert dumped["total"] == pytest.approx(33.0)
    assert "weights" not in dumped


def test_member_total_input_is_recomputed() -> None:
    s = MemberScores.model_validate({"participation": 1.0, "total": 99.0})
    assert s.total == pytest.approx(1.0)
    with pytest.raises(ValidationError):
        MemberScores.model_validate({"participation": 1.0, "bonus": 5.0})


def test_dumped_leaderboard_entry_validates_back() -> None:
    entry = LeaderboardEntry(
        rank=1,
        user_id="a",
        full_name="Member A",
        business_name="A Ltd",
        scores=MemberScores(participation=80, learning=3),
    )
    restored = LeaderboardEntry.model_validate(entry.model_dump())
    assert restored == entry
    assert restored.scores.total == pytest.approx(83.0)


def test_naive_timestamps_are_utc() -> None:
    m = MetricEntry(
        id="m", user_id="a", chapter_id="c1", metric_type="learning", value=1,
        created_at=datetime(2024, 3, 1, 8, 0),
    )
    assert m.created_at == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)


def test_metric_rejects_negative_value_and_unknown_type() -> None:
    base = {"id": "m", "user_id": "a", "chapter_id": "c1", "created_at": "2024-03-01T00:00:00Z"}
    with pytest.raises(ValidationError):
        MetricEntry.model_validate({**base, "metric_type": "learning", "value": -1})
    with pytest.raises(ValidationError):
        MetricEntry.model_validate({**base, "metric_type": "sleep", "value": 1})


def test_chapter_stats_bounds() -> None:
    with pytest.raises(ValidationError):
        ChapterStats(
            chapter_id="c1",
            window_start=datetime(2024, 3, 1, tzinfo=timezone.utc),
            window_end=datetime(2024, 4, 1, tzinfo=timezone.utc),
            total_members=1,
            avg_participation=120.0,
            total_learning_hours=0,
            total_revenue=0,
        )
