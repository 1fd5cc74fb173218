from __future__ import annotations

import pytest

from chapter_insights.config import get_settings, parse_score_weights


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("INACTIVITY_DAYS", "SCORE_WINDOW_DAYS", "FEED_LIMIT", "SCORE_WEIGHTS", "MONGO_TLS"):
        monkeypatch.delenv(name, raising=False)
    s = get_settings()
    assert s.inactivity_days == 30
    assert s.feed_limit == 50
    assert s.mongo_tls is False
    assert s.score_weights.learning == 1.0


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INACTIVITY_DAYS", "14")
    monkeypatch.setenv("FEED_LIMIT", "10")
    monkeypatch.setenv("SCORE_WEIGHTS", "learning=2, trade=0.5")
    s = get_settings()
    assert s.inactivity_days == 14
    assert s.feed_limit == 10
    assert s.score_weights.learning == 2.0
    assert s.score_weights.trade == 0.5
    assert s.score_weights.participation == 1.0


@pytest.mark.parametrize("raw", ["learning", "learning=abc", "sleep=1", "learning=-1"])
def test_bad_weights(raw: str) -> None:
    with pytest.raises(RuntimeError):
        parse_score_weights(raw)


def test_bad_threshold(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INACTIVITY_DAYS", "soon")
    with pytest.raises(RuntimeError):
        get_settings()
