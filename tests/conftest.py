from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

import pytest

from chapter_insights.config import Settings
from chapter_insights.errors import AggregationError
from chapter_insights.models import (
    Chapter,
    MemberProfile,
    MetricEntry,
    TradeRecord,
    TradeStatus,
)

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def ts(month: int, day: int, hour: int = 12, year: int = 2024) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def member(id: str, joined: datetime | None, chapter_id: str = "c1", name: str | None = None) -> MemberProfile:
    return MemberProfile(
        id=id,
        email=f"{id}@example.com",
        full_name=name or f"Member {id.upper()}",
        business_name=f"{id.upper()} Ltd",
        phone="+254700000000",
        role="member",
        chapter_id=chapter_id,
        created_at=joined,
    )


def metric(id: str, user_id: str, metric_type: str, value: float, at: datetime, chapter_id: str = "c1") -> MetricEntry:
    return MetricEntry(
        id=id,
        user_id=user_id,
        chapter_id=chapter_id,
        metric_type=metric_type,
        value=value,
        created_at=at,
    )


def trade(
    id: str,
    user_id: str,
    amount: float,
    at: datetime,
    status: str = "pending",
    chapter_id: str = "c1",
    **extra: object,
) -> TradeRecord:
    return TradeRecord.model_validate(
        {
            "id": id,
            "user_id": user_id,
            "chapter_id": chapter_id,
            "amount": amount,
            "status": status,
            "created_at": at,
            **extra,
        }
    )


class FakeStore:
    """In-memory `ChapterStore` with the same ordering rules as the Mongo one."""

    def __init__(
        self,
        chapters: Iterable[Chapter] = (),
        members: Iterable[MemberProfile] = (),
        metrics: Iterable[MetricEntry] = (),
        trades: Iterable[TradeRecord] = (),
    ) -> None:
        self.chapters = {c.id: c for c in chapters}
        self.members = list(members)
        self.metrics = list(metrics)
        self.trades = {t.id: t for t in trades}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise AggregationError("store unavailable")

    @staticmethod
    def _in_range(at: datetime, start: datetime | None, end: datetime | None) -> bool:
        return (start is None or at >= start) and (end is None or at < end)

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        self._check()
        return self.chapters.get(chapter_id)

    def list_chapters(self) -> list[Chapter]:
        self._check()
        return sorted(self.chapters.values(), key=lambda c: c.name)

    def list_members(self, chapter_id: str) -> list[MemberProfile]:
        self._check()
        rows = [m for m in self.members if m.chapter_id == chapter_id]
        return sorted(rows, key=lambda m: m.created_at or _EPOCH, reverse=True)

    def get_profiles(self, ids: Iterable[str]) -> list[MemberProfile]:
        self._check()
        wanted = set(ids)
        return [m for m in self.members if m.id in wanted]

    def list_metrics(self, chapter_id, start=None, end=None, limit=None):
        self._check()
        rows = [
            m for m in self.metrics
            if m.chapter_id == chapter_id and self._in_range(m.created_at, start, end)
        ]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return rows if limit is None else rows[:limit]

    def _trades(self, chapter_id, start, end, status):
        rows = [
            t for t in self.trades.values()
            if t.chapter_id == chapter_id
            and self._in_range(t.created_at, start, end)
            and (status is None or t.status == status)
        ]
        rows.sort(key=lambda t: t.created_at, reverse=True)
        return rows

    def list_trades(self, chapter_id, start=None, end=None, status=None, limit=None, offset=0):
        self._check()
        rows = self._trades(chapter_id, start, end, status)[offset:]
        return rows if limit is None else rows[:limit]

    def count_trades(self, chapter_id, start=None, end=None, status=None) -> int:
        self._check()
        return len(self._trades(chapter_id, start, end, status))

    def last_activity(self, chapter_id: str) -> dict[str, datetime]:
        self._check()
        latest: dict[str, datetime] = {}
        records = [*self.metrics, *self.trades.values()]
        for r in records:
            if r.chapter_id != chapter_id:
                continue
            if r.user_id not in latest or r.created_at > latest[r.user_id]:
                latest[r.user_id] = r.created_at
        return latest

    def get_trade(self, trade_id: str) -> TradeRecord | None:
        self._check()
        return self.trades.get(trade_id)

    def save_trade_status(
        self,
        trade: TradeRecord,
        expected: TradeStatus,
        expected_reference: str | None = None,
    ) -> bool:
        self._check()
        stored = self.trades.get(trade.id)
        if stored is None or stored.status != expected:
            return False
        if stored.mpesa_reference != expected_reference:
            return False
        self.trades[trade.id] = stored.model_copy(
            update={
                "status": trade.status,
                "mpesa_reference": trade.mpesa_reference,
                "updated_at": trade.updated_at,
            }
        )
        return True


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store() -> FakeStore:
    """Chapter c1 in mid-March 2024 with activity in February and March."""
    return FakeStore(
        chapters=[
            Chapter(id="c1", name="Nairobi Central", leader_id="a"),
            Chapter(id="c2", name="Quiet Chapter"),
        ],
        members=[
            member("a", ts(1, 5)),
            member("b", ts(1, 20)),
            member("c", ts(3, 10)),
            member("q", ts(1, 1, year=2023), chapter_id="c2"),
        ],
        metrics=[
            metric("m1", "a", "participation", 80, ts(3, 2)),
            metric("m2", "b", "participation", 150, ts(3, 3)),
            metric("m3", "a", "learning", 3, ts(3, 5)),
            metric("m4", "b", "learning", 2, ts(2, 10)),
            metric("m5", "x", "learning", 10, ts(3, 4)),
            metric("m6", "a", "networking", 4, ts(3, 8)),
        ],
        trades=[
            trade("t1", "a", 1500, ts(3, 6), status="paid", beneficiary_member_id="b"),
            trade("t2", "b", 700, ts(3, 7), description="Catering"),
            trade("t3", "a", 1000, ts(2, 12), status="paid"),
        ],
    )
