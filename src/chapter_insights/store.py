"""Read access to chapter records.

`ChapterStore` is the narrow interface every operation in this package reads
through. `MongoChapterStore` implements it over the ``chapters``,
``profiles``, ``metrics`` and ``trades`` collections. Documents are keyed by a
string ``id`` field; Mongo's ``_id`` is projected away.

Any backend failure, and any document that does not validate against the
record models, is raised as `AggregationError`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterable, Iterator, Protocol, TypeVar

from pydantic import BaseModel, ValidationError
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

from chapter_insights.errors import AggregationError
from chapter_insights.models import (
    Chapter,
    MemberProfile,
    MetricEntry,
    TradeRecord,
    TradeStatus,
)

log = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

NO_ID = {"_id": False}


class ChapterStore(Protocol):
    """Row-level read access filtered by chapter and time range.

    Time ranges are half-open: ``start <= created_at < end``. Listing methods
    return records newest first.
    """

    def get_chapter(self, chapter_id: str) -> Chapter | None: ...

    def list_chapters(self) -> list[Chapter]: ...

    def list_members(self, chapter_id: str) -> list[MemberProfile]: ...

    def get_profiles(self, ids: Iterable[str]) -> list[MemberProfile]: ...

    def list_metrics(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[MetricEntry]: ...

    def list_trades(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        status: TradeStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TradeRecord]: ...

    def count_trades(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        status: TradeStatus | None = None,
    ) -> int: ...

    def last_activity(self, chapter_id: str) -> dict[str, datetime]: ...

    def get_trade(self, trade_id: str) -> TradeRecord | None: ...

    def save_trade_status(
        self,
        trade: TradeRecord,
        expected: TradeStatus,
        expected_reference: str | None = None,
    ) -> bool: ...


def _range_filter(
    chapter_id: str,
    start: datetime | None,
    end: datetime | None,
) -> dict[str, Any]:
    q: dict[str, Any] = {"chapter_id": chapter_id}
    created: dict[str, Any] = {}
    if start is not None:
        created["$gte"] = start
    if end is not None:
        created["$lt"] = end
    if created:
        q["created_at"] = created
    return q


def _validate(model: type[M], docs: Iterable[dict[str, Any]]) -> list[M]:
    """Validate raw documents, failing the whole read on the first bad one."""
    out: list[M] = []
    for doc in docs:
        try:
            out.append(model.model_validate(doc))
        except ValidationError as e:
            raise AggregationError(
                f"malformed {model.__name__} record {doc.get('id')!r}: {e}"
            ) from e
    return out


@contextmanager
def _reading(what: str) -> Iterator[None]:
    try:
        yield
    except PyMongoError as e:
        log.error("Store read failed (%s): %s", what, e)
        raise AggregationError(f"failed to read {what}: {e}") from e


class MongoChapterStore:
    """`ChapterStore` backed by a PyMongo database."""

    def __init__(self, db: Database[dict[str, Any]]) -> None:
        self.db = db

    # -------------------------
    # Chapters / members
    # -------------------------
    def get_chapter(self, chapter_id: str) -> Chapter | None:
        with _reading("chapter"):
            doc = self.db["chapters"].find_one({"id": chapter_id}, NO_ID)
        if doc is None:
            return None
        return _validate(Chapter, [doc])[0]

    def list_chapters(self) -> list[Chapter]:
        with _reading("chapters"):
            docs = list(self.db["chapters"].find({}, NO_ID).sort("name"))
        return _validate(Chapter, docs)

    def list_members(self, chapter_id: str) -> list[MemberProfile]:
        with _reading("members"):
            docs = list(
                self.db["profiles"]
                .find({"chapter_id": chapter_id}, NO_ID)
                .sort([("created_at", DESCENDING), ("id", 1)])
            )
        return _validate(MemberProfile, docs)

    def get_profiles(self, ids: Iterable[str]) -> list[MemberProfile]:
        wanted = sorted(set(ids))
        if not wanted:
            return []
        with _reading("profiles"):
            docs = list(self.db["profiles"].find({"id": {"$in": wanted}}, NO_ID))
        return _validate(MemberProfile, docs)

    # -------------------------
    # Metrics / trades
    # -------------------------
    def list_metrics(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[MetricEntry]:
        with _reading("metrics"):
            cursor = (
                self.db["metrics"]
                .find(_range_filter(chapter_id, start, end), NO_ID)
                .sort([("created_at", DESCENDING), ("id", 1)])
            )
            if limit is not None:
                cursor = cursor.limit(limit)
            docs = list(cursor)
        return _validate(MetricEntry, docs)

    def list_trades(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        status: TradeStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TradeRecord]:
        q = _range_filter(chapter_id, start, end)
        if status is not None:
            q["status"] = TradeStatus(status).value
        with _reading("trades"):
            cursor = (
                self.db["trades"]
                .find(q, NO_ID)
                .sort([("created_at", DESCENDING), ("id", 1)])
                .skip(offset)
            )
            if limit is not None:
                cursor = cursor.limit(limit)
            docs = list(cursor)
        return _validate(TradeRecord, docs)

    def count_trades(
        self,
        chapter_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        status: TradeStatus | None = None,
    ) -> int:
        q = _range_filter(chapter_id, start, end)
        if status is not None:
            q["status"] = TradeStatus(status).value
        with _reading("trade count"):
            return int(self.db["trades"].count_documents(q))

    def last_activity(self, chapter_id: str) -> dict[str, datetime]:
        """Return the latest metric or trade timestamp per member of a chapter."""
        pipeline = [
            {"$match": {"chapter_id": chapter_id}},
            {"$group": {"_id": "$user_id", "last": {"$max": "$created_at"}}},
        ]
        latest: dict[str, datetime] = {}
        with _reading("last activity"):
            for name in ("metrics", "trades"):
                for row in self.db[name].aggregate(pipeline):
                    user_id, ts = row["_id"], row["last"]
                    if user_id is None or ts is None:
                        continue
                    if user_id not in latest or ts > latest[user_id]:
                        latest[user_id] = ts
        return latest

    def get_trade(self, trade_id: str) -> TradeRecord | None:
        with _reading("trade"):
            doc = self.db["trades"].find_one({"id": trade_id}, NO_ID)
        if doc is None:
            return None
        return _validate(TradeRecord, [doc])[0]

    def save_trade_status(
        self,
        trade: TradeRecord,
        expected: TradeStatus,
        expected_reference: str | None = None,
    ) -> bool:
        """Write the status fields of `trade` if the stored record is unchanged.

        The write only applies while the stored status is still `expected` and
        the stored M-Pesa reference is still `expected_reference` (``None``
        matches a missing or null reference).

        Returns:
            ``True`` when the update was applied, ``False`` when the trade is
            gone or its status or reference changed in the meantime.
        """
        update = {
            "status": trade.status.value,
            "mpesa_reference": trade.mpesa_reference,
            "updated_at": trade.updated_at,
        }
        with _reading("trade update"):
            result = self.db["trades"].update_one(
                {
                    "id": trade.id,
                    "status": TradeStatus(expected).value,
                    "mpesa_reference": expected_reference,
                },
                {"$set": update},
            )
        return result.matched_count == 1
