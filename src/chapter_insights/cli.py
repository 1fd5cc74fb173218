"""Command-line interface for chapter reports.

Provides subcommands: `stats`, `members`, `feed`, `trades`, `leaderboard`,
`actions`, `trade-status` and `report`. Each command is implemented as a
`cmd_*` function that accepts an argparse namespace and returns a
JSON-serializable value which `main` prints to stdout.
"""
from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Iterator
from typing import cast, Any as TypingAny

from dask import delayed, compute  # type: ignore[attr-defined]
from dotenv import load_dotenv

from chapter_insights.config import get_settings
from chapter_insights.db import connect
from chapter_insights.errors import ChapterInsightsError
from chapter_insights.logging_config import configure_logging
from chapter_insights.models import ActivityFeed, TradeStatus
from chapter_insights.store import MongoChapterStore
from chapter_insights.trades import list_chapter_trades, update_trade_status
from chapter_insights.aggregate.activity import build_activity_feed
from chapter_insights.aggregate.members import (
    chapter_leaderboard,
    get_chapter_members,
    pending_actions,
)
from chapter_insights.aggregate.stats import compute_chapter_stats
from chapter_insights.aggregate.windows import parse_month

log = logging.getLogger(__name__)


# --------------------------------------------------
# Helpers
# --------------------------------------------------
@contextmanager
def _open_store() -> Iterator[MongoChapterStore]:
    """Yield a store connected with the current settings; close the client on exit."""
    client, db = connect(get_settings())
    try:
        yield MongoChapterStore(db)
    finally:
        client.close()


def _date(value: str) -> datetime:
    """argparse type for ISO dates / timestamps."""
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from None


def _stats_for_chapter(chapter_id: str, month: str | None) -> dict[str, Any]:
    """Runs inside a Dask task.

    Opens its own Mongo connection so tasks stay independent.
    """
    settings = get_settings()
    client, db = connect(settings)
    try:
        window = parse_month(month) if month else None
        stats = compute_chapter_stats(MongoChapterStore(db), chapter_id, window)
        return {"ok": True, "stats": stats.model_dump(mode="json")}
    except ChapterInsightsError as e:
        return {"ok": False, "chapter_id": chapter_id, "error": str(e)}
    finally:
        client.close()


# --------------------------------------------------
# Commands
# --------------------------------------------------
def cmd_stats(args: argparse.Namespace) -> Any:
    window = parse_month(args.month) if args.month else None
    with _open_store() as store:
        stats = compute_chapter_stats(store, args.chapter, window)
    return stats.model_dump(mode="json")


def cmd_members(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        page = get_chapter_members(store, args.chapter, args.page, args.limit)
    return page.model_dump(mode="json")


def cmd_feed(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        feed = build_activity_feed(store, args.chapter, args.limit)
    return ActivityFeed.dump_python(feed, mode="json")


def cmd_trades(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        page = list_chapter_trades(
            store,
            args.chapter,
            page=args.page,
            limit=args.limit,
            status=args.status,
            date_from=args.date_from,
            date_to=args.date_to,
        )
    return page.model_dump(mode="json")


def cmd_leaderboard(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        entries = chapter_leaderboard(store, args.chapter, args.period)
    return [e.model_dump(mode="json") for e in entries]


def cmd_actions(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        actions = pending_actions(store, args.chapter)
    return [a.model_dump(mode="json") for a in actions]


def cmd_trade_status(args: argparse.Namespace) -> Any:
    with _open_store() as store:
        trade = update_trade_status(store, args.trade, args.status, args.mpesa_ref)
    return trade.model_dump(mode="json")


def cmd_report(args: argparse.Namespace) -> Any:
    """Compute stats for every chapter, one Dask task per chapter.

    Chapters that fail are reported with their error; the others still
    complete.
    """
    with _open_store() as store:
        chapters = store.list_chapters()
    if not chapters:
        log.warning("No chapters found.")
        return []

    tasks = [delayed(_stats_for_chapter)(c.id, args.month) for c in chapters]
    # `compute` is untyped in our environment; cast to Any before calling
    results = cast(TypingAny, compute)(*tasks)

    failed = [r for r in results if not r["ok"]]
    for r in failed:
        log.error("Chapter %s failed: %s", r["chapter_id"], r["error"])
    log.info("Report complete: %d chapters (%d failed)", len(results), len(failed))
    return list(results)


COMMANDS = {
    "stats": cmd_stats,
    "members": cmd_members,
    "feed": cmd_feed,
    "trades": cmd_trades,
    "leaderboard": cmd_leaderboard,
    "actions": cmd_actions,
    "trade-status": cmd_trade_status,
    "report": cmd_report,
}


# --------------------------------------------------
# CLI
# --------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="chapter_insights")
    sub = p.add_subparsers(dest="cmd", required=True)
    statuses = [s.value for s in TradeStatus]

    p_stats = sub.add_parser("stats")
    p_stats.add_argument("--chapter", required=True)
    p_stats.add_argument("--month", help="YYYY-MM, defaults to the current month")

    p_members = sub.add_parser("members")
    p_members.add_argument("--chapter", required=True)
    p_members.add_argument("--page", type=int, default=1)
    p_members.add_argument("--limit", type=int, default=20)

    p_feed = sub.add_parser("feed")
    p_feed.add_argument("--chapter", required=True)
    p_feed.add_argument("--limit", type=int, default=None)

    p_trades = sub.add_parser("trades")
    p_trades.add_argument("--chapter", required=True)
    p_trades.add_argument("--status", choices=statuses, default=None)
    p_trades.add_argument("--from", dest="date_from", type=_date, default=None)
    p_trades.add_argument("--to", dest="date_to", type=_date, default=None)
    p_trades.add_argument("--page", type=int, default=1)
    p_trades.add_argument("--limit", type=int, default=20)

    p_board = sub.add_parser("leaderboard")
    p_board.add_argument("--chapter", required=True)
    p_board.add_argument("--period", choices=["month", "quarter", "year"], default="month")

    p_actions = sub.add_parser("actions")
    p_actions.add_argument("--chapter", required=True)

    p_status = sub.add_parser("trade-status")
    p_status.add_argument("--trade", required=True)
    p_status.add_argument("--status", choices=statuses, required=True)
    p_status.add_argument("--mpesa-ref", default=None)

    p_report = sub.add_parser("report")
    p_report.add_argument("--month", help="YYYY-MM, defaults to the current month")

    return p


def main(argv: list[str] | None = None) -> int:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    load_dotenv()
    configure_logging(Path("logs/chapter_insights.log"))

    args = build_parser().parse_args(argv)
    try:
        result = COMMANDS[args.cmd](args)
    except (ChapterInsightsError, ValueError) as e:
        log.error("%s failed: %s", args.cmd, e)
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
