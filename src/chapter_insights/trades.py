"""Trade status state machine and chapter trade listing.

Status changes only go through `transition`, which enforces::

    pending  -> paid | invoiced | cancelled | failed
    invoiced -> paid | cancelled

``paid``, ``cancelled`` and ``failed`` are terminal. An M-Pesa reference can
be recorded on the transition into ``paid`` or attached to a ``paid`` trade
later, and never changes once set.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from chapter_insights.errors import InvalidTransition, NotFound
from chapter_insights.models import (
    UNKNOWN_MEMBER,
    ChapterTrade,
    MemberRef,
    TradePage,
    TradeRecord,
    TradeStatus,
)
from chapter_insights.store import ChapterStore

log = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TradeStatus, frozenset[TradeStatus]] = {
    TradeStatus.PENDING: frozenset(
        {TradeStatus.PAID, TradeStatus.INVOICED, TradeStatus.CANCELLED, TradeStatus.FAILED}
    ),
    TradeStatus.INVOICED: frozenset({TradeStatus.PAID, TradeStatus.CANCELLED}),
    TradeStatus.PAID: frozenset(),
    TradeStatus.CANCELLED: frozenset(),
    TradeStatus.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)


def can_transition(current: TradeStatus, new: TradeStatus) -> bool:
    return TradeStatus(new) in ALLOWED_TRANSITIONS[TradeStatus(current)]


def _check_reference(trade: TradeRecord, reference: str, requested: TradeStatus) -> None:
    if not reference.strip():
        raise InvalidTransition(trade.id, trade.status.value, requested.value, "empty M-Pesa reference")
    if trade.mpesa_reference is not None and trade.mpesa_reference != reference:
        raise InvalidTransition(
            trade.id, trade.status.value, requested.value, "M-Pesa reference already set"
        )


def transition(
    trade: TradeRecord,
    new_status: TradeStatus | str,
    mpesa_reference: str | None = None,
    *,
    now: datetime | None = None,
) -> TradeRecord:
    """Return a copy of `trade` moved to `new_status`.

    Args:
        trade: Current trade record.
        new_status: Requested status.
        mpesa_reference: Payment confirmation id; only accepted when moving
            into ``paid``.
        now: Timestamp recorded as `updated_at`.

    Raises:
        InvalidTransition: if the state machine does not allow the move, or
            the reference is supplied for a non-``paid`` target or conflicts
            with one already recorded.
    """
    new = TradeStatus(new_status)
    if not can_transition(trade.status, new):
        reason = "terminal state" if trade.status in TERMINAL_STATES else None
        raise InvalidTransition(trade.id, trade.status.value, new.value, reason)

    update: dict[str, object] = {
        "status": new,
        "updated_at": now or datetime.now(timezone.utc),
    }
    if mpesa_reference is not None:
        if new is not TradeStatus.PAID:
            raise InvalidTransition(
                trade.id, trade.status.value, new.value, "M-Pesa reference requires paid"
            )
        _check_reference(trade, mpesa_reference, new)
        update["mpesa_reference"] = mpesa_reference

    return trade.model_copy(update=update)


def attach_mpesa_reference(
    trade: TradeRecord,
    mpesa_reference: str,
    *,
    now: datetime | None = None,
) -> TradeRecord:
    """Record the payment confirmation id on an already ``paid`` trade.

    Re-attaching the same reference is a no-op.
    """
    if trade.status is not TradeStatus.PAID:
        raise InvalidTransition(
            trade.id, trade.status.value, TradeStatus.PAID.value, "M-Pesa reference requires paid"
        )
    _check_reference(trade, mpesa_reference, TradeStatus.PAID)
    if trade.mpesa_reference == mpesa_reference:
        return trade
    return trade.model_copy(
        update={"mpesa_reference": mpesa_reference, "updated_at": now or datetime.now(timezone.utc)}
    )


def update_trade_status(
    store: ChapterStore,
    trade_id: str,
    new_status: TradeStatus | str,
    mpesa_reference: str | None = None,
    *,
    now: datetime | None = None,
) -> TradeRecord:
    """Validate and persist a status change (or a late M-Pesa reference).

    Calling with the trade's current status ``paid`` and a reference attaches
    the reference without a status change.

    Raises:
        NotFound: if the trade does not exist.
        InvalidTransition: if the change is not allowed, including when the
            stored status or M-Pesa reference changed between the read and
            the write.
        AggregationError: if the store cannot be read or written.
    """
    trade = store.get_trade(trade_id)
    if trade is None:
        raise NotFound("trade", trade_id)

    new = TradeStatus(new_status)
    if new is TradeStatus.PAID and trade.status is TradeStatus.PAID and mpesa_reference is not None:
        updated = attach_mpesa_reference(trade, mpesa_reference, now=now)
        if updated is trade:
            return trade
    else:
        updated = transition(trade, new, mpesa_reference, now=now)

    saved = store.save_trade_status(
        updated, expected=trade.status, expected_reference=trade.mpesa_reference
    )
    if not saved:
        current = store.get_trade(trade_id)
        if current is None:
            raise NotFound("trade", trade_id)
        raise InvalidTransition(
            trade_id, current.status.value, new.value, "trade changed concurrently"
        )

    log.info("Trade %s: %s -> %s", trade_id, trade.status.value, updated.status.value)
    return updated


def list_chapter_trades(
    store: ChapterStore,
    chapter_id: str,
    page: int = 1,
    limit: int = 20,
    status: TradeStatus | str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> TradePage:
    """Return one page of chapter trades, newest first.

    Payer and payee ids are resolved to member references; ids that no
    longer resolve show as ``Unknown``.

    Args:
        store: Record source.
        chapter_id: Chapter to list.
        page: 1-based page number.
        limit: Page size.
        status: Optional status filter.
        date_from: Inclusive lower bound on `created_at`.
        date_to: Exclusive upper bound on `created_at`.

    Raises:
        ValueError: on a non-positive page or limit.
        NotFound: if the chapter does not exist.
        AggregationError: if any underlying read fails.
    """
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    if store.get_chapter(chapter_id) is None:
        raise NotFound("chapter", chapter_id)

    wanted = TradeStatus(status) if status is not None else None
    trades = store.list_trades(
        chapter_id,
        start=date_from,
        end=date_to,
        status=wanted,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total = store.count_trades(chapter_id, start=date_from, end=date_to, status=wanted)

    ids = {t.user_id for t in trades}
    ids |= {t.source_member_id for t in trades if t.source_member_id}
    ids |= {t.beneficiary_member_id for t in trades if t.beneficiary_member_id}
    refs = {p.id: p.ref() for p in store.get_profiles(ids)}

    def ref(member_id: str | None) -> MemberRef | None:
        if member_id is None:
            return None
        return refs.get(member_id, UNKNOWN_MEMBER)

    out = [
        ChapterTrade(
            id=t.id,
            amount=t.amount,
            description=t.description,
            status=t.status,
            created_at=t.created_at,
            user=refs.get(t.user_id, UNKNOWN_MEMBER),
            source_member=ref(t.source_member_id),
            beneficiary_member=ref(t.beneficiary_member_id),
            mpesa_reference=t.mpesa_reference,
        )
        for t in trades
    ]
    return TradePage(trades=out, total_count=total)
