"""Trade book snapshots and the events that move between them.

Every event produces a new TradeBook whose positions are recomputed from the
full trade list; positions are never patched incrementally.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from .loaders import SIDE_ALIASES, parse_trade_date, parse_timestamp
from .models import Position, Trade, to_decimal
from .positions import compute_positions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradeBook:
    """Immutable snapshot of trades, derived positions and cash."""

    trades: tuple[Trade, ...] = ()
    positions: tuple[Position, ...] = ()
    cash_balance: Decimal = Decimal("0")

    @classmethod
    def from_trades(cls, trades: Iterable[Trade], cash_balance: Decimal = Decimal("0")) -> "TradeBook":
        trades = tuple(trades)
        return cls(
            trades=trades,
            positions=tuple(compute_positions(trades)),
            cash_balance=cash_balance,
        )

    def trade(self, trade_id: str) -> Optional[Trade]:
        return next((t for t in self.trades if t.id == trade_id), None)


@dataclass(frozen=True)
class ImportTrades:
    trades: tuple[Trade, ...]


@dataclass(frozen=True)
class EditTrade:
    trade_id: str
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteTrade:
    trade_id: str


@dataclass(frozen=True)
class DeletePosition:
    """Drop every trade for a symbol, in one account or in all of them."""

    symbol: str
    account: Optional[str] = None


@dataclass(frozen=True)
class SetCash:
    amount: Decimal


@dataclass(frozen=True)
class ClearAll:
    pass


Event = Union[ImportTrades, EditTrade, DeleteTrade, DeletePosition, SetCash, ClearAll]


def new_trades(existing: Iterable[Trade], incoming: Iterable[Trade]) -> list[Trade]:
    """Incoming trades whose id or broker execution id is not already booked."""
    seen_ids: set[str] = set()
    seen_executions: set[str] = set()
    for trade in existing:
        seen_ids.add(trade.id)
        if trade.execution_id:
            seen_executions.add(trade.execution_id)

    fresh: list[Trade] = []
    for trade in incoming:
        if trade.id in seen_ids or (
            trade.execution_id and trade.execution_id in seen_executions
        ):
            logger.debug("Skipping duplicate trade %s", trade.execution_id or trade.id)
            continue
        seen_ids.add(trade.id)
        if trade.execution_id:
            seen_executions.add(trade.execution_id)
        fresh.append(trade)

    return fresh


def _edit(trades: tuple[Trade, ...], trade_id: str, changes: Mapping[str, Any]) -> list[Trade]:
    if "id" in changes:
        raise ValueError("A trade's id cannot be edited")
    if not any(t.id == trade_id for t in trades):
        raise ValueError(f"No trade with id {trade_id}")

    updates = dict(changes)
    for key in ("quantity", "price"):
        if key in updates:
            updates[key] = to_decimal(updates[key])
    if isinstance(updates.get("side"), str):
        updates["side"] = SIDE_ALIASES.get(updates["side"].strip().upper(), updates["side"])
    if "date" in updates:
        updates["date"] = parse_trade_date(updates["date"])

    edited: list[Trade] = []
    for trade in trades:
        if trade.id != trade_id:
            edited.append(trade)
            continue
        if "imported_at" in updates:
            updates["imported_at"] = parse_timestamp(updates["imported_at"], trade.imported_at)
        edited.append(trade.replace(**updates))
    return edited


def apply_event(book: TradeBook, event: Event) -> TradeBook:
    """Return the book that results from applying ``event`` to ``book``.

    Raises:
        InvalidTradeError: If an edit would produce an invalid trade.
        ValueError: If an edit or delete names an unknown trade.
    """
    if isinstance(event, ImportTrades):
        fresh = new_trades(book.trades, event.trades)
        logger.info("Importing %d of %d trades", len(fresh), len(event.trades))
        return TradeBook.from_trades(book.trades + tuple(fresh), book.cash_balance)

    if isinstance(event, EditTrade):
        return TradeBook.from_trades(
            _edit(book.trades, event.trade_id, event.changes), book.cash_balance
        )

    if isinstance(event, DeleteTrade):
        if book.trade(event.trade_id) is None:
            raise ValueError(f"No trade with id {event.trade_id}")
        return TradeBook.from_trades(
            (t for t in book.trades if t.id != event.trade_id), book.cash_balance
        )

    if isinstance(event, DeletePosition):
        return TradeBook.from_trades(
            (
                t
                for t in book.trades
                if not (
                    t.symbol == event.symbol
                    and (event.account is None or t.account == event.account)
                )
            ),
            book.cash_balance,
        )

    if isinstance(event, SetCash):
        return TradeBook(
            trades=book.trades, positions=book.positions, cash_balance=to_decimal(event.amount)
        )

    if isinstance(event, ClearAll):
        return TradeBook()

    raise ValueError(f"Unknown event: {event!r}")
