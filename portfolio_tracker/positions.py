"""Fold trade history into positions and build consolidated views."""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from .config import ALL_ACCOUNTS, Side
from .exceptions import InvalidTradeError
from .models import Position, PositionValuation, Trade

logger = logging.getLogger(__name__)

PositionKey = tuple[str, str]


def _apply_trade(position: Optional[Position], trade: Trade) -> Optional[Position]:
    """Return the position after one trade, or None once it is closed."""
    if trade.side is Side.BUY:
        if position is None:
            return Position(
                symbol=trade.symbol,
                account=trade.account,
                quantity=trade.quantity,
                cost_basis=trade.quantity * trade.price,
                strategy_tags=frozenset({trade.strategy_tag}),
            )
        return Position(
            symbol=position.symbol,
            account=position.account,
            quantity=position.quantity + trade.quantity,
            cost_basis=position.cost_basis + trade.quantity * trade.price,
            strategy_tags=position.strategy_tags | {trade.strategy_tag},
        )

    if trade.side is Side.SELL:
        if position is None:
            logger.warning(
                "Ignoring SELL of %s in %s with no open position", trade.symbol, trade.account
            )
            return None
        quantity = position.quantity - trade.quantity
        if quantity <= 0:
            return None
        # Selling leaves the blended cost untouched
        return Position(
            symbol=position.symbol,
            account=position.account,
            quantity=quantity,
            cost_basis=position.cost_basis * quantity / position.quantity,
            strategy_tags=position.strategy_tags,
        )

    raise InvalidTradeError(f"Unknown trade action: {trade.side!r}")


def compute_positions(trades: Iterable[Trade]) -> list[Position]:
    """Recompute every open position from the full trade history.

    Trades are applied in ascending date order; trades on the same date keep
    their input order. The result is sorted by (symbol, account), so calling
    this twice with the same trades yields equal output.
    """
    book: dict[PositionKey, Position] = {}
    ordered = sorted(trades, key=lambda t: t.date)

    for trade in ordered:
        key = (trade.symbol, trade.account)
        updated = _apply_trade(book.get(key), trade)
        if updated is None:
            book.pop(key, None)
        else:
            book[key] = updated

    logger.debug("Computed %d positions from %d trades", len(book), len(ordered))
    return [book[key] for key in sorted(book)]


def _merge(symbol: str, group: list[Position]) -> Position:
    quantity = sum((p.quantity for p in group), start=Decimal("0"))
    cost = sum((p.cost_basis for p in group), start=Decimal("0"))
    tags: frozenset[str] = frozenset().union(*(p.strategy_tags for p in group))
    return Position(
        symbol=symbol,
        account=ALL_ACCOUNTS,
        quantity=quantity,
        cost_basis=cost,
        strategy_tags=tags,
    )


def consolidate(positions: Iterable[Position]) -> list[Position]:
    """Merge positions sharing a symbol across accounts.

    Quantities and cost bases are summed, so the average cost is the
    quantity-weighted mean and nested merges give the same result as a single
    one. Strategy tags are unioned. The merge does not depend on input order.
    """
    groups: dict[str, list[Position]] = {}
    for position in positions:
        groups.setdefault(position.symbol, []).append(position)

    return [
        _merge(symbol, sorted(group, key=lambda p: (p.account, p.quantity, p.cost_basis)))
        for symbol, group in sorted(groups.items())
    ]


def positions_for_account(positions: Iterable[Position], account: str) -> list[Position]:
    """Positions held in one account, or all of them consolidated for ALL."""
    if account == ALL_ACCOUNTS:
        return consolidate(positions)
    return [p for p in positions if p.account == account]


def positions_for_tag(positions: Iterable[Position], tag: Optional[str]) -> list[Position]:
    if tag is None or tag == ALL_ACCOUNTS:
        return list(positions)
    return [p for p in positions if tag in p.strategy_tags]


def trades_for_tag(trades: Iterable[Trade], tag: Optional[str]) -> list[Trade]:
    if tag is None or tag == ALL_ACCOUNTS:
        return list(trades)
    return [t for t in trades if t.strategy_tag == tag]


def mark_to_market(position: Position, price: Decimal) -> PositionValuation:
    """Value a position at a live price."""
    market_value = price * position.quantity
    pnl = market_value - position.cost_basis
    pnl_percent = (
        pnl / position.cost_basis * Decimal("100")
        if position.cost_basis
        else None
    )
    return PositionValuation(
        position=position,
        price=price,
        market_value=market_value,
        pnl=pnl,
        pnl_percent=pnl_percent,
    )
