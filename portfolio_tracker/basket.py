"""Smart basket rebalancing for a single brokerage account.

Each strategy tag gets a share of the account's net liquidation value split
into equal slots (e.g. NDX: 50% over 5 names, RUI: 50% over 10 names). A
symbol that appears in the basket under several tags receives one slot from
each. Orders are whole units and always scoped to one (symbol, account).
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Optional

from .config import ALL_ACCOUNTS, Action, BasketConfig, Side, StrategyTag
from .models import Position, Trade


@dataclass(frozen=True)
class BasketOrder:
    """Preview of one symbol's rebalance within the selected account."""

    symbol: str
    account: str
    strategy_tags: tuple[str, ...]
    target_value: Decimal
    target_quantity: Decimal
    current_quantity: Decimal
    delta: Decimal
    action: Action
    price: Decimal

    def __str__(self) -> str:
        return (
            f"{self.action.value} {abs(self.delta)} {self.symbol} "
            f"({'+'.join(self.strategy_tags)}, target: ${self.target_value:.2f})"
        )


def slot_budgets(equity: Decimal, config: Optional[BasketConfig] = None) -> dict[str, Decimal]:
    """Dollar budget of a single slot for every strategy tag."""
    config = config or BasketConfig()
    return {
        tag.value: equity * share / Decimal(slots)
        for tag, (share, slots) in config.BUDGETS.items()
    }


def basket_rebalance(
    basket: Iterable[Trade],
    account: str,
    equity: Decimal,
    positions: Iterable[Position],
    config: Optional[BasketConfig] = None,
) -> list[BasketOrder]:
    """Compute whole-unit orders that bring one account in line with a basket.

    Args:
        basket: Basket rows; only symbol, strategy tag and price are used.
        account: The account to rebalance. Must not be the consolidated view.
        equity: Net liquidation value of that account.
        positions: Current positions; only those in ``account`` are considered.

    Raises:
        ValueError: If ``account`` is the consolidated ALL view or a basket
            row carries a tag with no configured budget.
    """
    if not account or account == ALL_ACCOUNTS:
        raise ValueError("Basket rebalancing needs a specific account, not the ALL view")

    budgets = slot_budgets(equity, config)
    held = {p.symbol: p.quantity for p in positions if p.account == account}

    tags_by_symbol: dict[str, set[str]] = {}
    price_by_symbol: dict[str, Decimal] = {}
    for trade in basket:
        if trade.strategy_tag not in budgets:
            raise ValueError(
                f"No basket budget for strategy tag {trade.strategy_tag!r}; "
                f"known tags are {', '.join(sorted(budgets))}"
            )
        tags_by_symbol.setdefault(trade.symbol, set()).add(trade.strategy_tag)
        price_by_symbol.setdefault(trade.symbol, trade.price)

    orders: list[BasketOrder] = []
    for symbol, tags in tags_by_symbol.items():
        target_value = sum((budgets[t] for t in tags), start=Decimal("0"))
        price = price_by_symbol[symbol]
        effective_price = price if price > 0 else Decimal("1")
        target_qty = (target_value / effective_price).to_integral_value(rounding=ROUND_FLOOR)
        current_qty = held.get(symbol, Decimal("0"))
        delta = target_qty - current_qty

        if delta > 0:
            action = Action.BUY
        elif delta < 0:
            action = Action.SELL
        else:
            action = Action.HOLD

        orders.append(
            BasketOrder(
                symbol=symbol,
                account=account,
                strategy_tags=tuple(sorted(tags)),
                target_value=target_value,
                target_quantity=target_qty,
                current_quantity=current_qty,
                delta=delta,
                action=action,
                price=price,
            )
        )

    return orders


def orders_to_trades(
    orders: Iterable[BasketOrder], trade_date: date, imported_at: Optional[datetime] = None
) -> list[Trade]:
    """Book accepted basket orders as trades, skipping HOLDs.

    Symbols shared by several systems are booked under NDX when it is one of them.
    """
    imported_at = imported_at or datetime.now()
    trades: list[Trade] = []
    for order in orders:
        if order.action is Action.HOLD:
            continue
        tag = (
            StrategyTag.NDX.value
            if StrategyTag.NDX.value in order.strategy_tags
            else order.strategy_tags[0]
        )
        trades.append(
            Trade(
                id=uuid.uuid4().hex,
                date=trade_date,
                account=order.account,
                strategy_tag=tag,
                symbol=order.symbol,
                side=Side.BUY if order.action is Action.BUY else Side.SELL,
                quantity=abs(order.delta),
                price=order.price,
                imported_at=imported_at,
            )
        )
    return trades
