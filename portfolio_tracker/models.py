"""Data models for the portfolio tracker."""

import dataclasses
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal, Mapping, Optional

from .config import Action, Side
from .exceptions import InvalidTradeError

RowSource = Literal["csv", "broker", "manual", "store"]


def to_decimal(value: Any) -> Decimal:
    """Parse a loosely typed form value, treating anything unusable as zero."""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return Decimal("0")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return Decimal("0")
    if not parsed.is_finite():
        return Decimal("0")
    return parsed


@dataclass
class Asset:
    """A rebalancer holding with its target weight in percent (0-100)."""

    id: str
    target_weight: Decimal
    price: Decimal
    units: Decimal
    average_cost: Decimal = Decimal("0")
    locked: bool = False
    ticker: str = ""
    name: str = ""
    currency: str = ""

    @property
    def market_value(self) -> Decimal:
        return to_decimal(self.price) * to_decimal(self.units)

    @property
    def cost_basis(self) -> Decimal:
        return to_decimal(self.average_cost) * to_decimal(self.units)

    def update_price(self, price: Decimal, currency: str = "") -> None:
        self.price = price
        if currency:
            self.currency = currency

    @classmethod
    def from_form(cls, data: Mapping[str, Any]) -> "Asset":
        """Build an asset from form or JSON input where numbers may be strings or blank."""
        return cls(
            id=str(data.get("id") or data.get("ticker") or ""),
            target_weight=to_decimal(data.get("target_weight", data.get("targetWeight"))),
            price=to_decimal(data.get("price")),
            units=to_decimal(data.get("units")),
            average_cost=to_decimal(data.get("average_cost", data.get("averagePrice"))),
            locked=bool(data.get("locked", data.get("isLocked", False))),
            ticker=str(data.get("ticker") or ""),
            name=str(data.get("name") or ""),
            currency=str(data.get("currency") or ""),
        )


@dataclass(frozen=True)
class RebalanceResult:
    """Derived weights, drift and recommended action for one asset."""

    asset_id: str
    current_value: Decimal
    current_weight: Decimal
    target_weight: Decimal
    target_value: Decimal
    delta: Decimal
    drift: Decimal
    action: Action
    action_units: Decimal

    def __str__(self) -> str:
        return (
            f"{self.action.value} {self.action_units:.4f} {self.asset_id} "
            f"(weight: {self.current_weight:.2f}% -> {self.target_weight:.2f}%, "
            f"delta: ${self.delta:.2f})"
        )


@dataclass(frozen=True)
class RawTradeRow:
    """An unvalidated trade row as read from a CSV file, broker feed or store."""

    source: RowSource
    fields: Mapping[str, Any]
    row: Optional[int] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


@dataclass(frozen=True)
class Trade:
    """An immutable buy or sell record."""

    id: str
    date: date
    account: str
    strategy_tag: str
    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    imported_at: datetime
    execution_id: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.date, datetime) or not isinstance(self.date, date):
            raise InvalidTradeError(f"Trade date must be a date, got {self.date!r}")
        if not isinstance(self.imported_at, datetime):
            raise InvalidTradeError(f"Import time must be a datetime, got {self.imported_at!r}")
        if not isinstance(self.side, Side):
            raise InvalidTradeError(f"Unknown trade action: {self.side!r}")
        if not self.symbol:
            raise InvalidTradeError("Trade has no symbol")
        if self.quantity <= 0:
            raise InvalidTradeError(
                f"Quantity for {self.symbol} must be positive, got {self.quantity}"
            )
        if self.price < 0:
            raise InvalidTradeError(
                f"Price for {self.symbol} must not be negative, got {self.price}"
            )

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.price

    def replace(self, **changes: Any) -> "Trade":
        """Return an edited copy; validation runs again on the new values."""
        return dataclasses.replace(self, **changes)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "account": self.account,
            "strategy_tag": self.strategy_tag,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "total_value": str(self.total_value),
            "imported_at": self.imported_at.isoformat(),
            "execution_id": self.execution_id,
        }

    def __str__(self) -> str:
        return (
            f"{self.date} {self.side.value} {self.quantity} {self.symbol} "
            f"@ ${self.price:.2f} [{self.account}/{self.strategy_tag}]"
        )


@dataclass(frozen=True)
class Position:
    """Net holding of one symbol in one account, derived from trade history.

    The total cost basis is stored and the average cost derived from it.
    """

    symbol: str
    account: str
    quantity: Decimal
    cost_basis: Decimal
    strategy_tags: frozenset[str] = field(default_factory=frozenset)

    @property
    def average_cost(self) -> Decimal:
        return self.cost_basis / self.quantity if self.quantity else Decimal("0")

    def to_record(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "account": self.account,
            "quantity": str(self.quantity),
            "average_cost": str(self.average_cost),
            "cost_basis": str(self.cost_basis),
            "strategy_tags": sorted(self.strategy_tags),
        }


@dataclass(frozen=True)
class PositionValuation:
    """A position marked at a live price."""

    position: Position
    price: Decimal
    market_value: Decimal
    pnl: Decimal
    pnl_percent: Optional[Decimal]
