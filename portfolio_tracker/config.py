"""Configuration constants for the portfolio tracker."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Side(Enum):
    """Direction of a recorded trade."""

    BUY = "BUY"
    SELL = "SELL"


class Action(Enum):
    """Recommended rebalancing action for a single asset."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    SELL_ALL = "SELL_ALL"


class StrategyTag(Enum):
    """Known trading systems a trade can be tagged with."""

    NDX = "NDX"
    RUI = "RUI"


# Account label used for views merged across every account
ALL_ACCOUNTS = "ALL"


@dataclass(frozen=True)
class RebalanceConfig:
    """Thresholds for the allocation rebalancer."""

    DRIFT_THRESHOLD: Decimal = Decimal("5")
    HOLD_BAND: Decimal = Decimal("1")


@dataclass(frozen=True)
class QuoteConfig:
    """Configuration for the quote source and price cache."""

    BASE_URL: str = "https://query1.finance.yahoo.com/v8/finance/chart"
    USER_AGENT: str = "Mozilla/5.0"
    REQUEST_TIMEOUT_S: int = 5
    CACHE_TTL_S: int = 600
    REPORTING_CURRENCY: str = "USD"
    DEFAULT_EURUSD: Decimal = Decimal("1.083")
    DEFAULT_GBPUSD: Decimal = Decimal("1.25")
    # Quoted in USD whatever the listing currency says; these assets are locked on refresh
    USD_TICKER_KEYWORDS: tuple[str, ...] = ("IGLN",)
    USD_ASSET_IDS: tuple[str, ...] = ("gold",)


@dataclass(frozen=True)
class BasketConfig:
    """Budget share and number of equal-weight slots per strategy tag."""

    BUDGETS: dict[StrategyTag, tuple[Decimal, int]] = field(
        default_factory=lambda: {
            StrategyTag.NDX: (Decimal("0.5"), 5),
            StrategyTag.RUI: (Decimal("0.5"), 10),
        }
    )


@dataclass(frozen=True)
class ImportConfig:
    """Column layout and fallbacks for IBKR basket CSV imports."""

    DEFAULT_ACCOUNT: str = "DEFAULT"
    DEFAULT_TAG: StrategyTag = StrategyTag.RUI
    ACTION_COLUMN: int = 0
    QUANTITY_COLUMN: int = 1
    SYMBOL_COLUMN: int = 2
    PRICE_COLUMN: int = 10
    TAG_COLUMN: int = 15
    ACCOUNT_COLUMN: int = 16
