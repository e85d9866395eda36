"""
Portfolio Tracker - allocation rebalancing and trade-to-position reconciliation.

Exports:
    Asset: Dataclass for a rebalancer holding with a target weight in percent
    RebalanceResult: Weight, drift and recommended action for one asset
    Trade: Immutable buy/sell record
    Position: Net holding per (symbol, account) with weighted-average cost
    rebalance: Drift-band rebalancer (BUY / SELL / HOLD / SELL_ALL)
    compute_positions: Fold trade history into positions
    consolidate: Merge positions across accounts
    ingest_rows: Validate raw trade rows, collecting rejects
    TradeBook / apply_event: Snapshot state transitions over the trade list
    InvalidTradeError / QuoteUnavailable: Error types
"""

from .config import Action, Side, StrategyTag
from .exceptions import InvalidTradeError, QuoteUnavailable
from .models import Asset, Position, RawTradeRow, RebalanceResult, Trade
from .rebalancer import rebalance, unrealized_pnl
from .positions import compute_positions, consolidate, mark_to_market
from .loaders import ingest_rows, load_basket_file, read_basket_csv
from .ledger import TradeBook, apply_event

__all__ = [
    "Action",
    "Side",
    "StrategyTag",
    "InvalidTradeError",
    "QuoteUnavailable",
    "Asset",
    "Position",
    "RawTradeRow",
    "RebalanceResult",
    "Trade",
    "rebalance",
    "unrealized_pnl",
    "compute_positions",
    "consolidate",
    "mark_to_market",
    "ingest_rows",
    "load_basket_file",
    "read_basket_csv",
    "TradeBook",
    "apply_event",
]
