"""Drift-band allocation rebalancer.

For every asset the rebalancer compares its share of the portfolio (holdings
plus cash) with a target weight in percent and recommends one action:

    SELL_ALL  target weight is 0 and units are held (ignores the drift band)
    HOLD      |delta| is at most the hold band (default $1)
    BUY/SELL  drift >= threshold (default 5 percentage points)
    HOLD      otherwise

Target weights do not have to sum to 100; under- or over-allocation simply
produces systematic BUY or SELL pressure.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from .config import Action, RebalanceConfig
from .models import Asset, RebalanceResult, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def portfolio_total(assets: Iterable[Asset], cash: Decimal | str | None = None) -> Decimal:
    """Sum of asset market values plus cash."""
    return sum((a.market_value for a in assets), start=Decimal("0")) + to_decimal(cash)


def cost_basis(assets: Iterable[Asset]) -> Decimal:
    return sum((a.cost_basis for a in assets), start=Decimal("0"))


def unrealized_pnl(assets: list[Asset]) -> Decimal:
    """Market value minus cost basis across all assets, independent of actions."""
    market = sum((a.market_value for a in assets), start=Decimal("0"))
    return market - cost_basis(assets)


def rebalance(
    assets: list[Asset],
    cash: Decimal | str | None = None,
    drift_threshold: Optional[Decimal] = None,
    config: Optional[RebalanceConfig] = None,
) -> list[RebalanceResult]:
    """Compute current weight, drift and recommended action for each asset.

    Args:
        assets: Holdings with target weights in percent.
        cash: Uninvested cash counted towards the portfolio total.
        drift_threshold: Minimum drift in percentage points before trading.
            Defaults to RebalanceConfig.DRIFT_THRESHOLD.
        config: Threshold overrides.

    Returns:
        One RebalanceResult per asset in input order, or an empty list when the
        portfolio total is zero.
    """
    config = config or RebalanceConfig()
    threshold = (
        to_decimal(drift_threshold) if drift_threshold is not None else config.DRIFT_THRESHOLD
    )

    total = portfolio_total(assets, cash)
    if total == 0:
        return []  # No meaningful weights for an empty portfolio

    results: list[RebalanceResult] = []

    for asset in assets:
        price = to_decimal(asset.price)
        units = to_decimal(asset.units)
        target_weight = to_decimal(asset.target_weight)

        current_value = price * units
        current_weight = current_value / total * HUNDRED
        target_value = total * target_weight / HUNDRED
        delta = target_value - current_value
        drift = abs(current_weight - target_weight)

        effective_price = price if price > 0 else Decimal("1")
        action_units = Decimal("0")

        if target_weight == 0 and units > 0:
            action = Action.SELL_ALL
            action_units = units
        elif abs(delta) <= config.HOLD_BAND:
            action = Action.HOLD
        elif drift >= threshold:
            action = Action.BUY if delta > 0 else Action.SELL
            action_units = abs(delta) / effective_price
        else:
            action = Action.HOLD

        results.append(
            RebalanceResult(
                asset_id=asset.id,
                current_value=current_value,
                current_weight=current_weight,
                target_weight=target_weight,
                target_value=target_value,
                delta=delta,
                drift=drift,
                action=action,
                action_units=action_units,
            )
        )

    logger.debug(
        "Rebalanced %d assets (total %s, threshold %s)", len(results), total, threshold
    )
    return results
