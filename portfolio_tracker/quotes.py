"""Quote fetching, short-lived price caching and FX conversion."""

import json
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Optional, Protocol
from urllib.parse import quote as url_quote
from urllib.request import Request, urlopen

from .config import QuoteConfig
from .exceptions import QuoteUnavailable
from .models import Asset, Position, PositionValuation, to_decimal
from .positions import mark_to_market

logger = logging.getLogger(__name__)

# Tickers the quote provider lists under a different symbol
SYMBOL_ALIASES: dict[str, str] = {"BTC": "BTC-USD"}

FX_SYMBOLS: dict[str, str] = {"EUR": "EURUSD=X", "GBP": "GBPUSD=X"}


@dataclass(frozen=True)
class Quote:
    symbol: str
    price: Decimal
    currency: str


class QuoteSource(Protocol):
    def fetch_quote(self, symbol: str) -> Quote: ...


class YahooQuoteSource:
    """Reads the last price and currency from the Yahoo chart endpoint."""

    def __init__(self, config: Optional[QuoteConfig] = None) -> None:
        self.config = config or QuoteConfig()

    def fetch_quote(self, symbol: str) -> Quote:
        ticker = SYMBOL_ALIASES.get(symbol, symbol)
        req = Request(
            f"{self.config.BASE_URL}/{url_quote(ticker)}?interval=1d&range=2d",
            headers={"User-Agent": self.config.USER_AGENT},
        )
        try:
            data = json.loads(urlopen(req, timeout=self.config.REQUEST_TIMEOUT_S).read())
            meta = data["chart"]["result"][0]["meta"]
        except (OSError, ValueError, KeyError, IndexError, TypeError) as e:
            raise QuoteUnavailable(symbol, str(e)) from e

        price = to_decimal(
            meta.get("regularMarketPrice")
            or meta.get("chartPreviousClose")
            or meta.get("previousClose")
        )
        if price <= 0:
            raise QuoteUnavailable(symbol, "no price in response")
        return Quote(symbol=symbol, price=price, currency=meta.get("currency") or "")


class PriceCache:
    """In-memory quotes that expire after ``ttl`` seconds."""

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Quote]] = {}

    def get(self, symbol: str) -> Optional[Quote]:
        entry = self._entries.get(symbol)
        if entry is None:
            return None
        stored_at, cached = entry
        if self._clock() - stored_at >= self.ttl:
            del self._entries[symbol]
            return None
        return cached

    def put(self, cached: Quote) -> None:
        self._entries[cached.symbol] = (self._clock(), cached)


class CachedQuoteSource:
    """Serves quotes from a PriceCache before asking the wrapped source."""

    def __init__(
        self,
        source: QuoteSource,
        cache: Optional[PriceCache] = None,
        config: Optional[QuoteConfig] = None,
    ) -> None:
        config = config or QuoteConfig()
        self.source = source
        self.cache = cache or PriceCache(config.CACHE_TTL_S)

    def fetch_quote(self, symbol: str) -> Quote:
        cached = self.cache.get(symbol)
        if cached is not None:
            return cached
        fresh = self.source.fetch_quote(symbol)
        self.cache.put(fresh)
        return fresh


def fetch_fx_rates(source: QuoteSource, config: Optional[QuoteConfig] = None) -> dict[str, Decimal]:
    """USD rates for EUR and GBP, falling back to configured defaults."""
    config = config or QuoteConfig()
    rates = {"EUR": config.DEFAULT_EURUSD, "GBP": config.DEFAULT_GBPUSD}

    for currency, symbol in FX_SYMBOLS.items():
        try:
            rates[currency] = source.fetch_quote(symbol).price
        except QuoteUnavailable as e:
            logger.warning("FX rate %s unavailable, using %s: %s", symbol, rates[currency], e)

    return rates


def convert_to_reporting(price: Decimal, currency: str, rates: dict[str, Decimal]) -> Decimal:
    """Convert a quoted price to USD. GBp is quoted in pence."""
    if currency == "GBp":
        return price / Decimal("100") * rates["GBP"]
    if currency in rates:
        return price * rates[currency]
    return price


def _quoted_in_usd(asset: Asset, symbol: str, config: QuoteConfig) -> bool:
    return asset.id in config.USD_ASSET_IDS or any(
        k in symbol.upper() for k in config.USD_TICKER_KEYWORDS
    )


def refresh_asset_prices(
    assets: list[Asset],
    source: QuoteSource,
    rates: Optional[dict[str, Decimal]] = None,
    config: Optional[QuoteConfig] = None,
) -> list[str]:
    """Update asset prices in place from live quotes.

    Locked assets, and assets configured as quoted in USD (which become
    locked), take the quoted price as-is. When a quote is unavailable the
    asset keeps its last known price.

    Returns:
        Ids of assets that kept their previous price.
    """
    config = config or QuoteConfig()
    rates = rates if rates is not None else fetch_fx_rates(source, config)
    stale: list[str] = []

    for asset in assets:
        symbol = (asset.ticker or asset.id).strip()
        try:
            live = source.fetch_quote(symbol)
        except QuoteUnavailable as e:
            logger.warning("Keeping last price %s for %s: %s", asset.price, asset.id, e)
            stale.append(asset.id)
            continue

        if asset.locked or _quoted_in_usd(asset, symbol, config):
            asset.locked = True
            asset.update_price(live.price, config.REPORTING_CURRENCY)
        else:
            asset.update_price(convert_to_reporting(live.price, live.currency, rates), live.currency)

    return stale


def value_positions(positions: Iterable[Position], source: QuoteSource) -> list[PositionValuation]:
    """Mark positions at live prices; positions without a quote are left out."""
    valuations: list[PositionValuation] = []
    for position in positions:
        try:
            live = source.fetch_quote(position.symbol)
        except QuoteUnavailable as e:
            logger.warning("No live price for %s: %s", position.symbol, e)
            continue
        valuations.append(mark_to_market(position, live.price))
    return valuations
