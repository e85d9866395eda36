"""Loaders that turn raw trade rows into validated trades.

Rows arrive from three places: IBKR Basket Trader CSV exports, live broker
execution reports and previously stored records. Each is wrapped in a
RawTradeRow and converted to a Trade by parse_trade_row(); malformed rows are
collected as rejections instead of aborting the batch.
"""

import csv
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from .config import ImportConfig, Side
from .detection import detect_account, detect_strategy_tag, detect_trade_date
from .exceptions import InvalidTradeError
from .models import RawTradeRow, Trade, to_decimal

logger = logging.getLogger(__name__)

# Broker execution reports use BOT/SLD for the side
SIDE_ALIASES: dict[str, Side] = {
    "BUY": Side.BUY,
    "BOT": Side.BUY,
    "SELL": Side.SELL,
    "SLD": Side.SELL,
}


@dataclass
class IngestResult:
    """Trades that passed validation and the errors for rows that did not."""

    trades: list[Trade] = field(default_factory=list)
    rejected: list[InvalidTradeError] = field(default_factory=list)


def read_basket_csv(
    content: str, filename: str = "", config: Optional[ImportConfig] = None
) -> list[RawTradeRow]:
    """Split an IBKR Basket Trader export into raw rows.

    Expected columns: Action,Quantity,Symbol,SecType,Exchange,Currency,
    TimeInForce,GoodTilDate,GoodAfterTime,OrderType,LmtPrice,AuxPrice,
    OcaGroup,OrderId,ParentOrderId,BasketTag,Account
    """
    config = config or ImportConfig()
    lines = content.strip().splitlines()
    if not lines:
        return []

    start = 1 if "action" in lines[0].lower() else 0
    rows: list[RawTradeRow] = []

    for index, cols in enumerate(csv.reader(lines[start:]), start=start + 1):
        cols = [c.strip().replace('"', "") for c in cols]
        if not any(cols):
            continue

        def col(i: int) -> str:
            return cols[i] if i < len(cols) else ""

        rows.append(
            RawTradeRow(
                source="csv",
                row=index,
                fields={
                    "side": col(config.ACTION_COLUMN),
                    "quantity": col(config.QUANTITY_COLUMN),
                    "symbol": col(config.SYMBOL_COLUMN),
                    "price": col(config.PRICE_COLUMN),
                    "tag": col(config.TAG_COLUMN),
                    "account": col(config.ACCOUNT_COLUMN),
                    "filename": filename,
                },
            )
        )

    return rows


def execution_rows(executions: Iterable[Mapping[str, Any]]) -> list[RawTradeRow]:
    """Wrap broker execution reports (execId, time, acctNumber, side, shares, ...)."""
    return [
        RawTradeRow(
            source="broker",
            row=index,
            fields={
                "execution_id": e.get("execId"),
                "date": e.get("time"),
                "account": e.get("acctNumber") or "",
                "side": e.get("side"),
                "quantity": e.get("shares"),
                "price": e.get("avgPrice") or e.get("price"),
                "symbol": e.get("symbol"),
                "tag": e.get("orderRef") or "",
            },
        )
        for index, e in enumerate(executions, start=1)
    ]


def store_rows(records: Iterable[Mapping[str, Any]]) -> list[RawTradeRow]:
    return [
        RawTradeRow(source="store", row=index, fields=record)
        for index, record in enumerate(records, start=1)
    ]


def _parse_side(value: Any, row: Optional[int]) -> Side:
    side = SIDE_ALIASES.get(str(value or "").strip().upper())
    if side is None:
        raise InvalidTradeError(f"Unknown trade action: {value!r}", row=row)
    return side


def parse_trade_date(value: Any, row: Optional[int] = None) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        # Broker timestamps look like "20260102  15:30:01"
        return datetime.strptime(text[:8], "%Y%m%d").date()
    except ValueError:
        raise InvalidTradeError(f"Unparseable trade date: {value!r}", row=row) from None


def parse_timestamp(value: Any, fallback: datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if value:
        try:
            return datetime.fromisoformat(str(value))
        except ValueError:
            logger.warning("Bad import timestamp %r, using %s", value, fallback)
    return fallback


def parse_trade_row(
    raw: RawTradeRow,
    config: Optional[ImportConfig] = None,
    now: Optional[datetime] = None,
) -> Trade:
    """Validate one raw row and convert it to a Trade.

    Raises:
        InvalidTradeError: If the action is unknown, the symbol is missing or
            the quantity is not positive.
    """
    config = config or ImportConfig()
    now = now or datetime.now()
    filename = str(raw.get("filename") or "")

    side = _parse_side(raw.get("side"), raw.row)
    symbol = str(raw.get("symbol") or "").strip().upper()
    if not symbol:
        raise InvalidTradeError("Missing symbol", row=raw.row)

    quantity = to_decimal(raw.get("quantity"))
    if quantity <= 0:
        raise InvalidTradeError(
            f"Quantity for {symbol} must be positive, got {raw.get('quantity')!r}",
            row=raw.row,
        )
    price = to_decimal(raw.get("price"))
    if price < 0:
        raise InvalidTradeError(f"Negative price for {symbol}: {price}", row=raw.row)

    raw_date = raw.get("date")
    trade_date = (
        parse_trade_date(raw_date, raw.row)
        if raw_date
        else detect_trade_date(filename, today=now.date())
    )
    strategy_tag = raw.get("strategy_tag") or detect_strategy_tag(
        str(raw.get("tag") or ""), filename, config
    ).value
    execution_id = raw.get("execution_id")

    return Trade(
        id=str(raw.get("id") or uuid.uuid4().hex),
        date=trade_date,
        account=detect_account(str(raw.get("account") or ""), filename, config),
        strategy_tag=str(strategy_tag),
        symbol=symbol,
        side=side,
        quantity=quantity,
        price=price,
        imported_at=parse_timestamp(raw.get("imported_at"), now),
        execution_id=str(execution_id) if execution_id else None,
    )


def ingest_rows(
    rows: Iterable[RawTradeRow],
    config: Optional[ImportConfig] = None,
    now: Optional[datetime] = None,
) -> IngestResult:
    """Convert a batch of rows, skipping the ones that fail validation."""
    result = IngestResult()
    now = now or datetime.now()

    for raw in rows:
        try:
            result.trades.append(parse_trade_row(raw, config, now))
        except InvalidTradeError as e:
            logger.warning("Skipping %s trade: %s", raw.source, e)
            result.rejected.append(e)

    return result


def load_basket_file(path: Path | str, config: Optional[ImportConfig] = None) -> IngestResult:
    """Read and ingest a basket CSV; the filename feeds tag, account and date detection."""
    path = Path(path)
    rows = read_basket_csv(path.read_text(encoding="utf-8"), path.name, config)
    return ingest_rows(rows, config)
