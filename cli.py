#!/usr/bin/env python3
import argparse
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from portfolio_tracker import (
    Action,
    Asset,
    Position,
    RebalanceResult,
    TradeBook,
    apply_event,
    consolidate,
    load_basket_file,
    rebalance,
    unrealized_pnl,
)
from portfolio_tracker.basket import BasketOrder, basket_rebalance
from portfolio_tracker.config import ALL_ACCOUNTS, RebalanceConfig
from portfolio_tracker.exceptions import CorruptStoreError
from portfolio_tracker.ledger import ImportTrades
from portfolio_tracker.models import to_decimal
from portfolio_tracker.positions import positions_for_account, positions_for_tag
from portfolio_tracker.quotes import CachedQuoteSource, YahooQuoteSource, refresh_asset_prices
from portfolio_tracker.rebalancer import portfolio_total
from portfolio_tracker.store import JsonFileStore, load_book, save_book

logger = logging.getLogger(__name__)
console = Console()

ACTION_STYLES: dict[Action, str] = {
    Action.BUY: "green",
    Action.SELL: "red",
    Action.SELL_ALL: "bold red",
    Action.HOLD: "dim",
}


def _drift_color(drift: Decimal, threshold: Decimal) -> str:
    """Green inside the tolerance band, yellow near it, red beyond it."""
    if drift < threshold / 2:
        return "green"
    return "red" if drift >= threshold else "yellow"


def load_assets(path: Path) -> tuple[list[Asset], Decimal]:
    """Read ``{"cash": ..., "assets": [...]}`` or a bare list of assets."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        return [Asset.from_form(a) for a in data], Decimal("0")
    return [Asset.from_form(a) for a in data.get("assets", [])], to_decimal(data.get("cash"))


def rebalance_table(
    assets: list[Asset], results: list[RebalanceResult], threshold: Decimal
) -> Table:
    """Build a Rich table of current vs target weights and actions."""
    t = Table(title="Rebalance", box=box.ROUNDED, title_style="bold white")
    t.add_column("Asset", style="cyan")
    t.add_column("Value", justify="right")
    t.add_column("Weight", justify="right", style="yellow")
    t.add_column("Target", justify="right", style="green")
    t.add_column("Drift", justify="right")
    t.add_column("Delta", justify="right")
    t.add_column("Action", no_wrap=True)
    t.add_column("Units", justify="right")

    names = {a.id: a.name or a.ticker or a.id for a in assets}
    for r in results:
        t.add_row(
            names.get(r.asset_id, r.asset_id),
            f"${r.current_value:,.2f}",
            f"{r.current_weight:.1f}%",
            f"{r.target_weight:.1f}%",
            Text(f"{r.drift:.1f}", style=_drift_color(r.drift, threshold)),
            f"${r.delta:,.2f}",
            Text(r.action.value.replace("_", " "), style=ACTION_STYLES[r.action]),
            f"{r.action_units:,.4f}" if r.action_units else "",
        )
    return t


def positions_table(positions: list[Position], title: str) -> Table:
    """Build a Rich table of positions with weighted-average cost."""
    t = Table(title=title, box=box.ROUNDED, title_style="bold white")
    t.add_column("Symbol", style="cyan")
    t.add_column("Account")
    t.add_column("Systems")
    t.add_column("Qty", justify="right")
    t.add_column("Avg Cost", justify="right")
    t.add_column("Cost Basis", justify="right")

    total = Decimal("0")
    for p in positions:
        total += p.cost_basis
        t.add_row(
            p.symbol,
            p.account,
            " + ".join(sorted(p.strategy_tags)),
            f"{p.quantity:,}",
            f"${p.average_cost:,.2f}",
            f"${p.cost_basis:,.2f}",
        )

    t.add_section()
    t.add_row("", "", "", "", "Total", f"[bold]${total:,.2f}[/bold]")
    return t


def basket_table(orders: list[BasketOrder]) -> Table:
    t = Table(title="Basket Rebalance", box=box.ROUNDED, title_style="bold white")
    t.add_column("Action", no_wrap=True)
    t.add_column("Symbol", style="cyan")
    t.add_column("Systems")
    t.add_column("Target", justify="right")
    t.add_column("Current", justify="right")
    t.add_column("Delta", justify="right")
    for o in orders:
        t.add_row(
            Text(o.action.value, style=ACTION_STYLES[o.action]),
            o.symbol,
            "+".join(o.strategy_tags),
            f"{o.target_quantity} (${o.target_value:,.2f})",
            f"{o.current_quantity}",
            f"{o.delta:+}",
        )
    return t


def run_rebalance(args: argparse.Namespace) -> None:
    assets, cash = load_assets(Path(args.assets))
    if args.cash is not None:
        cash = to_decimal(args.cash)

    if args.refresh:
        with console.status("[bold]Fetching prices...[/bold]"):
            stale = refresh_asset_prices(assets, CachedQuoteSource(YahooQuoteSource()))
        if stale:
            console.print(f"[yellow]  Using last known price for: {', '.join(stale)}[/yellow]")

    threshold = to_decimal(args.threshold) if args.threshold else RebalanceConfig().DRIFT_THRESHOLD
    results = rebalance(assets, cash, threshold)
    if not results:
        console.print("[yellow]  Portfolio is empty, nothing to rebalance.[/yellow]")
        return

    console.print(rebalance_table(assets, results, threshold))
    console.print(
        f"  Total [bold]${portfolio_total(assets, cash):,.2f}[/bold]"
        f"  ·  Cash ${cash:,.2f}"
        f"  ·  Unrealized P&L ${unrealized_pnl(assets):,.2f}"
    )


def _open_book(args: argparse.Namespace) -> tuple[Optional[JsonFileStore], TradeBook]:
    if not args.store:
        return None, TradeBook()
    store = JsonFileStore(args.store)
    return store, load_book(store, args.user)


def _import_files(book: TradeBook, paths: list[str]) -> TradeBook:
    for path in paths:
        result = load_basket_file(path)
        for error in result.rejected:
            console.print(f"[yellow]  {Path(path).name}: skipped {error}[/yellow]")
        book = apply_event(book, ImportTrades(tuple(result.trades)))
    return book


def run_positions(args: argparse.Namespace) -> None:
    store, book = _open_book(args)
    book = _import_files(book, args.files)
    if store is not None:
        save_book(store, args.user, book)

    positions = positions_for_tag(book.positions, args.tag)
    if args.consolidate:
        positions = consolidate(positions)
        title = "Positions (all accounts)"
    elif args.account:
        positions = positions_for_account(positions, args.account)
        title = f"Positions ({args.account})"
    else:
        title = "Positions"
    console.print(positions_table(positions, title))


def run_basket(args: argparse.Namespace) -> None:
    if args.account == ALL_ACCOUNTS:
        console.print("[red]  Select a specific account for basket rebalancing.[/red]")
        return
    _, book = _open_book(args)
    basket = load_basket_file(args.basket)
    orders = basket_rebalance(basket.trades, args.account, to_decimal(args.equity), book.positions)
    console.print(basket_table(orders))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio rebalancing and trade tracking")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("rebalance", help="Drift-band rebalance from an assets JSON file")
    p.add_argument("assets")
    p.add_argument("--cash")
    p.add_argument("--threshold", help="Drift threshold in percentage points")
    p.add_argument("--refresh", action="store_true", help="Fetch live prices first")
    p.set_defaults(func=run_rebalance)

    p = sub.add_parser("positions", help="Import basket CSVs and show positions")
    p.add_argument("files", nargs="*")
    p.add_argument("--store", help="Directory of the local record store")
    p.add_argument("--user", default="local")
    p.add_argument("--tag", help="Only positions carrying this strategy tag")
    p.add_argument("--account", help="Only positions in this account (ALL consolidates)")
    p.add_argument("--consolidate", action="store_true")
    p.set_defaults(func=run_positions)

    p = sub.add_parser("basket", help="Preview a smart basket rebalance for one account")
    p.add_argument("basket")
    p.add_argument("--account", required=True)
    p.add_argument("--equity", required=True)
    p.add_argument("--store")
    p.add_argument("--user", default="local")
    p.set_defaults(func=run_basket)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the CLI application."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    console.print()
    console.print(Panel("[bold]Portfolio Tracker[/bold] · rebalance & positions", box=box.DOUBLE))
    console.print()
    try:
        args.func(args)
    except CorruptStoreError as e:
        console.print(f"[red]  {escape(str(e))}. Fix or move the file and try again.[/red]")
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
