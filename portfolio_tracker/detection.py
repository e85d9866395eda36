"""Rule tables that infer strategy tag and account for imported rows, plus trade-date parsing.

Each table is an ordered list of (predicate, result) pairs evaluated top to
bottom; the first predicate that matches wins and the configured default is
used when none does.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional, TypeVar

from .config import ImportConfig, StrategyTag

T = TypeVar("T")

ACCOUNT_ID_PATTERN = re.compile(r"(?<![A-Za-z0-9])(U\d{5,})")
DATE_PATTERN = re.compile(r"(?<![\dU])(\d{8})(?!\d)")

NDX_KEYWORDS = ("NDX", "NASDAQ")
RUI_KEYWORDS = ("RUI", "R1000", "RUSSELL")


@dataclass(frozen=True)
class RowContext:
    """Free-text fields a detection rule may inspect."""

    tag: str = ""
    filename: str = ""
    account: str = ""


Rule = tuple[Callable[[RowContext], bool], T]


def first_match(rules: list[Rule], ctx: RowContext, default: T) -> T:
    for predicate, result in rules:
        if predicate(ctx):
            return result
    return default


def _tag_is(value: str) -> Callable[[RowContext], bool]:
    return lambda ctx: ctx.tag.strip().upper() == value


def _tag_contains(*keywords: str) -> Callable[[RowContext], bool]:
    return lambda ctx: any(k in ctx.tag.upper() for k in keywords)


def _filename_contains(*keywords: str) -> Callable[[RowContext], bool]:
    return lambda ctx: any(k in ctx.filename.upper() for k in keywords)


STRATEGY_TAG_RULES: list[Rule] = [
    *[(_tag_is(tag.value), tag) for tag in StrategyTag],
    (_tag_contains(*NDX_KEYWORDS), StrategyTag.NDX),
    (_tag_contains(*RUI_KEYWORDS), StrategyTag.RUI),
    (_filename_contains(*NDX_KEYWORDS), StrategyTag.NDX),
    (_filename_contains(*RUI_KEYWORDS), StrategyTag.RUI),
]


def _account_in_filename(ctx: RowContext) -> str:
    match = ACCOUNT_ID_PATTERN.search(ctx.filename)
    return match.group(1) if match else ""


# Results are extractors applied to the matching row
ACCOUNT_RULES: list[Rule] = [
    (lambda ctx: bool(ctx.account), lambda ctx: ctx.account),
    (lambda ctx: bool(_account_in_filename(ctx)), _account_in_filename),
]


def detect_strategy_tag(
    tag: str, filename: str = "", config: Optional[ImportConfig] = None
) -> StrategyTag:
    """Pick the trading system for a basket row from its tag, then its filename."""
    config = config or ImportConfig()
    return first_match(
        STRATEGY_TAG_RULES, RowContext(tag=tag or "", filename=filename or ""), config.DEFAULT_TAG
    )


def detect_account(
    account: str = "", filename: str = "", config: Optional[ImportConfig] = None
) -> str:
    """Use the row's account column, else an account id in the filename, else the default."""
    config = config or ImportConfig()
    ctx = RowContext(account=(account or "").strip(), filename=filename or "")
    extract = first_match(ACCOUNT_RULES, ctx, None)
    return extract(ctx) if extract else config.DEFAULT_ACCOUNT


def detect_trade_date(filename: str = "", today: Optional[date] = None) -> date:
    """Trade date from a YYYYMMDD stamp in the filename, e.g. "NDX_RUI_20260101.csv"."""
    for match in DATE_PATTERN.finditer(filename or ""):
        try:
            return datetime.strptime(match.group(1), "%Y%m%d").date()
        except ValueError:
            continue
    return today or date.today()
