"""Tests for basket CSV parsing, row ingestion and detection rules."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from portfolio_tracker.config import ImportConfig, Side, StrategyTag
from portfolio_tracker.detection import (
    ACCOUNT_RULES,
    RowContext,
    detect_account,
    detect_strategy_tag,
    detect_trade_date,
    first_match,
)
from portfolio_tracker.exceptions import InvalidTradeError
from portfolio_tracker.loaders import (
    execution_rows,
    ingest_rows,
    load_basket_file,
    parse_trade_row,
    read_basket_csv,
    store_rows,
)
from portfolio_tracker.models import RawTradeRow

NOW = datetime(2026, 3, 4, 12, 0)
HEADER = (
    "Action,Quantity,Symbol,SecType,Exchange,Currency,TimeInForce,GoodTilDate,"
    "GoodAfterTime,OrderType,LmtPrice,AuxPrice,OcaGroup,OrderId,ParentOrderId,BasketTag,Account"
)


def basket_line(action, quantity, symbol, price="", tag="", account=""):
    cols = [action, quantity, symbol, "STK", "SMART", "USD", "DAY", "", "", "LMT", price,
            "", "", "", "", tag, account]
    return ",".join(cols)


class TestStrategyTagDetection:
    """Rules are evaluated top to bottom, first match wins."""

    def test_exact_identifier(self):
        assert detect_strategy_tag("NDX") is StrategyTag.NDX
        assert detect_strategy_tag(" rui ") is StrategyTag.RUI

    def test_keyword_on_tag(self):
        assert detect_strategy_tag("Nasdaq100_Momentum") is StrategyTag.NDX
        assert detect_strategy_tag("R1000 breakout") is StrategyTag.RUI
        assert detect_strategy_tag("Russell") is StrategyTag.RUI

    def test_keyword_on_filename(self):
        assert detect_strategy_tag("", "(Live) NDX_20260101.csv") is StrategyTag.NDX
        assert detect_strategy_tag("", "russell_basket.csv") is StrategyTag.RUI

    def test_tag_beats_filename(self):
        assert detect_strategy_tag("RUI", "NDX_basket.csv") is StrategyTag.RUI

    def test_ndx_wins_mixed_filename(self):
        assert detect_strategy_tag("", "(Live) NDX_RUI_20260101.csv") is StrategyTag.NDX

    def test_default(self):
        assert detect_strategy_tag("", "basket.csv") is StrategyTag.RUI

    def test_configured_default(self):
        config = ImportConfig(DEFAULT_TAG=StrategyTag.NDX)
        assert detect_strategy_tag("misc", "basket.csv", config) is StrategyTag.NDX

    def test_first_match_falls_back(self):
        rules = [(lambda ctx: ctx.tag == "x", "first"), (lambda ctx: True, "second")]
        assert first_match(rules, RowContext(tag="x"), "default") == "first"
        assert first_match(rules, RowContext(tag="y"), "default") == "second"
        assert first_match([], RowContext(), "default") == "default"


class TestAccountDetection:
    def test_column_wins(self):
        assert detect_account("U7654321", "U1234567_NDX.csv") == "U7654321"

    def test_account_in_filename(self):
        assert detect_account("", "(Live) U1234567_NDX_20260101.csv") == "U1234567"

    def test_default(self):
        assert detect_account("", "basket.csv") == "DEFAULT"
        assert detect_account("", "", ImportConfig(DEFAULT_ACCOUNT="MAIN")) == "MAIN"

    def test_rules_evaluated_in_order(self):
        ctx = RowContext(account="U7654321", filename="U1234567.csv")
        assert first_match(ACCOUNT_RULES, ctx, None)(ctx) == "U7654321"
        ctx = RowContext(filename="U1234567.csv")
        assert first_match(ACCOUNT_RULES, ctx, None)(ctx) == "U1234567"
        assert first_match(ACCOUNT_RULES, RowContext(filename="basket.csv"), None) is None


class TestTradeDateDetection:
    def test_date_in_filename(self):
        assert detect_trade_date("(Live) NDX_RUI_20260101.csv") == date(2026, 1, 1)

    def test_account_digits_are_not_a_date(self):
        assert detect_trade_date("U15771225_20260105.csv") == date(2026, 1, 5)

    def test_invalid_stamp_falls_back_to_today(self):
        assert detect_trade_date("basket_20261399.csv", today=date(2026, 2, 2)) == date(2026, 2, 2)

    def test_no_stamp(self):
        assert detect_trade_date("basket.csv", today=date(2026, 2, 2)) == date(2026, 2, 2)


class TestReadBasketCsv:
    def test_skips_header_and_blank_lines(self):
        content = "\n".join([HEADER, basket_line("BUY", "10", "AAPL"), "", basket_line("SELL", "5", "MSFT")])
        rows = read_basket_csv(content, "basket.csv")
        assert [r.get("symbol") for r in rows] == ["AAPL", "MSFT"]
        assert rows[0].source == "csv"
        assert rows[0].get("filename") == "basket.csv"

    def test_without_header(self):
        rows = read_basket_csv(basket_line("BUY", "10", "AAPL", tag="NDX", account="U1"))
        assert len(rows) == 1
        assert rows[0].get("tag") == "NDX"
        assert rows[0].get("account") == "U1"

    def test_short_rows_pad_missing_columns(self):
        rows = read_basket_csv("BUY,10,AAPL")
        assert rows[0].get("tag") == ""
        assert rows[0].get("price") == ""

    def test_quoted_values(self):
        rows = read_basket_csv('"BUY","10","AAPL"')
        assert rows[0].get("side") == "BUY"

    def test_empty(self):
        assert read_basket_csv("") == []


class TestParseTradeRow:
    def test_csv_row(self):
        raw = read_basket_csv(
            basket_line("buy", "10", "aapl", price="150.5"), "(Live) U1234567_NDX_20260101.csv"
        )[0]
        trade = parse_trade_row(raw, now=NOW)
        assert trade.side is Side.BUY
        assert trade.symbol == "AAPL"
        assert trade.quantity == Decimal("10")
        assert trade.price == Decimal("150.5")
        assert trade.total_value == Decimal("1505.0")
        assert trade.account == "U1234567"
        assert trade.strategy_tag == "NDX"
        assert trade.date == date(2026, 1, 1)
        assert trade.imported_at == NOW

    def test_missing_price_is_zero(self):
        raw = read_basket_csv(basket_line("SELL", "3", "MSFT"))[0]
        assert parse_trade_row(raw, now=NOW).price == Decimal("0")

    def test_date_defaults_to_today(self):
        raw = read_basket_csv(basket_line("SELL", "3", "MSFT"), "basket.csv")[0]
        assert parse_trade_row(raw, now=NOW).date == date(2026, 3, 4)

    @pytest.mark.parametrize(
        "line, message",
        [
            (basket_line("BUY", "0", "AAPL"), "must be positive"),
            (basket_line("BUY", "-3", "AAPL"), "must be positive"),
            (basket_line("BUY", "abc", "AAPL"), "must be positive"),
            (basket_line("BUY", "10", ""), "Missing symbol"),
            (basket_line("SHORT", "10", "AAPL"), "Unknown trade action"),
            (basket_line("BUY", "10", "AAPL", price="-1"), "Negative price"),
        ],
    )
    def test_invalid_rows(self, line, message):
        raw = read_basket_csv(line)[0]
        with pytest.raises(InvalidTradeError, match=message):
            parse_trade_row(raw, now=NOW)

    def test_error_carries_row_number(self):
        raw = RawTradeRow("csv", {"side": "BUY", "symbol": "", "quantity": "1"}, row=7)
        with pytest.raises(InvalidTradeError) as exc:
            parse_trade_row(raw)
        assert exc.value.row == 7
        assert "row 7" in str(exc.value)

    def test_bad_date_rejected(self):
        raw = RawTradeRow("store", {"side": "BUY", "symbol": "X", "quantity": "1", "date": "soon"})
        with pytest.raises(InvalidTradeError, match="Unparseable trade date"):
            parse_trade_row(raw)


class TestIngestRows:
    def test_skips_malformed_rows(self):
        content = "\n".join([
            HEADER,
            basket_line("BUY", "10", "AAPL"),
            basket_line("BUY", "0", "MSFT"),
            basket_line("BUY", "5", ""),
            basket_line("SELL", "2", "AAPL"),
        ])
        result = ingest_rows(read_basket_csv(content, "NDX_20260101.csv"), now=NOW)
        assert [t.symbol for t in result.trades] == ["AAPL", "AAPL"]
        assert [e.row for e in result.rejected] == [3, 4]

    def test_generates_unique_ids(self):
        content = "\n".join([basket_line("BUY", "1", "A"), basket_line("BUY", "1", "B")])
        trades = ingest_rows(read_basket_csv(content), now=NOW).trades
        assert trades[0].id != trades[1].id

    def test_load_basket_file(self, tmp_path):
        path = tmp_path / "(Live) U1234567_RUI_20260102.csv"
        path.write_text("\n".join([HEADER, basket_line("BUY", "4", "IWM", price="200")]))
        result = load_basket_file(path)
        assert len(result.trades) == 1
        trade = result.trades[0]
        assert (trade.account, trade.strategy_tag, trade.date) == ("U1234567", "RUI", date(2026, 1, 2))


class TestExecutionRows:
    EXECUTIONS = [
        {"execId": "0001.01", "time": "20260102  15:30:01", "acctNumber": "U1", "side": "BOT",
         "shares": 10, "price": 100.5, "symbol": "AAPL", "orderRef": "NDX"},
        {"execId": "0002.01", "time": "20260103  10:00:00", "acctNumber": "U1", "side": "SLD",
         "shares": 4, "price": 110, "symbol": "AAPL", "orderRef": ""},
    ]

    def test_converts_broker_executions(self):
        result = ingest_rows(execution_rows(self.EXECUTIONS), now=NOW)
        buy, sell = result.trades
        assert buy.side is Side.BUY
        assert buy.execution_id == "0001.01"
        assert buy.date == date(2026, 1, 2)
        assert buy.price == Decimal("100.5")
        assert buy.strategy_tag == "NDX"
        assert sell.side is Side.SELL
        assert sell.strategy_tag == "RUI"

    def test_zero_share_execution_rejected(self):
        bad = dict(self.EXECUTIONS[0], shares=0)
        result = ingest_rows(execution_rows([bad]))
        assert result.trades == []
        assert len(result.rejected) == 1


class TestStoreRows:
    def test_round_trip_through_record(self):
        raw = read_basket_csv(basket_line("BUY", "10", "AAPL", "12.5", "NDX", "U1"), "x_20260101.csv")[0]
        original = parse_trade_row(raw, now=NOW)
        restored = ingest_rows(store_rows([original.to_record()])).trades[0]
        assert restored == original
