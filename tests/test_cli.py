import json
from decimal import Decimal

import pytest

from cli import _drift_color, build_parser, load_assets, main


class TestLoadAssets:
    def test_object_with_cash(self, tmp_path):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps({
            "cash": "250",
            "assets": [{"id": "world", "targetWeight": 60, "price": 100, "units": 3}],
        }))
        assets, cash = load_assets(path)
        assert cash == Decimal("250")
        assert assets[0].target_weight == Decimal("60")

    def test_bare_list(self, tmp_path):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps([{"id": "gold", "target_weight": 40}]))
        assets, cash = load_assets(path)
        assert [a.id for a in assets] == ["gold"]
        assert cash == Decimal("0")


class TestDriftColor:
    @pytest.mark.parametrize(
        "drift, color",
        [(Decimal("1"), "green"), (Decimal("3"), "yellow"), (Decimal("5"), "red")],
    )
    def test_bands(self, drift, color):
        assert _drift_color(drift, Decimal("5")) == color


class TestCommands:
    def test_parser_requires_command(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_rebalance_prints_actions(self, tmp_path, capsys):
        path = tmp_path / "assets.json"
        path.write_text(json.dumps([
            {"id": "world", "target_weight": 50, "price": 100, "units": 8},
            {"id": "bonds", "target_weight": 50, "price": 100, "units": 2},
        ]))
        main(["rebalance", str(path)])
        out = capsys.readouterr().out
        assert "world" in out
        assert "SELL" in out
        assert "BUY" in out

    def test_positions_persist_to_store(self, tmp_path, capsys):
        basket = tmp_path / "U1234567_NDX_20260101.csv"
        basket.write_text("BUY,10,AAPL,STK,SMART,USD,DAY,,,LMT,150,,,,,NDX,\n")
        store = tmp_path / "store"

        main(["positions", str(basket), "--store", str(store)])
        main(["positions", "--store", str(store)])

        out = capsys.readouterr().out
        assert out.count("AAPL") == 2
        assert (store / "local.json").exists()

    def test_basket_rejects_all_view(self, tmp_path, capsys):
        basket = tmp_path / "basket.csv"
        basket.write_text("BUY,1,AAPL\n")
        main(["basket", str(basket), "--account", "ALL", "--equity", "1000"])
        assert "specific account" in capsys.readouterr().out

    def test_corrupt_store_is_reported(self, tmp_path, capsys):
        store = tmp_path / "store"
        store.mkdir()
        (store / "local.json").write_text("{broken")

        with pytest.raises(SystemExit) as exc:
            main(["positions", "--store", str(store)])

        assert exc.value.code == 1
        assert "unreadable" in capsys.readouterr().out
        assert (store / "local.json").read_text() == "{broken"
