"""Tests for cli.py"""

import json

import pytest

from profit_watch.cli import main


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


def test_calc_dry_run_json(capsys):
    assert _run(["calc", "--dry-run", "--json"]) == 0
    records = json.loads(capsys.readouterr().out)
    assert {r["id"] for r in records} == {"p-100", "p-200", "p-300", "p-400", "p-500"}


def test_calc_table(capsys):
    assert _run(["calc", "--dry-run", "--store-id", "store-1"]) == 0
    out = capsys.readouterr().out
    assert "Yoga Matı 6mm" in out
    assert "5 product(s)" in out


def test_calc_requires_products():
    assert _run(["calc"]) == 2


def test_calc_missing_products_file(tmp_path):
    assert _run(["calc", "--products", str(tmp_path / "missing.csv")]) == 2


def test_calc_missing_config():
    assert _run(["calc", "--dry-run", "--config", "does-not-exist.yaml"]) == 2


def test_calc_no_products_for_store():
    assert _run(["calc", "--dry-run", "--store-id", "store-404"]) == 1


def test_calc_with_explicit_files(tmp_path, capsys):
    products = tmp_path / "products.csv"
    products.write_text(
        "id,name,buy_price,sales_price,commission_rate,vat_rate,shipping_cost\n"
        "x-1,Test,400,1000,0.15,20,50\n",
        encoding="utf-8",
    )
    assert _run(["calc", "--products", str(products), "--json"]) == 0
    records = json.loads(capsys.readouterr().out)
    assert records[0]["profit"]["netProfit"] == 200.0


def test_simulate_json(capsys):
    assert _run(["simulate", "--dry-run", "--product-id", "p-100", "--price", "399.90", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["simulated"]["salesPrice"] == 399.9
    assert payload["profitDelta"] > 0
    assert payload["breakEvenPrice"] is not None


def test_simulate_unknown_product():
    assert _run(["simulate", "--dry-run", "--product-id", "nope", "--price", "10"]) == 1


def test_campaigns_json(capsys):
    assert _run(["campaigns", "--dry-run", "--json"]) == 0
    parts = json.loads(capsys.readouterr().out)
    assert set(parts) == {"active", "upcoming", "recentlyExpired"}
    assert all(s["id"] != "s-4" for group in parts.values() for s in group)


def test_report_writes_files(tmp_path, capsys):
    assert _run(["report", "--dry-run", "--reports-dir", str(tmp_path)]) == 0
    assert len(list(tmp_path.glob("profit_trendyol_*.csv"))) == 1
    assert len(list(tmp_path.glob("profit_trendyol_*.json"))) == 1
    assert len(list(tmp_path.glob("profit_trendyol_*.md"))) == 1
    assert "Net profit" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert _run([]) == 0
    assert "profit-watch" in capsys.readouterr().out


def test_campaigns_without_products(tmp_path, capsys):
    products = tmp_path / "products.csv"
    products.write_text("id,name,buy_price,sales_price\n", encoding="utf-8")
    schedules = tmp_path / "schedules.csv"
    schedules.write_text(
        "id,store_id,marketplace,campaign_rate,campaign_name,valid_from,valid_until\n"
        "s-1,store-1,trendyol,0.1,Uzun Kampanya,2000-01-01T00:00:00Z,2099-01-01T00:00:00Z\n",
        encoding="utf-8",
    )
    argv = ["campaigns", "--products", str(products), "--schedules", str(schedules), "--json"]
    assert _run(argv) == 0
    parts = json.loads(capsys.readouterr().out)
    assert [s["id"] for s in parts["active"]] == ["s-1"]


def test_calc_with_empty_products_file(tmp_path):
    products = tmp_path / "products.csv"
    products.write_text("id,name,buy_price,sales_price\n", encoding="utf-8")
    assert _run(["calc", "--products", str(products)]) == 1
