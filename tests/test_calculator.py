"""Tests for calculator.py"""

import pytest

from profit_watch.calculator import (
    break_even_price,
    calculate_profit,
    effective_packaging_cost,
    round1,
    round2,
)
from profit_watch.models import ProfitInput

BASE = ProfitInput(
    sales_price=1000,
    buy_price=400,
    commission_rate=0.15,
    vat_rate=20,
    shipping_cost=50,
)


def test_end_to_end_breakdown():
    r = calculate_profit(BASE)
    assert r.vat == 200.0
    assert r.commission == 150.0
    assert r.total_cost == 800.0
    assert r.net_profit == 200.0
    assert r.margin == 20.0
    assert r.roi == 50.0
    assert not r.is_loss


def test_packaging_vat_exclusive_is_grossed_up():
    included = calculate_profit(ProfitInput(sales_price=500, packaging_cost=100, packaging_vat_included=True))
    excluded = calculate_profit(ProfitInput(sales_price=500, packaging_cost=100, packaging_vat_included=False))
    assert included.packaging_cost == 100.0
    assert excluded.packaging_cost == 120.0
    assert included.net_profit - excluded.net_profit == pytest.approx(20.0)


def test_effective_packaging_cost():
    assert effective_packaging_cost(10, True) == 10
    assert effective_packaging_cost(10, False) == pytest.approx(12.0)


def test_return_cost_is_percentage_of_price():
    r = calculate_profit(ProfitInput(sales_price=200, return_rate=5))
    assert r.return_cost == 10.0


def test_zero_price_and_zero_buy_price_give_zero_ratios():
    r = calculate_profit(ProfitInput())
    assert r.net_profit == 0.0
    assert r.margin == 0.0
    assert r.roi == 0.0


def test_zero_price_is_a_loss_with_zero_margin():
    r = calculate_profit(ProfitInput(sales_price=0, buy_price=100))
    assert r.net_profit == -100.0
    assert r.margin == 0.0
    assert r.roi == -100.0
    assert r.is_loss


def test_negative_inputs_are_not_clamped():
    r = calculate_profit(ProfitInput(sales_price=100, buy_price=50, extra_cost=-10))
    assert r.extra_cost == -10.0
    assert r.net_profit == 60.0


def test_total_cost_is_sum_of_components():
    data = ProfitInput(
        sales_price=349.90,
        buy_price=120,
        commission_rate=0.15,
        vat_rate=20,
        shipping_cost=13.99,
        extra_cost=5,
        ad_cost=10,
        packaging_cost=8,
        return_rate=2,
        service_fee=6.99,
    )
    r = calculate_profit(data)
    parts = (
        r.buy_price + r.vat + r.commission + r.shipping_cost + r.extra_cost
        + r.ad_cost + r.packaging_cost + r.return_cost + r.service_fee
    )
    assert parts == pytest.approx(r.total_cost, abs=0.05)
    assert r.sales_price - r.total_cost == pytest.approx(r.net_profit, abs=0.02)


def test_deterministic():
    assert calculate_profit(BASE) == calculate_profit(BASE)


def test_rounding_is_half_up():
    assert round2(2.675) == 2.68
    assert round2(1.005) == 1.01
    assert round1(0.25) == 0.3
    assert round1(-0.25) == -0.3


def test_round_normalises_negative_zero():
    assert str(round2(-0.001)) == "0.0"


def test_margin_rounded_to_one_decimal():
    r = calculate_profit(ProfitInput(sales_price=300, buy_price=100))
    assert r.margin == 66.7
    assert r.roi == 200.0


def test_as_dict_uses_camel_case_keys():
    d = calculate_profit(BASE).as_dict()
    assert d["netProfit"] == 200.0
    assert d["salesPrice"] == 1000.0
    assert set(d) >= {"shippingCost", "packagingCost", "returnCost", "serviceFee", "totalCost"}


def test_break_even_price():
    price = break_even_price(BASE)
    assert price == 692.31
    assert calculate_profit(BASE.with_sales_price(price)).net_profit == pytest.approx(0.0, abs=0.01)


def test_break_even_none_when_price_share_exhausted():
    data = ProfitInput(buy_price=100, commission_rate=0.5, vat_rate=50)
    assert break_even_price(data) is None


NUMERIC_FIELDS = [
    "sales_price", "buy_price", "commission_rate", "vat_rate", "shipping_cost",
    "extra_cost", "ad_cost", "packaging_cost", "return_rate", "service_fee",
]


@pytest.mark.parametrize("field", NUMERIC_FIELDS)
@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_field_counts_as_zero(field, bad):
    dirty = calculate_profit(ProfitInput(**{**BASE.__dict__, field: bad}))
    clean = calculate_profit(ProfitInput(**{**BASE.__dict__, field: 0}))
    assert dirty == clean


def test_non_finite_price_does_not_raise():
    r = calculate_profit(ProfitInput(sales_price=float("inf"), buy_price=10))
    assert r.sales_price == 0.0
    assert r.net_profit == -10.0
    assert r.margin == 0.0


def test_string_fields_are_coerced():
    r = calculate_profit(ProfitInput(sales_price="1.000,00", buy_price="400", vat_rate="abc"))
    assert r.sales_price == 1000.0
    assert r.vat == 0.0
    assert r.net_profit == 600.0


def test_rounded_components_drift_within_documented_bound():
    data = ProfitInput(
        sales_price=842.26,
        buy_price=300,
        commission_rate=0.215,
        vat_rate=10,
        packaging_cost=3.33,
        packaging_vat_included=False,
        return_rate=2,
    )
    r = calculate_profit(data)
    parts = (
        r.buy_price + r.vat + r.commission + r.shipping_cost + r.extra_cost
        + r.ad_cost + r.packaging_cost + r.return_cost + r.service_fee
    )
    # nine independently rounded components: at most 9 * 0.005 apart
    assert parts == pytest.approx(r.total_cost, abs=0.05)
