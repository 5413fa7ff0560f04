"""Profit calculation engine - pure, deterministic, no side effects."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal

from .models import ProfitInput, ProfitResult

# Packaging entered VAT-exclusive is grossed up by a flat 20% KDV.
PACKAGING_VAT_MULTIPLIER = 1.20

_CENT = Decimal("0.01")
_TENTH = Decimal("0.1")


def _round(value: float, quantum: Decimal) -> float:
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    # repr() keeps the shortest decimal form so 2.675 rounds to 2.68, not 2.67
    result = float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    return result + 0.0  # normalise -0.0


def round2(value: float) -> float:
    return _round(value, _CENT)


def round1(value: float) -> float:
    return _round(value, _TENTH)


def effective_packaging_cost(packaging_cost: float, packaging_vat_included: bool) -> float:
    return packaging_cost if packaging_vat_included else packaging_cost * PACKAGING_VAT_MULTIPLIER


def calculate_profit(data: ProfitInput) -> ProfitResult:
    """
    Full cost breakdown for one unit sold at ``data.sales_price``.

    Computation order:
        vat         = sales_price * vat_rate / 100
        commission  = sales_price * commission_rate
        packaging   = packaging_cost (x1.20 when entered VAT-exclusive)
        return_cost = sales_price * return_rate / 100
        total_cost  = buy + vat + commission + shipping + extra + ad
                      + packaging + return_cost + service_fee
        net_profit  = sales_price - total_cost
        margin      = net_profit / sales_price * 100   (0 when sales_price <= 0)
        roi         = net_profit / buy_price * 100     (0 when buy_price <= 0)

    Money is rounded to 2 decimals and margin/ROI to 1 decimal, once, on the
    way out. Negative inputs are accepted; a loss is a negative net_profit.
    """
    sales_price = data.sales_price
    buy_price = data.buy_price

    vat = sales_price * (data.vat_rate / 100)
    commission = sales_price * data.commission_rate
    packaging = effective_packaging_cost(data.packaging_cost, data.packaging_vat_included)
    return_cost = sales_price * (data.return_rate / 100)

    total_cost = (
        buy_price
        + vat
        + commission
        + data.shipping_cost
        + data.extra_cost
        + data.ad_cost
        + packaging
        + return_cost
        + data.service_fee
    )
    net_profit = sales_price - total_cost
    margin = net_profit / sales_price * 100 if sales_price > 0 else 0.0
    roi = net_profit / buy_price * 100 if buy_price > 0 else 0.0

    return ProfitResult(
        sales_price=round2(sales_price),
        buy_price=round2(buy_price),
        vat=round2(vat),
        commission=round2(commission),
        shipping_cost=round2(data.shipping_cost),
        extra_cost=round2(data.extra_cost),
        ad_cost=round2(data.ad_cost),
        packaging_cost=round2(packaging),
        return_cost=round2(return_cost),
        service_fee=round2(data.service_fee),
        total_cost=round2(total_cost),
        net_profit=round2(net_profit),
        margin=round1(margin),
        roi=round1(roi),
    )


def break_even_price(data: ProfitInput) -> float | None:
    """
    Sales price at which net profit is zero, all other inputs held fixed.

    VAT, commission and returns scale with the price; everything else is a
    fixed per-unit cost:

        P * (1 - vat_rate/100 - commission_rate - return_rate/100) = fixed

    Returns ``None`` when the price-proportional share is 100% or more, since
    no finite price breaks even then.
    """
    proportional = 1 - data.vat_rate / 100 - data.commission_rate - data.return_rate / 100
    if proportional <= 0:
        return None
    fixed = (
        data.buy_price
        + data.shipping_cost
        + data.extra_cost
        + data.ad_cost
        + effective_packaging_cost(data.packaging_cost, data.packaging_vat_included)
        + data.service_fee
    )
    return round2(fixed / proportional)
