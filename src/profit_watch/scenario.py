"""What-if simulations built on top of :func:`calculate_profit`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from .calculator import calculate_profit, round1, round2
from .models import ProfitInput, ScenarioResult
from .normalize import to_number

logger = logging.getLogger(__name__)


def simulate_price_change(base: ProfitInput, target_price: float) -> ScenarioResult:
    """
    Profit at *target_price* versus the current price.

    Only the sales price moves. Commission rate, shipping cost and every other
    driver stay at the values already resolved in *base*; if the new price
    crosses a price-band shipping tier, re-resolve shipping and call again.
    """
    current = calculate_profit(base)
    simulated = calculate_profit(base.with_sales_price(to_number(target_price)))
    return ScenarioResult(
        current=current,
        simulated=simulated,
        profit_delta=round2(simulated.net_profit - current.net_profit),
        margin_delta=round1(simulated.margin - current.margin),
    )


@dataclass(frozen=True)
class CommissionPreview:
    avg_margin_before: float
    avg_margin_after: float
    product_count: int

    @property
    def margin_delta(self) -> float:
        return round1(self.avg_margin_after - self.avg_margin_before)

    def as_dict(self) -> dict[str, float | int]:
        return {
            "avgMarginBefore": self.avg_margin_before,
            "avgMarginAfter": self.avg_margin_after,
            "marginDelta": self.margin_delta,
            "productCount": self.product_count,
        }


def preview_commission_change(
    inputs: Iterable[ProfitInput],
    new_rate: float,
) -> CommissionPreview | None:
    """
    Average margin across *inputs* before and after applying *new_rate*.

    Products without a positive sales price are skipped. Returns ``None``
    when nothing qualifies.
    """
    rate = to_number(new_rate)
    before = 0.0
    after = 0.0
    count = 0
    for item in inputs:
        if item.sales_price <= 0:
            continue
        before += calculate_profit(item).margin
        after += calculate_profit(item.with_commission_rate(rate)).margin
        count += 1

    if count == 0:
        return None
    logger.debug("Commission preview at rate %.4f over %d product(s)", rate, count)
    return CommissionPreview(
        avg_margin_before=round1(before / count),
        avg_margin_after=round1(after / count),
        product_count=count,
    )
