"""Point-in-time capture of resolved rates onto order lines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Sequence

from .calculator import calculate_profit, round2
from .commission import resolve_commission_rate
from .models import CommissionSchedule, Product, ProfitInput, ShippingRateTier
from .normalize import ensure_aware, to_number
from .views import resolve_shipping_for

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class OrderLine:
    """
    One order line with every cost driver frozen at sale time.

    Monetary fields are per unit except ``shipping_share``, which is charged
    once for the whole line.
    """

    product_id: str | None
    product_name: str
    quantity: int
    unit_price: float
    buy_price_at_sale: float
    commission_rate_at_sale: float
    vat_rate_at_sale: float
    shipping_share: float
    extra_cost: float = 0.0
    ad_cost: float = 0.0
    packaging_cost: float = 0.0
    packaging_vat_included: bool = True
    return_rate: float = 0.0
    service_fee: float = 0.0
    campaign_name: str | None = None
    net_profit: float = 0.0

    def as_row(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "buy_price_at_sale": self.buy_price_at_sale,
            "commission_rate_at_sale": self.commission_rate_at_sale,
            "vat_rate_at_sale": self.vat_rate_at_sale,
            "shipping_share": self.shipping_share,
            "extra_cost": self.extra_cost,
            "ad_cost": self.ad_cost,
            "packaging_cost": self.packaging_cost,
            "packaging_vat_included": self.packaging_vat_included,
            "return_rate": self.return_rate,
            "service_fee": self.service_fee,
            "campaign_name": self.campaign_name,
            "net_profit": self.net_profit,
        }


def _line_input(line: OrderLine) -> ProfitInput:
    qty = line.quantity
    return ProfitInput(
        sales_price=line.unit_price * qty,
        buy_price=line.buy_price_at_sale * qty,
        commission_rate=line.commission_rate_at_sale,
        vat_rate=line.vat_rate_at_sale,
        shipping_cost=line.shipping_share,
        extra_cost=line.extra_cost * qty,
        ad_cost=line.ad_cost * qty,
        packaging_cost=line.packaging_cost * qty,
        packaging_vat_included=line.packaging_vat_included,
        return_rate=line.return_rate,
        service_fee=line.service_fee * qty,
    )


def line_profit(line: OrderLine) -> float:
    """Net profit of a line computed only from its captured values."""
    return calculate_profit(_line_input(line)).net_profit


def with_recomputed_profit(line: OrderLine, **changes: Any) -> OrderLine:
    """Apply manual edits to a captured line and recompute its profit from them."""
    edited = replace(line, **changes)
    return replace(edited, net_profit=line_profit(edited))


def capture_order_line(
    product: Product,
    quantity: int,
    marketplace: str,
    tiers: Sequence[ShippingRateTier],
    schedules: Sequence[CommissionSchedule],
    at: datetime | None = None,
    unit_price: float | None = None,
) -> OrderLine:
    """
    Snapshot a sale of *product*.

    Commission is resolved against the schedules active at *at*, shipping
    against the barem (or the product's manual shipping cost). The returned
    line keeps those values forever; later schedule or barem edits do not
    touch it.
    """
    at = ensure_aware(at)
    qty = max(1, int(to_number(quantity)))
    commission = resolve_commission_rate(product.id, marketplace, schedules, product.commission_rate, now=at)
    price = product.sales_price if unit_price is None else to_number(unit_price)
    shipping_cost, _ = resolve_shipping_for(product, tiers, price)

    line = OrderLine(
        product_id=product.id,
        product_name=product.name,
        quantity=qty,
        unit_price=price,
        buy_price_at_sale=product.buy_price,
        commission_rate_at_sale=commission.rate,
        vat_rate_at_sale=product.vat_rate,
        shipping_share=shipping_cost,
        extra_cost=product.extra_cost,
        ad_cost=product.ad_cost,
        packaging_cost=product.packaging_cost,
        packaging_vat_included=product.packaging_vat_included,
        return_rate=product.return_rate,
        service_fee=product.service_fee,
        campaign_name=commission.campaign_name,
    )
    line = replace(line, net_profit=line_profit(line))
    logger.debug(
        "Captured line %s x%d at %s: rate=%.4f shipping=%.2f profit=%.2f",
        product.id, qty, at.isoformat(), line.commission_rate_at_sale,
        line.shipping_share, line.net_profit,
    )
    return line


@dataclass(frozen=True)
class OrderTotals:
    amount: float
    shipping: float
    commission: float
    profit: float

    def as_dict(self) -> dict[str, float]:
        return {
            "totalAmount": self.amount,
            "totalShipping": self.shipping,
            "totalCommission": self.commission,
            "totalProfit": self.profit,
        }


def order_totals(lines: Iterable[OrderLine]) -> OrderTotals:
    """Sum published per-line values; round once at the end."""
    amount = shipping = commission = profit = 0.0
    for line in lines:
        line_result = calculate_profit(_line_input(line))
        amount += line_result.sales_price
        shipping += line.shipping_share
        commission += line_result.commission
        profit += line.net_profit
    return OrderTotals(
        amount=round2(amount),
        shipping=round2(shipping),
        commission=round2(commission),
        profit=round2(profit),
    )


@dataclass(frozen=True)
class Order:
    store_id: str
    order_number: str
    order_date: datetime
    marketplace: str
    lines: tuple[OrderLine, ...] = field(default_factory=tuple)
    marketplace_order_id: str = ""
    status: OrderStatus = OrderStatus.PENDING
    notes: str = ""

    @property
    def totals(self) -> OrderTotals:
        return order_totals(self.lines)

    @property
    def campaign_name(self) -> str:
        names = sorted({line.campaign_name for line in self.lines if line.campaign_name})
        return ", ".join(names)

    def as_row(self) -> dict[str, Any]:
        totals = self.totals
        return {
            "store_id": self.store_id,
            "order_number": self.order_number,
            "marketplace": self.marketplace,
            "marketplace_order_id": self.marketplace_order_id,
            "order_date": self.order_date.isoformat(),
            "total_amount": totals.amount,
            "total_shipping": totals.shipping,
            "total_commission": totals.commission,
            "total_profit": totals.profit,
            "campaign_name": self.campaign_name,
            "status": self.status.value,
            "notes": self.notes,
        }
