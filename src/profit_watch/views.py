"""Derived per-product views and their invalidation rules."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Iterable, Sequence

from .calculator import calculate_profit
from .commission import is_active_at, next_boundary, resolve_commission_rate
from .models import (
    CommissionResolution,
    CommissionSchedule,
    Product,
    ProductView,
    ProfitInput,
    ShippingRateTier,
)
from .normalize import ensure_aware, normalize_marketplace
from .shipping import resolve_shipping_cost

logger = logging.getLogger(__name__)

SHIPPING_MANUAL = "manual"
SHIPPING_BAREM = "barem"


def resolve_shipping_for(
    product: Product,
    tiers: Sequence[ShippingRateTier],
    sales_price: float | None = None,
) -> tuple[float, str]:
    """
    A manual ``shipping_cost > 0`` wins verbatim; otherwise look up the barem.

    The price band is matched against *sales_price* when given (an order sold
    below or above the catalog price), else against ``product.sales_price``.
    """
    if product.has_shipping_override:
        return product.shipping_cost, SHIPPING_MANUAL
    price = product.sales_price if sales_price is None else sales_price
    return resolve_shipping_cost(product.desi, price, tiers), SHIPPING_BAREM


def build_profit_input(
    product: Product,
    commission: CommissionResolution,
    shipping_cost: float,
) -> ProfitInput:
    return ProfitInput(
        sales_price=product.sales_price,
        buy_price=product.buy_price,
        commission_rate=commission.rate,
        vat_rate=product.vat_rate,
        desi=product.desi,
        shipping_cost=shipping_cost,
        extra_cost=product.extra_cost,
        ad_cost=product.ad_cost,
        packaging_cost=product.packaging_cost,
        packaging_vat_included=product.packaging_vat_included,
        return_rate=product.return_rate,
        service_fee=product.service_fee,
    )


def resolve_product(
    product: Product,
    marketplace: str,
    tiers: Sequence[ShippingRateTier],
    schedules: Sequence[CommissionSchedule],
    now: datetime | None = None,
) -> ProductView:
    """Resolve commission and shipping for *product* at *now*, then compute profit."""
    now = ensure_aware(now)
    commission = resolve_commission_rate(
        product.id, marketplace, schedules, product.commission_rate, now=now
    )
    shipping_cost, source = resolve_shipping_for(product, tiers)
    profit_input = build_profit_input(product, commission, shipping_cost)
    return ProductView(
        product=product,
        commission=commission,
        shipping_cost=shipping_cost,
        shipping_source=source,
        profit=calculate_profit(profit_input),
        resolved_at=now,
        profit_input=profit_input,
    )


def refresh_interval(
    schedules: Iterable[CommissionSchedule],
    marketplace: str,
    now: datetime | None = None,
    countdown_visible: bool = False,
    countdown_seconds: int = 1,
    idle_seconds: int = 60,
) -> int:
    """
    Seconds until the host should re-resolve.

    Every *countdown_seconds* while a campaign countdown is on screen and
    some campaign is running, otherwise every *idle_seconds*.
    """
    now = ensure_aware(now)
    mp = normalize_marketplace(marketplace)
    if countdown_visible and any(is_active_at(s, mp, now) for s in schedules):
        return countdown_seconds
    return idle_seconds


def _warn_duplicate_ids(products: Sequence[Product]) -> None:
    seen: set[str] = set()
    for p in products:
        if p.id in seen:
            logger.warning("Duplicate product id %r; view() returns the first match", p.id)
        seen.add(p.id)


class ProfitBook:
    """
    Owned cache of product views for one store and marketplace.

    Products, tiers and schedules are held as immutable snapshots. Replacing
    any of them invalidates every cached view; so does the clock crossing the
    next schedule boundary. Each view is computed from a single snapshot.
    """

    def __init__(
        self,
        marketplace: str,
        products: Iterable[Product] = (),
        tiers: Iterable[ShippingRateTier] = (),
        schedules: Iterable[CommissionSchedule] = (),
    ) -> None:
        self.marketplace = normalize_marketplace(marketplace)
        self._lock = threading.Lock()
        self._products: tuple[Product, ...] = tuple(products)
        _warn_duplicate_ids(self._products)
        self._tiers: tuple[ShippingRateTier, ...] = tuple(tiers)
        self._schedules: tuple[CommissionSchedule, ...] = tuple(schedules)
        self._views: list[ProductView] | None = None
        self._valid_until: datetime | None = None
        self.generation = 0

    # ── Upstream reference tables ────────────────────────────────────────────

    def set_products(self, products: Iterable[Product]) -> None:
        with self._lock:
            self._products = tuple(products)
            _warn_duplicate_ids(self._products)
            self._invalidate("products")

    def set_tiers(self, tiers: Iterable[ShippingRateTier]) -> None:
        with self._lock:
            self._tiers = tuple(tiers)
            self._invalidate("shipping tiers")

    def set_schedules(self, schedules: Iterable[CommissionSchedule]) -> None:
        with self._lock:
            self._schedules = tuple(schedules)
            self._invalidate("commission schedules")

    def invalidate(self) -> None:
        with self._lock:
            self._invalidate("manual")

    def _invalidate(self, reason: str) -> None:
        self._views = None
        self._valid_until = None
        logger.debug("ProfitBook %s invalidated (%s)", self.marketplace, reason)

    # ── Derived views ────────────────────────────────────────────────────────

    @property
    def is_stale(self) -> bool:
        return self._views is None

    def refresh(self, now: datetime | None = None) -> list[ProductView]:
        """Recompute every view at *now*, unconditionally."""
        now = ensure_aware(now)
        with self._lock:
            return self._recompute(now)

    def views(self, now: datetime | None = None) -> list[ProductView]:
        """Cached views, recomputed when invalidated or past the next schedule boundary."""
        now = ensure_aware(now)
        with self._lock:
            if self._views is None or (self._valid_until is not None and now >= self._valid_until):
                return self._recompute(now)
            return list(self._views)

    def view(self, product_id: str, now: datetime | None = None) -> ProductView | None:
        for v in self.views(now):
            if v.product.id == product_id:
                return v
        return None

    def _recompute(self, now: datetime) -> list[ProductView]:
        products, tiers, schedules = self._products, self._tiers, self._schedules
        computed = [resolve_product(p, self.marketplace, tiers, schedules, now) for p in products]
        self._views = computed
        self._valid_until = next_boundary(
            [s for s in schedules if s.marketplace == self.marketplace], now
        )
        self.generation += 1
        logger.debug(
            "ProfitBook %s recomputed %d view(s); valid until %s",
            self.marketplace, len(computed), self._valid_until,
        )
        return list(computed)
