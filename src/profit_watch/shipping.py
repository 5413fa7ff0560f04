"""
Shipping barem lookup: desi (weight-class) and price-band tiers.

A marketplace publishes a default barem; a seller may define custom tiers for
a store. Custom tiers of a given rate type replace the defaults of that rate
type entirely (see :func:`select_effective_tiers`). The lookup itself
(:func:`resolve_shipping_cost`) only ever picks within the set it is given.

Both axes are evaluated independently and the cheaper matching cost wins.
When neither axis matches, the cost is ``0.0``: a missing barem row must not
block a profit calculation.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Sequence

from .models import UNBOUNDED_MAX, RateType, ShippingRateTier
from .normalize import normalize_marketplace, to_number

logger = logging.getLogger(__name__)


class TierOverlapError(Exception):
    """Raised when tiers in one (store, marketplace, rate type) partition overlap."""


# ── Marketplace default barem ─────────────────────────────────────────────────

# (min_desi, max_desi, cost), VAT included
DEFAULT_DESI_TIERS: tuple[tuple[float, float, float], ...] = (
    (0, 1, 9.99),
    (1, 2, 11.99),
    (2, 3, 13.99),
    (3, 5, 17.99),
    (5, 10, 24.99),
    (10, 15, 34.99),
    (15, 20, 44.99),
    (20, UNBOUNDED_MAX, 59.99),
)


def default_tiers(marketplace: str) -> list[ShippingRateTier]:
    """Marketplace-wide seed rows (``store_id`` is ``None``)."""
    mp = normalize_marketplace(marketplace)
    return [
        ShippingRateTier(
            rate_type=RateType.WEIGHT_CLASS,
            min_value=float(lo),
            max_value=float(hi),
            cost=cost,
            marketplace=mp,
            store_id=None,
            vat_included=True,
        )
        for lo, hi, cost in DEFAULT_DESI_TIERS
    ]


# ── Lookup ────────────────────────────────────────────────────────────────────

def find_matching_tier(tiers: Iterable[ShippingRateTier], value: float) -> ShippingRateTier | None:
    """
    Return the tier with ``min_value <= value < max_value`` on a single axis.

    Tiers are scanned in ascending ``min_value`` order. The highest tier is
    open at the top, so any value at or above its ``min_value`` matches it
    regardless of the stored ``max_value``.
    """
    ordered = sorted(tiers, key=lambda t: t.min_value)
    if not ordered:
        return None
    for tier in ordered:
        if tier.contains(value):
            return tier
    top = ordered[-1]
    if value >= top.min_value:
        return top
    return None


def resolve_shipping_cost(
    desi: float,
    sales_price: float,
    tiers: Sequence[ShippingRateTier],
) -> float:
    """
    Resolve the shipping cost for a ``(desi, sales_price)`` pair.

    - ``desi <= 0`` is treated as ``1``.
    - Inactive tiers are ignored.
    - Weight-class and price-band tiers are matched independently; if both
      match, the lower cost is returned; if one matches, its cost is returned.
    - No match on either axis returns ``0.0``.
    """
    desi_value = to_number(desi)
    if desi_value <= 0:
        desi_value = 1.0
    price_value = to_number(sales_price)

    by_type: dict[RateType, list[ShippingRateTier]] = defaultdict(list)
    for tier in tiers:
        if tier.is_active:
            by_type[tier.rate_type].append(tier)

    weight_match = find_matching_tier(by_type[RateType.WEIGHT_CLASS], desi_value)
    price_match = find_matching_tier(by_type[RateType.PRICE_BAND], price_value)

    candidates = [t.cost for t in (weight_match, price_match) if t is not None]
    if not candidates:
        logger.debug("No barem tier for desi=%s price=%s; shipping resolves to 0", desi_value, price_value)
        return 0.0
    return min(candidates)


# ── Data-loading precedence and validation ────────────────────────────────────

def select_effective_tiers(
    defaults: Iterable[ShippingRateTier],
    custom: Iterable[ShippingRateTier],
) -> list[ShippingRateTier]:
    """
    Merge marketplace defaults with a store's custom tiers.

    For each rate type, if the store defines any active custom tier, the
    custom tiers are used and the defaults of that rate type are dropped.
    The result is sorted by rate type, then ``min_value``.
    """
    custom_by_type: dict[RateType, list[ShippingRateTier]] = defaultdict(list)
    for tier in custom:
        if tier.is_active:
            custom_by_type[tier.rate_type].append(tier)

    merged: list[ShippingRateTier] = []
    for tier in defaults:
        if tier.is_active and tier.rate_type not in custom_by_type:
            merged.append(tier)
    for tiers in custom_by_type.values():
        merged.extend(tiers)

    return sorted(merged, key=lambda t: (t.rate_type.value, t.min_value))


def find_overlaps(
    tiers: Iterable[ShippingRateTier],
) -> list[tuple[ShippingRateTier, ShippingRateTier]]:
    """Return adjacent overlapping pairs within each (store, marketplace, rate type) partition."""
    partitions: dict[tuple[str | None, str, RateType], list[ShippingRateTier]] = defaultdict(list)
    for tier in tiers:
        partitions[(tier.store_id, tier.marketplace, tier.rate_type)].append(tier)

    overlaps: list[tuple[ShippingRateTier, ShippingRateTier]] = []
    for rows in partitions.values():
        ordered = sorted(rows, key=lambda t: (t.min_value, t.max_value))
        for prev, nxt in zip(ordered, ordered[1:]):
            if nxt.min_value < prev.max_value:
                overlaps.append((prev, nxt))
    return overlaps


def validate_tiers(tiers: Iterable[ShippingRateTier]) -> None:
    """
    Raise :class:`TierOverlapError` for malformed or overlapping tiers.

    A tier is malformed when ``max_value <= min_value``.
    """
    rows = list(tiers)
    for tier in rows:
        if tier.max_value <= tier.min_value:
            raise TierOverlapError(
                f"Tier {tier.rate_type.value} [{tier.min_value}, {tier.max_value}) is empty"
            )
    overlaps = find_overlaps(rows)
    if overlaps:
        a, b = overlaps[0]
        raise TierOverlapError(
            f"{len(overlaps)} overlapping {a.rate_type.value} tier(s) for marketplace "
            f"{a.marketplace!r}: [{a.min_value}, {a.max_value}) and [{b.min_value}, {b.max_value})"
        )
