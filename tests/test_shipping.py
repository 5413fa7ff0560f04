"""Tests for shipping.py"""

import pytest

from profit_watch.models import UNBOUNDED_MAX, RateType, ShippingRateTier
from profit_watch.shipping import (
    TierOverlapError,
    default_tiers,
    find_matching_tier,
    find_overlaps,
    resolve_shipping_cost,
    select_effective_tiers,
    validate_tiers,
)


def _tier(rate_type, lo, hi, cost, store_id=None, is_active=True, tier_id=None):
    return ShippingRateTier(
        rate_type=rate_type,
        min_value=lo,
        max_value=hi,
        cost=cost,
        marketplace="trendyol",
        store_id=store_id,
        is_active=is_active,
        id=tier_id,
    )


DESI = RateType.WEIGHT_CLASS
PRICE = RateType.PRICE_BAND

MIXED = [
    _tier(DESI, 0, 3, 30),
    _tier(DESI, 3, UNBOUNDED_MAX, 50),
    _tier(PRICE, 0, 200, 20),
    _tier(PRICE, 200, UNBOUNDED_MAX, 0),
]


def test_cheaper_axis_wins():
    assert resolve_shipping_cost(2, 150, MIXED) == 20


def test_single_axis_match():
    desi_only = [t for t in MIXED if t.rate_type is DESI]
    assert resolve_shipping_cost(2, 150, desi_only) == 30


def test_no_tiers_resolves_to_zero():
    assert resolve_shipping_cost(2, 150, []) == 0.0


def test_no_match_resolves_to_zero():
    tiers = [_tier(DESI, 5, 10, 25)]
    assert resolve_shipping_cost(2, 150, tiers) == 0.0


def test_zero_desi_is_treated_as_one():
    tiers = [_tier(DESI, 0, 1, 9.99), _tier(DESI, 1, 2, 11.99)]
    assert resolve_shipping_cost(0, 0, tiers) == 11.99
    assert resolve_shipping_cost(-3, 0, tiers) == 11.99


def test_bounds_are_half_open():
    tiers = [_tier(DESI, 0, 1, 9.99), _tier(DESI, 1, 2, 11.99), _tier(DESI, 2, 3, 13.99)]
    assert resolve_shipping_cost(2, 0, tiers) == 13.99
    assert resolve_shipping_cost(1.999, 0, tiers) == 11.99


def test_top_tier_is_open_ended():
    tiers = [_tier(DESI, 0, 10, 24.99), _tier(DESI, 10, 20, 44.99)]
    assert resolve_shipping_cost(500, 0, tiers) == 44.99


def test_inactive_tiers_are_ignored():
    tiers = [_tier(DESI, 0, 5, 10, is_active=False), _tier(DESI, 0, 5, 18)]
    assert resolve_shipping_cost(2, 0, tiers) == 18


def test_unsorted_tiers_still_match():
    tiers = list(reversed(MIXED))
    assert resolve_shipping_cost(4, 250, tiers) == 0


def test_find_matching_tier_empty():
    assert find_matching_tier([], 3) is None


def test_default_tiers_cover_all_desi_values():
    tiers = default_tiers("Trendyol")
    assert all(t.marketplace == "trendyol" and t.store_id is None for t in tiers)
    assert resolve_shipping_cost(0.5, 0, tiers) == 9.99
    assert resolve_shipping_cost(25, 0, tiers) == 59.99
    assert tiers[-1].is_open_ended


def test_custom_tiers_replace_defaults_per_rate_type():
    defaults = default_tiers("trendyol") + [_tier(PRICE, 0, UNBOUNDED_MAX, 35)]
    custom = [_tier(DESI, 0, UNBOUNDED_MAX, 12.5, store_id="store-1")]
    merged = select_effective_tiers(defaults, custom)
    desi = [t for t in merged if t.rate_type is DESI]
    price = [t for t in merged if t.rate_type is PRICE]
    assert len(desi) == 1 and desi[0].is_custom
    assert len(price) == 1 and not price[0].is_custom


def test_inactive_custom_tiers_do_not_shadow_defaults():
    custom = [_tier(DESI, 0, UNBOUNDED_MAX, 12.5, store_id="store-1", is_active=False)]
    merged = select_effective_tiers(default_tiers("trendyol"), custom)
    assert len(merged) == 8


def test_find_overlaps_within_partition():
    tiers = [_tier(DESI, 0, 5, 10), _tier(DESI, 4, 10, 20), _tier(DESI, 4, 10, 20, store_id="store-1")]
    overlaps = find_overlaps(tiers)
    assert len(overlaps) == 1


def test_validate_tiers_rejects_overlap():
    with pytest.raises(TierOverlapError):
        validate_tiers([_tier(DESI, 0, 5, 10), _tier(DESI, 4, 10, 20)])


def test_validate_tiers_rejects_empty_range():
    with pytest.raises(TierOverlapError):
        validate_tiers([_tier(DESI, 5, 5, 10)])


def test_validate_tiers_accepts_adjacent_ranges():
    validate_tiers(default_tiers("trendyol"))
