"""Tests for views.py"""

from datetime import datetime, timedelta, timezone

from profit_watch.models import CommissionSchedule, Product
from profit_watch.shipping import default_tiers
from profit_watch.views import (
    SHIPPING_BAREM,
    SHIPPING_MANUAL,
    ProfitBook,
    refresh_interval,
    resolve_product,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TIERS = default_tiers("trendyol")

MUG = Product(
    id="p-1",
    name="Kupa",
    buy_price=400,
    sales_price=1000,
    commission_rate=0.15,
    vat_rate=20,
    desi=2,
)

MAT = Product(
    id="p-2",
    name="Mat",
    buy_price=100,
    sales_price=300,
    commission_rate=0.12,
    vat_rate=20,
    desi=4,
    shipping_cost=45,
)


def _campaign(rate, start, end, product_id=None, sid="c-1"):
    return CommissionSchedule(
        id=sid,
        store_id="store-1",
        marketplace="trendyol",
        product_id=product_id,
        normal_rate=0.15,
        campaign_rate=rate,
        campaign_name="Flaş",
        valid_from=start,
        valid_until=end,
    )


def test_resolve_product_uses_barem():
    view = resolve_product(MUG, "trendyol", TIERS, [], NOW)
    # desi 2 falls in [2, 3)
    assert view.shipping_cost == 13.99
    assert view.shipping_source == SHIPPING_BAREM
    assert view.commission.rate == 0.15
    assert view.profit.net_profit == round(1000 - 400 - 200 - 150 - 13.99, 2)


def test_manual_shipping_wins_over_barem():
    view = resolve_product(MAT, "trendyol", TIERS, [], NOW)
    assert view.shipping_cost == 45
    assert view.shipping_source == SHIPPING_MANUAL


def test_resolve_product_applies_campaign():
    campaign = _campaign(0.05, NOW - timedelta(hours=1), NOW + timedelta(hours=1))
    view = resolve_product(MUG, "trendyol", TIERS, [campaign], NOW)
    assert view.commission.is_campaign_active
    assert view.profit.commission == 50.0
    assert view.profit_input.commission_rate == 0.05


def test_view_as_dict():
    d = resolve_product(MUG, "trendyol", TIERS, [], NOW).as_dict()
    assert d["id"] == "p-1"
    assert d["profit"]["netProfit"] == 236.01
    assert d["commission"]["isCampaignActive"] is False
    assert d["resolvedAt"] == NOW.isoformat()


def test_refresh_interval():
    campaign = _campaign(0.05, NOW - timedelta(hours=1), NOW + timedelta(hours=1))
    assert refresh_interval([campaign], "trendyol", NOW, countdown_visible=True) == 1
    assert refresh_interval([campaign], "trendyol", NOW, countdown_visible=False) == 60
    assert refresh_interval([], "trendyol", NOW, countdown_visible=True) == 60
    assert refresh_interval([campaign], "trendyol", NOW + timedelta(hours=2), countdown_visible=True) == 60


def test_book_caches_until_invalidated():
    book = ProfitBook("trendyol", [MUG, MAT], TIERS)
    assert book.is_stale
    first = book.views(NOW)
    assert len(first) == 2
    assert book.generation == 1
    book.views(NOW + timedelta(minutes=5))
    assert book.generation == 1

    book.invalidate()
    assert book.is_stale
    book.views(NOW)
    assert book.generation == 2


def test_book_recomputes_when_tiers_change():
    book = ProfitBook("trendyol", [MUG], TIERS)
    assert book.view("p-1", NOW).shipping_cost == 13.99
    book.set_tiers([])
    assert book.view("p-1", NOW).shipping_cost == 0.0


def test_book_recomputes_when_products_change():
    book = ProfitBook("trendyol", [MUG], TIERS)
    book.views(NOW)
    book.set_products([MUG, MAT])
    assert {v.product.id for v in book.views(NOW)} == {"p-1", "p-2"}


def test_book_recomputes_at_campaign_boundary():
    start = NOW + timedelta(hours=1)
    end = NOW + timedelta(hours=3)
    book = ProfitBook("trendyol", [MUG], TIERS, [_campaign(0.05, start, end)])

    assert book.view("p-1", NOW).commission.rate == 0.15
    assert book.view("p-1", start).commission.rate == 0.05
    assert book.view("p-1", end - timedelta(milliseconds=1)).commission.rate == 0.05
    assert book.view("p-1", end).commission.rate == 0.15
    assert book.generation == 3


def test_book_picks_up_new_schedules():
    book = ProfitBook("trendyol", [MUG], TIERS)
    assert not book.view("p-1", NOW).commission.is_campaign_active
    book.set_schedules([_campaign(0.08, NOW - timedelta(days=1), NOW + timedelta(days=1), product_id="p-1")])
    assert book.view("p-1", NOW).commission.rate == 0.08


def test_book_refresh_is_unconditional():
    book = ProfitBook("trendyol", [MUG], TIERS)
    book.views(NOW)
    book.refresh(NOW)
    assert book.generation == 2


def test_book_view_unknown_product():
    assert ProfitBook("trendyol", [MUG], TIERS).view("missing", NOW) is None


def test_book_keeps_products_sharing_an_id(caplog):
    twin_a = Product(id="dup", name="A", buy_price=10, sales_price=100)
    twin_b = Product(id="dup", name="B", buy_price=20, sales_price=100)
    with caplog.at_level("WARNING", logger="profit_watch.views"):
        book = ProfitBook("trendyol", [twin_a, twin_b], TIERS, [])
    assert "Duplicate product id" in caplog.text
    assert [v.product.name for v in book.views(NOW)] == ["A", "B"]
    assert book.view("dup", NOW).product.name == "A"
