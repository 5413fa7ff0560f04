"""Tests for db.py (validation paths only, no PostgreSQL needed)"""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from profit_watch import db
from profit_watch.commission import ScheduleError
from profit_watch.models import CommissionSchedule, RateType, ShippingRateTier
from profit_watch.shipping import TierOverlapError

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _no_connection():
    raise AssertionError("validation must fail before touching the database")


def test_dsn_from_environment(monkeypatch):
    monkeypatch.setenv("PGHOST", "db.internal")
    monkeypatch.setenv("PGDATABASE", "shop")
    dsn = db._dsn()
    assert "host=db.internal" in dsn
    assert "dbname=shop" in dsn


def test_upsert_tier_rejects_overlap(monkeypatch):
    existing = ShippingRateTier(
        rate_type=RateType.WEIGHT_CLASS, min_value=0, max_value=5, cost=10,
        marketplace="trendyol", store_id="store-1", id="t-1",
    )
    monkeypatch.setattr(db, "fetch_raw_tiers", lambda store_id, marketplace: [existing])
    monkeypatch.setattr(db, "get_conn", _no_connection)

    new = ShippingRateTier(
        rate_type=RateType.WEIGHT_CLASS, min_value=4, max_value=10, cost=20,
        marketplace="trendyol", store_id="store-1",
    )
    with pytest.raises(TierOverlapError):
        db.upsert_tier(new)


def test_upsert_tier_ignores_other_rate_type_and_itself(monkeypatch):
    existing = ShippingRateTier(
        rate_type=RateType.PRICE_BAND, min_value=0, max_value=500, cost=30,
        marketplace="trendyol", store_id="store-1", id="t-1",
    )
    edited = ShippingRateTier(
        rate_type=RateType.WEIGHT_CLASS, min_value=0, max_value=5, cost=12,
        marketplace="trendyol", store_id="store-1", id="t-2",
    )
    monkeypatch.setattr(db, "fetch_raw_tiers", lambda store_id, marketplace: [existing, edited])

    executed = []

    class _Cursor:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def execute(self, sql, params):
            executed.append(params)

    class _Conn:
        def cursor(self):
            return _Cursor()

    class _ConnCtx:
        def __enter__(self):
            return _Conn()

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(db, "get_conn", lambda: _ConnCtx())
    saved = db.upsert_tier(edited)
    assert saved.id == "t-2"
    assert executed[0]["cost"] == 12


def test_create_schedule_validates_window(monkeypatch):
    monkeypatch.setattr(db, "get_conn", _no_connection)
    schedule = CommissionSchedule(
        id="s-1", store_id="store-1", marketplace="trendyol", product_id=None,
        normal_rate=0.15, campaign_rate=0.05, campaign_name="Ters",
        valid_from=NOW, valid_until=NOW - timedelta(hours=1),
    )
    with pytest.raises(ScheduleError):
        db.create_schedule(schedule)


def test_schema_defines_every_table():
    sql = (Path(db.__file__).parent / "schema.sql").read_text(encoding="utf-8")
    for table in ("products", "shipping_rates", "commission_schedules", "orders", "order_items"):
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql
