"""PostgreSQL connection pool and data-access helpers."""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Generator

import psycopg2
import psycopg2.extras
from psycopg2.pool import ThreadedConnectionPool

from .commission import validate_schedule
from .models import CommissionSchedule, Product, ShippingRateTier
from .normalize import normalize_marketplace
from .orders import Order
from .shipping import default_tiers, select_effective_tiers, validate_tiers

logger = logging.getLogger(__name__)

_pool: ThreadedConnectionPool | None = None

# ── Connection pool ──────────────────────────────────────────────────────────

def _dsn() -> str:
    """Build DSN from environment variables (Docker-friendly)."""
    return (
        f"host={os.environ.get('PGHOST', 'localhost')} "
        f"port={os.environ.get('PGPORT', '5432')} "
        f"dbname={os.environ.get('PGDATABASE', 'profit_watch')} "
        f"user={os.environ.get('PGUSER', 'profit')} "
        f"password={os.environ.get('PGPASSWORD', 'profit')}"
    )


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Initialise the global connection pool. Call once at application startup."""
    global _pool
    if _pool is not None:
        return
    _pool = ThreadedConnectionPool(minconn, maxconn, dsn=_dsn())
    logger.info("PostgreSQL pool initialised (min=%d max=%d)", minconn, maxconn)


def close_pool() -> None:
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


@contextmanager
def get_conn() -> Generator[psycopg2.extensions.connection, None, None]:
    """Yield a connection from the pool, auto-commit or rollback on exit."""
    if _pool is None:
        init_pool()
    assert _pool is not None
    conn = _pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)


def _fetch_all(sql: str, params: dict) -> list[dict]:
    with get_conn() as conn:
        with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]


# ── Schema bootstrap ─────────────────────────────────────────────────────────

def apply_schema() -> None:
    """Create tables if they don't exist (idempotent)."""
    sql = (Path(__file__).parent / "schema.sql").read_text(encoding="utf-8")
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql)
    logger.info("Schema applied.")


# ── Read helpers ─────────────────────────────────────────────────────────────

_TIER_COLUMNS = "id, store_id, marketplace, rate_type, min_value, max_value, cost, vat_included, is_active"

_SCHEDULE_COLUMNS = (
    "id, store_id, marketplace, product_id, normal_rate, campaign_rate, campaign_name, "
    "valid_from, valid_until, seller_discount_share, marketplace_discount_share, is_active"
)


def fetch_products(store_id: str) -> list[Product]:
    sql = """
        SELECT id, store_id, name, category, external_id, buy_price, sales_price,
               commission_rate, vat_rate, desi, shipping_cost, extra_cost, ad_cost,
               packaging_cost, packaging_vat_included, return_rate, service_fee,
               stock_status
        FROM products
        WHERE store_id = %(store_id)s
        ORDER BY created_at, id
    """
    return [Product.from_row(r) for r in _fetch_all(sql, {"store_id": store_id})]


def fetch_raw_tiers(store_id: str | None, marketplace: str) -> list[ShippingRateTier]:
    """Active tiers exactly as stored: defaults when *store_id* is ``None``, else the store's custom rows."""
    sql = f"""
        SELECT {_TIER_COLUMNS}
        FROM shipping_rates
        WHERE marketplace = %(marketplace)s
          AND store_id IS NOT DISTINCT FROM %(store_id)s
          AND is_active
        ORDER BY rate_type, min_value
    """
    params = {"marketplace": normalize_marketplace(marketplace), "store_id": store_id}
    return [ShippingRateTier.from_row(r) for r in _fetch_all(sql, params)]


def fetch_tiers(store_id: str, marketplace: str) -> list[ShippingRateTier]:
    """Effective barem for a store: its custom tiers replace the defaults per rate type."""
    defaults = fetch_raw_tiers(None, marketplace)
    custom = fetch_raw_tiers(store_id, marketplace)
    return select_effective_tiers(defaults, custom)


def fetch_schedules(store_id: str, marketplace: str) -> list[CommissionSchedule]:
    """All schedules of the store on *marketplace*, deactivated rows included."""
    sql = f"""
        SELECT {_SCHEDULE_COLUMNS}
        FROM commission_schedules
        WHERE store_id = %(store_id)s AND marketplace = %(marketplace)s
        ORDER BY valid_from DESC, id
    """
    params = {"store_id": store_id, "marketplace": normalize_marketplace(marketplace)}
    return [CommissionSchedule.from_row(r) for r in _fetch_all(sql, params)]


# ── Write helpers: shipping barem ────────────────────────────────────────────

_UPSERT_TIER_SQL = """
    INSERT INTO shipping_rates
        (id, store_id, marketplace, rate_type, min_value, max_value, cost, vat_included, is_active)
    VALUES
        (%(id)s, %(store_id)s, %(marketplace)s, %(rate_type)s, %(min_value)s,
         %(max_value)s, %(cost)s, %(vat_included)s, %(is_active)s)
    ON CONFLICT (id) DO UPDATE SET
        rate_type    = EXCLUDED.rate_type,
        min_value    = EXCLUDED.min_value,
        max_value    = EXCLUDED.max_value,
        cost         = EXCLUDED.cost,
        vat_included = EXCLUDED.vat_included,
        is_active    = EXCLUDED.is_active
"""


def upsert_tier(tier: ShippingRateTier) -> ShippingRateTier:
    """
    Insert or update one tier after checking it against its partition.

    Raises:
        TierOverlapError: if the tier is empty or overlaps a sibling.
    """
    if tier.id is None:
        tier = replace(tier, id=str(uuid.uuid4()))
    siblings = [
        t for t in fetch_raw_tiers(tier.store_id, tier.marketplace)
        if t.rate_type is tier.rate_type and t.id != tier.id
    ]
    validate_tiers([*siblings, tier])

    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_TIER_SQL, tier.as_row())
    logger.info(
        "Tier %s saved (%s %s [%s, %s) = %.2f)",
        tier.id, tier.marketplace, tier.rate_type.value, tier.min_value, tier.max_value, tier.cost,
    )
    return tier


def delete_tier(tier_id: str) -> bool:
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM shipping_rates WHERE id = %(id)s", {"id": tier_id})
            deleted = cur.rowcount > 0
    logger.info("Tier %s %s", tier_id, "deleted" if deleted else "not found")
    return deleted


def reset_tiers_to_defaults(store_id: str, marketplace: str) -> int:
    """Drop every custom tier of the store; the marketplace defaults apply again."""
    sql = """
        DELETE FROM shipping_rates
        WHERE store_id = %(store_id)s AND marketplace = %(marketplace)s
    """
    params = {"store_id": store_id, "marketplace": normalize_marketplace(marketplace)}
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, params)
            removed = cur.rowcount
    logger.info("Removed %d custom tier(s) for store %s on %s", removed, store_id, params["marketplace"])
    return removed


def seed_default_tiers(marketplace: str) -> int:
    """Insert the built-in default desi barem when the marketplace has none."""
    if fetch_raw_tiers(None, marketplace):
        return 0
    tiers = [replace(t, id=str(uuid.uuid4())) for t in default_tiers(marketplace)]
    with get_conn() as conn:
        with conn.cursor() as cur:
            psycopg2.extras.execute_batch(cur, _UPSERT_TIER_SQL, [t.as_row() for t in tiers], page_size=100)
    logger.info("Seeded %d default tier(s) for %s", len(tiers), normalize_marketplace(marketplace))
    return len(tiers)


# ── Write helpers: commission schedules ──────────────────────────────────────

def create_schedule(schedule: CommissionSchedule) -> CommissionSchedule:
    """
    Persist a new schedule.

    Raises:
        ScheduleError: if the window or rates are invalid.
    """
    validate_schedule(schedule)
    sql = f"""
        INSERT INTO commission_schedules ({_SCHEDULE_COLUMNS})
        VALUES (
            %(id)s, %(store_id)s, %(marketplace)s, %(product_id)s, %(normal_rate)s,
            %(campaign_rate)s, %(campaign_name)s, %(valid_from)s, %(valid_until)s,
            %(seller_discount_share)s, %(marketplace_discount_share)s, %(is_active)s
        )
    """
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(sql, schedule.as_row())
    logger.info(
        "Schedule %s created: %r %.4f from %s until %s",
        schedule.id, schedule.campaign_name, schedule.campaign_rate,
        schedule.valid_from.isoformat(), schedule.valid_until.isoformat(),
    )
    return schedule


def deactivate_schedule(schedule_id: str) -> bool:
    """Soft-delete: the row stays for history but never resolves again."""
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE commission_schedules SET is_active = FALSE WHERE id = %(id)s",
                {"id": schedule_id},
            )
            updated = cur.rowcount > 0
    logger.info("Schedule %s %s", schedule_id, "deactivated" if updated else "not found")
    return updated


# ── Write helpers: orders ────────────────────────────────────────────────────

def insert_order(order: Order) -> int:
    """Store an order and its captured lines verbatim. Returns the new order id."""
    order_sql = """
        INSERT INTO orders (
            store_id, order_number, marketplace, marketplace_order_id, order_date,
            total_amount, total_shipping, total_commission, total_profit,
            campaign_name, status, notes
        ) VALUES (
            %(store_id)s, %(order_number)s, %(marketplace)s, %(marketplace_order_id)s,
            %(order_date)s, %(total_amount)s, %(total_shipping)s, %(total_commission)s,
            %(total_profit)s, %(campaign_name)s, %(status)s, %(notes)s
        )
        RETURNING id
    """
    item_sql = """
        INSERT INTO order_items (
            order_id, product_id, product_name, quantity, unit_price, buy_price_at_sale,
            commission_rate_at_sale, vat_rate_at_sale, shipping_share, extra_cost, ad_cost,
            packaging_cost, packaging_vat_included, return_rate, service_fee,
            campaign_name, net_profit
        ) VALUES (
            %(order_id)s, %(product_id)s, %(product_name)s, %(quantity)s, %(unit_price)s,
            %(buy_price_at_sale)s, %(commission_rate_at_sale)s, %(vat_rate_at_sale)s,
            %(shipping_share)s, %(extra_cost)s, %(ad_cost)s, %(packaging_cost)s,
            %(packaging_vat_included)s, %(return_rate)s, %(service_fee)s,
            %(campaign_name)s, %(net_profit)s
        )
    """
    with get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(order_sql, order.as_row())
            order_id = cur.fetchone()[0]
            payload = [{**line.as_row(), "order_id": order_id} for line in order.lines]
            psycopg2.extras.execute_batch(cur, item_sql, payload, page_size=200)
    logger.info("Order %s stored with %d line(s)", order.order_number, len(order.lines))
    return order_id
