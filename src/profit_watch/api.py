"""FastAPI Web API for Profit Watch."""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional

import psycopg2
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import __version__
from .calculator import break_even_price, calculate_profit
from .commission import resolve_commission_rate
from .config import EngineConfig, load_config
from .db import apply_schema, close_pool, fetch_products, fetch_schedules, fetch_tiers, init_pool
from .models import CommissionSchedule, ProfitInput, ShippingRateTier
from .normalize import ParseError, normalize_marketplace, utc_now
from .scenario import preview_commission_change, simulate_price_change
from .shipping import default_tiers, resolve_shipping_cost
from .views import ProfitBook, refresh_interval

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Profit Watch API",
    description=(
        "Per-unit profit for marketplace sellers: commission campaigns, "
        "shipping barem lookup and what-if price simulation."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


_engine = EngineConfig()


@app.on_event("startup")
def startup() -> None:
    global _engine
    config_path = os.environ.get("PROFIT_WATCH_CONFIG")
    if config_path:
        _engine = load_config(config_path).engine
    try:
        init_pool()
        apply_schema()
        logger.info("Profit Watch API started (PostgreSQL connected).")
    except psycopg2.Error as e:
        logger.warning("PostgreSQL not available, store endpoints will return 503: %s", e)


@app.on_event("shutdown")
def shutdown() -> None:
    close_pool()


# ── Request bodies ───────────────────────────────────────────────────────────

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProfitRequest(_CamelModel):
    sales_price: Optional[float] = None
    buy_price: Optional[float] = None
    commission_rate: Optional[float] = None
    vat_rate: Optional[float] = None
    desi: Optional[float] = None
    shipping_cost: Optional[float] = None
    extra_cost: Optional[float] = None
    ad_cost: Optional[float] = None
    packaging_cost: Optional[float] = None
    packaging_vat_included: bool = True
    return_rate: Optional[float] = None
    service_fee: Optional[float] = None

    def to_input(self) -> ProfitInput:
        return ProfitInput.from_mapping(self.model_dump())


class SimulateRequest(_CamelModel):
    input: ProfitRequest
    target_price: float


class TierBody(_CamelModel):
    rate_type: str
    min_value: float
    max_value: Optional[float] = None
    cost: float
    vat_included: bool = True
    is_active: bool = True


class ShippingRequest(_CamelModel):
    desi: Optional[float] = None
    sales_price: Optional[float] = None
    marketplace: str = "trendyol"
    tiers: Optional[list[TierBody]] = Field(
        default=None, description="Barem to search; the marketplace default desi barem when omitted."
    )


class ScheduleBody(_CamelModel):
    id: str
    store_id: str = ""
    marketplace: str
    product_id: Optional[str] = None
    normal_rate: float
    campaign_rate: float
    campaign_name: str = ""
    valid_from: datetime
    valid_until: datetime
    seller_discount_share: float = 1.0
    marketplace_discount_share: float = 0.0
    is_active: bool = True


class CommissionRequest(_CamelModel):
    product_id: Optional[str] = None
    marketplace: str
    fallback_rate: float = 0.0
    schedules: list[ScheduleBody] = Field(default_factory=list)
    at: Optional[datetime] = None


class PreviewRequest(_CamelModel):
    products: list[ProfitRequest]
    new_rate: float


def _tiers_from_body(body: ShippingRequest) -> list[ShippingRateTier]:
    if body.tiers is None:
        return default_tiers(body.marketplace)
    rows = []
    for t in body.tiers:
        row = t.model_dump(exclude_none=True)
        row["marketplace"] = body.marketplace
        rows.append(row)
    try:
        return [ShippingRateTier.from_row(r) for r in rows]
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health", tags=["meta"])
def health() -> dict[str, str]:
    """Returns 200 OK when the API is up."""
    return {"status": "ok", "version": __version__}


# ── Pure engine endpoints ────────────────────────────────────────────────────

@app.post("/profit/calculate", tags=["profit"])
def profit_calculate(body: ProfitRequest) -> dict[str, Any]:
    """
    Full cost breakdown for one unit.

    `commissionRate` is a fraction (0.15), `vatRate` and `returnRate` are
    percentages (20 = 20%). Missing fields count as 0.
    """
    data = body.to_input()
    result = calculate_profit(data).as_dict()
    result["breakEvenPrice"] = break_even_price(data)
    return result


@app.post("/profit/simulate", tags=["profit"])
def profit_simulate(body: SimulateRequest) -> dict[str, Any]:
    """Profit at `targetPrice` next to the current profit; only the price changes."""
    return simulate_price_change(body.input.to_input(), body.target_price).as_dict()


@app.post("/shipping/resolve", tags=["shipping"])
def shipping_resolve(body: ShippingRequest) -> dict[str, Any]:
    """
    Cheaper of the desi match and the price-band match.

    **Example:** `{"desi": 2.5, "salesPrice": 180}`
    """
    tiers = _tiers_from_body(body)
    cost = resolve_shipping_cost(body.desi, body.sales_price, tiers)
    return {"shippingCost": cost, "tierCount": len(tiers)}


@app.post("/commission/resolve", tags=["commission"])
def commission_resolve(body: CommissionRequest) -> dict[str, Any]:
    """Effective commission rate at `at` (default: now) for a product on a marketplace."""
    try:
        schedules = [CommissionSchedule.from_row(s.model_dump()) for s in body.schedules]
    except ParseError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    resolution = resolve_commission_rate(
        body.product_id, body.marketplace, schedules, body.fallback_rate, now=body.at
    )
    return resolution.as_dict()


@app.post("/commission/preview", tags=["commission"])
def commission_preview(body: PreviewRequest) -> dict[str, Any]:
    """Average margin before and after moving every product to `newRate`."""
    preview = preview_commission_change([p.to_input() for p in body.products], body.new_rate)
    if preview is None:
        raise HTTPException(status_code=422, detail="No product with a positive sales price.")
    return preview.as_dict()


# ── Store endpoints (PostgreSQL) ─────────────────────────────────────────────

@app.get("/stores/{store_id}/products", tags=["stores"])
def store_products(
    store_id: str,
    marketplace: str = Query(default="trendyol", description="Marketplace key, e.g. 'trendyol'"),
) -> dict[str, Any]:
    """
    Every product of the store resolved at the current instant.

    `refreshSeconds` tells the client when to ask again: 1 second while a
    campaign is running (for the countdown), 60 seconds otherwise.
    """
    mp = normalize_marketplace(marketplace)
    try:
        products = fetch_products(store_id)
        tiers = fetch_tiers(store_id, mp)
        schedules = fetch_schedules(store_id, mp)
    except psycopg2.Error as exc:
        logger.warning("Store %s unavailable: %s", store_id, exc)
        raise HTTPException(status_code=503, detail="Database is not available.") from exc

    now = utc_now()
    book = ProfitBook(mp, products, tiers, schedules)
    views = book.views(now)
    return {
        "storeId": store_id,
        "marketplace": mp,
        "resolvedAt": now.isoformat(),
        "refreshSeconds": refresh_interval(
            schedules,
            mp,
            now,
            countdown_visible=True,
            countdown_seconds=_engine.countdown_refresh_seconds,
            idle_seconds=_engine.idle_refresh_seconds,
        ),
        "products": [v.as_dict() for v in views],
    }
