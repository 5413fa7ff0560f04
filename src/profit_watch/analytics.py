"""Store-level aggregation over resolved product views."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

import pandas as pd

from .calculator import round1, round2
from .models import ProductView

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Diğer"

FRAME_COLUMNS = [
    "id",
    "name",
    "category",
    "stock_status",
    "sales_price",
    "buy_price",
    "vat",
    "commission_rate",
    "commission",
    "is_campaign_active",
    "campaign_name",
    "shipping_cost",
    "shipping_source",
    "extra_cost",
    "ad_cost",
    "packaging_cost",
    "return_rate",
    "return_cost",
    "service_fee",
    "total_cost",
    "net_profit",
    "margin",
    "roi",
]


def views_to_frame(views: Sequence[ProductView]) -> pd.DataFrame:
    """One row per product with the published (already rounded) profit fields."""
    records = []
    for v in views:
        p, r, c = v.product, v.profit, v.commission
        records.append(
            {
                "id": p.id,
                "name": p.name,
                "category": p.category or UNCATEGORIZED,
                "stock_status": p.stock_status,
                "sales_price": r.sales_price,
                "buy_price": r.buy_price,
                "vat": r.vat,
                "commission_rate": c.rate,
                "commission": r.commission,
                "is_campaign_active": c.is_campaign_active,
                "campaign_name": c.campaign_name,
                "shipping_cost": r.shipping_cost,
                "shipping_source": v.shipping_source,
                "extra_cost": r.extra_cost,
                "ad_cost": r.ad_cost,
                "packaging_cost": r.packaging_cost,
                "return_rate": p.return_rate,
                "return_cost": r.return_cost,
                "service_fee": r.service_fee,
                "total_cost": r.total_cost,
                "net_profit": r.net_profit,
                "margin": r.margin,
                "roi": r.roi,
            }
        )
    return pd.DataFrame.from_records(records, columns=FRAME_COLUMNS)


@dataclass
class DashboardStats:
    product_count: int = 0
    total_revenue: float = 0.0
    total_profit: float = 0.0
    avg_margin: float = 0.0
    avg_roi: float = 0.0
    profitable_count: int = 0
    loss_count: int = 0
    campaign_count: int = 0
    top_products: list[dict[str, Any]] = field(default_factory=list)
    category_summary: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "productCount": self.product_count,
            "totalRevenue": self.total_revenue,
            "totalProfit": self.total_profit,
            "averageMargin": self.avg_margin,
            "averageRoi": self.avg_roi,
            "profitableCount": self.profitable_count,
            "lossCount": self.loss_count,
            "campaignCount": self.campaign_count,
            "topProducts": self.top_products,
            "categorySummary": self.category_summary,
        }


def category_summary(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Profit and product count per category, most profitable first."""
    if df.empty:
        return []
    grouped = (
        df.groupby("category", sort=True)
        .agg(profit=("net_profit", "sum"), products=("id", "count"))
        .reset_index()
        .sort_values(["profit", "category"], ascending=[False, True], kind="mergesort")
    )
    return [
        {"name": row.category, "profit": round2(row.profit), "count": int(row.products)}
        for row in grouped.itertuples(index=False)
    ]


def dashboard_stats(views: Sequence[ProductView], top_n: int = 5) -> DashboardStats:
    """
    KPIs for a set of product views.

    Totals are sums of the published per-product values, rounded once, so an
    exported table always adds up to the KPI line printed above it.
    """
    if not views:
        return DashboardStats()

    df = views_to_frame(views)
    by_size = df.assign(_abs=df["net_profit"].abs()).sort_values(
        "_abs", ascending=False, kind="mergesort"
    )
    top = by_size.head(top_n)[["id", "name", "net_profit", "margin"]]

    stats = DashboardStats(
        product_count=len(df),
        total_revenue=round2(float(df["sales_price"].sum())),
        total_profit=round2(float(df["net_profit"].sum())),
        avg_margin=round1(float(df["margin"].mean())),
        avg_roi=round1(float(df["roi"].mean())),
        profitable_count=int((df["net_profit"] >= 0).sum()),
        loss_count=int((df["net_profit"] < 0).sum()),
        campaign_count=int(df["is_campaign_active"].sum()),
        top_products=top.to_dict(orient="records"),
        category_summary=category_summary(df),
    )
    logger.info(
        "Dashboard: %d product(s), revenue %.2f, profit %.2f, %d loss-making",
        stats.product_count, stats.total_revenue, stats.total_profit, stats.loss_count,
    )
    return stats


def worst_products(views: Sequence[ProductView], limit: int = 5) -> list[dict[str, Any]]:
    """Loss-making products, biggest loss first."""
    df = views_to_frame(views)
    losers = df[df["net_profit"] < 0].sort_values("net_profit", kind="mergesort").head(limit)
    return losers[["id", "name", "category", "net_profit", "margin"]].to_dict(orient="records")
