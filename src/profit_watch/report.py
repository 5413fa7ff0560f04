"""Report generation: CSV export, JSON report and Markdown summary."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Sequence

import pandas as pd
from dateutil import tz

from .analytics import DashboardStats, dashboard_stats, views_to_frame, worst_products
from .models import ProductView

logger = logging.getLogger(__name__)

_MONEY_COLUMNS = [
    "sales_price",
    "buy_price",
    "vat",
    "commission",
    "shipping_cost",
    "extra_cost",
    "ad_cost",
    "packaging_cost",
    "return_cost",
    "service_fee",
    "total_cost",
    "net_profit",
]

_PERCENT_COLUMNS = ["margin", "roi"]

# CSV header labels, in column order
_CSV_HEADERS = {
    "id": "Ürün ID",
    "name": "Ürün",
    "category": "Kategori",
    "sales_price": "Satış Fiyatı",
    "buy_price": "Alış Fiyatı",
    "vat": "KDV",
    "commission": "Komisyon",
    "campaign_name": "Kampanya",
    "shipping_cost": "Kargo",
    "shipping_source": "Kargo Kaynağı",
    "extra_cost": "Ek Masraf",
    "ad_cost": "Reklam",
    "packaging_cost": "Paketleme",
    "return_cost": "İade Maliyeti",
    "service_fee": "Hizmet Bedeli",
    "total_cost": "Toplam Maliyet",
    "net_profit": "Net Kâr",
    "margin": "Marj %",
    "roi": "ROI %",
}


def _now_local(timezone_str: str) -> datetime:
    local_tz = tz.gettz(timezone_str) or tz.tzlocal()
    return datetime.now(tz=local_tz)


def export_frame(views: Sequence[ProductView]) -> pd.DataFrame:
    """Per-product export table with display headers and fixed decimals."""
    df = views_to_frame(views)[list(_CSV_HEADERS)].copy()
    for col in _MONEY_COLUMNS:
        df[col] = df[col].map(lambda v: f"{v:.2f}")
    for col in _PERCENT_COLUMNS:
        df[col] = df[col].map(lambda v: f"{v:.1f}")
    df["campaign_name"] = df["campaign_name"].fillna("")
    return df.rename(columns=_CSV_HEADERS)


def write_csv(views: Sequence[ProductView], path: str | Path) -> Path:
    path = Path(path)
    # utf-8-sig so spreadsheet tools pick up the Turkish characters
    export_frame(views).to_csv(path, index=False, encoding="utf-8-sig")
    logger.info("Report written: %s", path)
    return path


def generate_json_report(
    views: Sequence[ProductView],
    marketplace: str,
    run_date_str: str,
    timezone_str: str = "Europe/Istanbul",
    stats: DashboardStats | None = None,
) -> dict[str, Any]:
    stats = stats or dashboard_stats(views)
    return {
        "meta": {
            "date": run_date_str,
            "timezone": timezone_str,
            "marketplace": marketplace,
            "product_count": len(views),
        },
        "kpi": stats.as_dict(),
        "products": [v.as_dict() for v in views],
    }


def _md_table(views: Sequence[ProductView]) -> str:
    if not views:
        return "_No products._\n"
    header = "| Product | Price | Commission | Shipping | Net Profit | Margin % | ROI % |\n"
    separator = "|---|---:|---:|---:|---:|---:|---:|\n"
    rows = []
    for v in views:
        r = v.profit
        flag = " ⚠️" if r.is_loss else ""
        campaign = f" ({v.commission.campaign_name})" if v.commission.is_campaign_active else ""
        rows.append(
            f"| {v.product.name}{flag} | {r.sales_price:.2f} | {r.commission:.2f}{campaign} "
            f"| {r.shipping_cost:.2f} | {r.net_profit:.2f} | {r.margin:.1f} | {r.roi:.1f} |"
        )
    return header + separator + "\n".join(rows) + "\n"


def generate_markdown_report(
    views: Sequence[ProductView],
    marketplace: str,
    run_date_str: str,
    timezone_str: str = "Europe/Istanbul",
    stats: DashboardStats | None = None,
) -> str:
    stats = stats or dashboard_stats(views)

    losers = worst_products(views)
    if losers:
        loss_md = "\n".join(
            f"- `{row['id']}` {row['name']}: {row['net_profit']:.2f} ({row['margin']:.1f}%)"
            for row in losers
        )
    else:
        loss_md = "- No loss-making products."

    if stats.category_summary:
        category_md = "\n".join(
            f"- {c['name']}: {c['profit']:.2f} across {c['count']} product(s)"
            for c in stats.category_summary
        )
    else:
        category_md = "- No categories."

    return f"""# Profit Watch — {marketplace}

**Date:** {run_date_str} ({timezone_str})
**Products:** {stats.product_count} ({stats.campaign_count} on campaign)

---

## Summary

- Revenue: {stats.total_revenue:.2f}
- Net profit: {stats.total_profit:.2f}
- Average margin: {stats.avg_margin:.1f}%
- Average ROI: {stats.avg_roi:.1f}%
- Profitable / loss-making: {stats.profitable_count} / {stats.loss_count}

## Loss-making products

{loss_md}

## By category

{category_md}

---

## Products

{_md_table(views)}
"""


def generate_summary(stats: DashboardStats, run_date_str: str, paths: Sequence[Path]) -> str:
    """Short plain-text summary printed by the CLI after writing reports."""
    lines = [
        f"Profit Watch ({run_date_str})",
        f"Products: {stats.product_count}  Revenue: {stats.total_revenue:.2f}  "
        f"Net profit: {stats.total_profit:.2f}",
        f"Average margin: {stats.avg_margin:.1f}%  Loss-making: {stats.loss_count}",
        "",
    ]
    lines += [f"Report: {p}" for p in paths]
    return "\n".join(lines)


def write_reports(
    views: Sequence[ProductView],
    reports_dir: str | Path,
    marketplace: str,
    timezone_str: str = "Europe/Istanbul",
) -> tuple[Path, Path, Path, str]:
    """
    Write CSV + JSON + Markdown reports to reports_dir.
    Returns (csv_path, json_path, md_path, summary).
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)

    now = _now_local(timezone_str)
    date_str = now.strftime("%Y-%m-%d")
    file_stem = f"profit_{marketplace}_{now.strftime('%Y%m%d')}"

    stats = dashboard_stats(views)

    csv_path = write_csv(views, reports_dir / f"{file_stem}.csv")

    json_path = reports_dir / f"{file_stem}.json"
    json_content = generate_json_report(views, marketplace, date_str, timezone_str, stats)
    json_path.write_text(
        json.dumps(json_content, indent=2, ensure_ascii=False, default=str), encoding="utf-8"
    )
    logger.info("Report written: %s", json_path)

    md_path = reports_dir / f"{file_stem}.md"
    md_path.write_text(
        generate_markdown_report(views, marketplace, date_str, timezone_str, stats), encoding="utf-8"
    )
    logger.info("Report written: %s", md_path)

    summary = generate_summary(stats, date_str, [csv_path, json_path, md_path])
    return csv_path, json_path, md_path, summary
