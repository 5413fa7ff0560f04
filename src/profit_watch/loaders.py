"""Load CSV exports of the product, barem and schedule tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

import pandas as pd

from .models import CommissionSchedule, Product, ShippingRateTier
from .normalize import ParseError, normalize_marketplace
from .shipping import default_tiers, find_overlaps, select_effective_tiers

logger = logging.getLogger(__name__)

PRODUCTS_FILE = "products.csv"
TIERS_FILE = "shipping_rates.csv"
SCHEDULES_FILE = "commission_schedules.csv"

T = TypeVar("T")


def _read_rows(path: str | Path) -> list[dict[str, Any]]:
    df = pd.read_csv(Path(path), dtype=str, keep_default_na=True, low_memory=False)
    df = df.where(df.notna(), None)
    return df.to_dict(orient="records")


def _load(path: str | Path, build: Callable[[dict[str, Any]], T], label: str) -> list[T]:
    rows = _read_rows(path)
    items: list[T] = []
    skipped = 0
    for i, row in enumerate(rows, start=2):  # header is line 1
        try:
            items.append(build(row))
        except (ParseError, ValueError) as exc:
            skipped += 1
            logger.warning("%s line %d skipped: %s", path, i, exc)
    logger.info("Loaded %d %s from %s (%d skipped)", len(items), label, path, skipped)
    return items


def load_products_csv(path: str | Path) -> list[Product]:
    return _load(path, Product.from_row, "product(s)")


def load_tiers_csv(path: str | Path) -> list[ShippingRateTier]:
    tiers = _load(path, ShippingRateTier.from_row, "shipping tier(s)")
    overlaps = find_overlaps(tiers)
    if overlaps:
        logger.warning("%s contains %d overlapping tier pair(s)", path, len(overlaps))
    return tiers


def load_schedules_csv(path: str | Path) -> list[CommissionSchedule]:
    return _load(path, CommissionSchedule.from_row, "commission schedule(s)")


@dataclass
class Dataset:
    """Everything needed to resolve one store's products on one marketplace."""

    marketplace: str
    products: list[Product]
    tiers: list[ShippingRateTier]
    schedules: list[CommissionSchedule]


def load_tables(
    products_path: str | Path,
    marketplace: str,
    tiers_path: str | Path | None = None,
    schedules_path: str | Path | None = None,
    store_id: str | None = None,
) -> Dataset:
    """
    Load the three tables from explicit CSV paths, scoped to *marketplace*
    (and *store_id* when given).

    Without a barem file the built-in default desi barem applies; without a
    schedules file no campaign is running.
    """
    mp = normalize_marketplace(marketplace)

    products = load_products_csv(products_path)
    if store_id is not None:
        products = [p for p in products if p.store_id in (None, store_id)]

    if tiers_path is None:
        tiers = default_tiers(mp)
    else:
        mp_tiers = [t for t in load_tiers_csv(tiers_path) if t.marketplace == mp]
        defaults = [t for t in mp_tiers if t.store_id is None]
        custom = [
            t for t in mp_tiers
            if t.store_id is not None and (store_id is None or t.store_id == store_id)
        ]
        tiers = select_effective_tiers(defaults, custom)

    schedules = load_schedules_csv(schedules_path) if schedules_path is not None else []
    schedules = [
        s for s in schedules
        if s.marketplace == mp and (store_id is None or s.store_id == store_id)
    ]

    return Dataset(marketplace=mp, products=products, tiers=tiers, schedules=schedules)


def load_dataset(
    data_dir: str | Path,
    marketplace: str,
    store_id: str | None = None,
) -> Dataset:
    """
    Load ``products.csv``, ``shipping_rates.csv`` and ``commission_schedules.csv``
    from *data_dir*.

    A missing products file raises ``FileNotFoundError``; missing barem or
    schedule files are handled as in :func:`load_tables`.
    """
    data_dir = Path(data_dir)
    tiers_path = data_dir / TIERS_FILE
    sched_path = data_dir / SCHEDULES_FILE
    return load_tables(
        data_dir / PRODUCTS_FILE,
        marketplace,
        tiers_path=tiers_path if tiers_path.exists() else None,
        schedules_path=sched_path if sched_path.exists() else None,
        store_id=store_id,
    )
