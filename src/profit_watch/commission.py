"""
Commission schedule resolution.

A schedule is a time-boxed campaign rate, either store-wide (``product_id`` is
``None``) or scoped to one product. Its state is never stored; it is derived
from the clock and the manual ``is_active`` switch on every read:

  deactivated – ``is_active`` is false (terminal, checked first)
  upcoming    – now < valid_from
  active      – valid_from <= now < valid_until
  expired     – now >= valid_until

Resolution priority: an active product-scoped schedule beats any store-wide
one; within the same scope the most recently started (latest ``valid_from``)
wins. With no winner the product's own rate applies.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from dateutil import tz

from .models import CommissionResolution, CommissionSchedule, ScheduleState
from .normalize import ensure_aware, normalize_marketplace, to_number

logger = logging.getLogger(__name__)


class ScheduleError(Exception):
    """Raised when a schedule being created is invalid."""


# ── State ─────────────────────────────────────────────────────────────────────

def schedule_state(schedule: CommissionSchedule, now: datetime | None = None) -> ScheduleState:
    now = ensure_aware(now)
    if not schedule.is_active:
        return ScheduleState.DEACTIVATED
    if now < schedule.valid_from:
        return ScheduleState.UPCOMING
    if now < schedule.valid_until:
        return ScheduleState.ACTIVE
    return ScheduleState.EXPIRED


def is_active_at(schedule: CommissionSchedule, marketplace: str, now: datetime) -> bool:
    """Half-open window test: active on ``[valid_from, valid_until)``."""
    return (
        schedule.is_active
        and schedule.marketplace == marketplace
        and schedule.valid_from <= now < schedule.valid_until
    )


def time_remaining(schedule: CommissionSchedule, now: datetime | None = None) -> timedelta:
    """Time left until ``valid_until``; zero once expired."""
    left = schedule.valid_until - ensure_aware(now)
    return left if left > timedelta(0) else timedelta(0)


# ── Resolution ────────────────────────────────────────────────────────────────

def _newest(candidates: list[CommissionSchedule]) -> CommissionSchedule | None:
    if not candidates:
        return None
    # id keeps the pick independent of input order when two start together
    return max(candidates, key=lambda s: (s.valid_from, s.id))


def resolve_commission_rate(
    product_id: str | None,
    marketplace: str,
    schedules: Iterable[CommissionSchedule],
    fallback_rate: float,
    now: datetime | None = None,
) -> CommissionResolution:
    """
    Resolve the commission rate that applies to *product_id* at *now*.

    Args:
        product_id:    Product being priced; ``None`` considers store-wide campaigns only.
        marketplace:   Marketplace key; schedules for other marketplaces are ignored.
        schedules:     All schedule rows for the store.
        fallback_rate: The product's own commission rate (fraction).
        now:           Evaluation instant, defaults to the current UTC time.

    Returns:
        :class:`CommissionResolution`; never raises.
    """
    now = ensure_aware(now)
    mp = normalize_marketplace(marketplace)

    product_scoped: list[CommissionSchedule] = []
    store_wide: list[CommissionSchedule] = []
    for s in schedules:
        if not is_active_at(s, mp, now):
            continue
        if s.product_id is None:
            store_wide.append(s)
        elif product_id is not None and s.product_id == product_id:
            product_scoped.append(s)

    winner = _newest(product_scoped) or _newest(store_wide)
    if winner is None:
        return CommissionResolution(
            rate=to_number(fallback_rate),
            is_campaign_active=False,
            campaign_name=None,
        )

    logger.debug(
        "Campaign %s (%s) applies to product %s on %s at %s",
        winner.id, winner.campaign_name, product_id, mp, now.isoformat(),
    )
    return CommissionResolution(
        rate=winner.campaign_rate,
        is_campaign_active=True,
        campaign_name=winner.campaign_name or None,
        seller_discount_share=winner.seller_discount_share,
        marketplace_discount_share=winner.marketplace_discount_share,
        schedule_id=winner.id,
        valid_until=winner.valid_until,
    )


# ── Listing helpers ───────────────────────────────────────────────────────────

@dataclass
class SchedulePartition:
    active: list[CommissionSchedule]
    upcoming: list[CommissionSchedule]
    recently_expired: list[CommissionSchedule]


def partition_schedules(
    schedules: Iterable[CommissionSchedule],
    now: datetime | None = None,
    expired_window: timedelta = timedelta(days=30),
) -> SchedulePartition:
    """Split schedules for display; deactivated rows are left out."""
    now = ensure_aware(now)
    active: list[CommissionSchedule] = []
    upcoming: list[CommissionSchedule] = []
    expired: list[CommissionSchedule] = []
    cutoff = now - expired_window

    for s in schedules:
        state = schedule_state(s, now)
        if state is ScheduleState.ACTIVE:
            active.append(s)
        elif state is ScheduleState.UPCOMING:
            upcoming.append(s)
        elif state is ScheduleState.EXPIRED and s.valid_until >= cutoff:
            expired.append(s)

    active.sort(key=lambda s: s.valid_until)
    upcoming.sort(key=lambda s: s.valid_from)
    expired.sort(key=lambda s: s.valid_until, reverse=True)
    return SchedulePartition(active=active, upcoming=upcoming, recently_expired=expired)


def next_boundary(
    schedules: Iterable[CommissionSchedule],
    now: datetime | None = None,
) -> datetime | None:
    """Earliest future ``valid_from`` / ``valid_until`` among live schedules."""
    now = ensure_aware(now)
    upcoming = [
        edge
        for s in schedules
        if s.is_active
        for edge in (s.valid_from, s.valid_until)
        if edge > now
    ]
    return min(upcoming) if upcoming else None


# ── Creation ──────────────────────────────────────────────────────────────────

def validate_schedule(schedule: CommissionSchedule) -> None:
    if schedule.valid_until <= schedule.valid_from:
        raise ScheduleError(
            f"Schedule {schedule.campaign_name!r} ends before it starts "
            f"({schedule.valid_from.isoformat()} → {schedule.valid_until.isoformat()})"
        )
    for label, rate in (("campaign_rate", schedule.campaign_rate), ("normal_rate", schedule.normal_rate)):
        if not 0 <= rate < 1:
            raise ScheduleError(f"{label} must be a fraction in [0, 1), got {rate}")
    if not schedule.marketplace:
        raise ScheduleError("Schedule marketplace is required")


@dataclass(frozen=True)
class QuickTemplate:
    key: str
    label: str
    campaign_name: str
    campaign_rate: float
    normal_rate: float = 0.15
    duration: timedelta | None = None

    def window(self, now: datetime, timezone_str: str) -> tuple[datetime, datetime]:
        if self.duration is not None:
            return now, now + self.duration
        # month end: 23:59:59 on the last day of the month, local time
        local_tz = tz.gettz(timezone_str) or timezone.utc
        local_now = now.astimezone(local_tz)
        last_day = calendar.monthrange(local_now.year, local_now.month)[1]
        end = local_now.replace(day=last_day, hour=23, minute=59, second=59, microsecond=0)
        return now, end.astimezone(timezone.utc)


QUICK_TEMPLATES: dict[str, QuickTemplate] = {
    "flash": QuickTemplate(
        key="flash",
        label="2 Saatlik Flaş İndirim",
        campaign_name="Flaş İndirim",
        campaign_rate=0.05,
        duration=timedelta(hours=2),
    ),
    "weekly": QuickTemplate(
        key="weekly",
        label="Haftalık Kampanya",
        campaign_name="Haftalık Kampanya",
        campaign_rate=0.08,
        duration=timedelta(days=7),
    ),
    "month_end": QuickTemplate(
        key="month_end",
        label="Ay Sonu Kampanya",
        campaign_name="Ay Sonu Kampanya",
        campaign_rate=0.10,
    ),
}


def build_from_template(
    key: str,
    store_id: str,
    marketplace: str,
    now: datetime | None = None,
    product_id: str | None = None,
    timezone_str: str = "Europe/Istanbul",
) -> CommissionSchedule:
    """Create a new schedule (fresh id) from one of :data:`QUICK_TEMPLATES`."""
    template = QUICK_TEMPLATES.get(key)
    if template is None:
        raise ScheduleError(f"Unknown template {key!r}; choose from {', '.join(sorted(QUICK_TEMPLATES))}")

    valid_from, valid_until = template.window(ensure_aware(now), timezone_str)
    schedule = CommissionSchedule(
        id=str(uuid.uuid4()),
        store_id=store_id,
        marketplace=normalize_marketplace(marketplace),
        product_id=product_id,
        normal_rate=template.normal_rate,
        campaign_rate=template.campaign_rate,
        campaign_name=template.campaign_name,
        valid_from=valid_from,
        valid_until=valid_until,
        seller_discount_share=1.0,
        marketplace_discount_share=0.0,
        is_active=True,
    )
    validate_schedule(schedule)
    return schedule
