"""Typed rows consumed by the engine and the derived results it publishes."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from .normalize import (
    normalize_marketplace,
    parse_timestamp,
    to_bool,
    to_number,
    to_optional_str,
)

# Top-tier sentinel used by the barem tables ("20+ desi").
UNBOUNDED_MAX = 999999.0


class RateType(str, Enum):
    WEIGHT_CLASS = "desi"
    PRICE_BAND = "price"

    @classmethod
    def parse(cls, raw: Any) -> "RateType":
        key = (to_optional_str(raw) or "").lower()
        if key in ("desi", "weight", "weight_class"):
            return cls.WEIGHT_CLASS
        if key in ("price", "price_band"):
            return cls.PRICE_BAND
        raise ValueError(f"Unknown shipping rate type: {raw!r}")


class ScheduleState(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    EXPIRED = "expired"
    DEACTIVATED = "deactivated"


def _pick(row: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key wins; accepts both snake_case and camelCase rows."""
    for key in keys:
        if key in row:
            return row[key]
    return default


# ── Reference data ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ShippingRateTier:
    rate_type: RateType
    min_value: float
    max_value: float
    cost: float
    marketplace: str = ""
    store_id: str | None = None
    vat_included: bool = True
    is_active: bool = True
    id: str | None = None

    @property
    def is_custom(self) -> bool:
        return self.store_id is not None

    @property
    def is_open_ended(self) -> bool:
        return self.max_value >= UNBOUNDED_MAX

    def contains(self, value: float) -> bool:
        return self.min_value <= value < self.max_value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ShippingRateTier":
        return cls(
            id=to_optional_str(_pick(row, "id")),
            store_id=to_optional_str(_pick(row, "store_id", "storeId")),
            marketplace=normalize_marketplace(_pick(row, "marketplace")),
            rate_type=RateType.parse(_pick(row, "rate_type", "rateType")),
            min_value=to_number(_pick(row, "min_value", "minValue")),
            max_value=to_number(_pick(row, "max_value", "maxValue", default=UNBOUNDED_MAX)),
            cost=to_number(_pick(row, "cost")),
            vat_included=to_bool(_pick(row, "vat_included", "vatIncluded"), default=True),
            is_active=to_bool(_pick(row, "is_active", "isActive"), default=True),
        )

    def as_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "marketplace": self.marketplace,
            "rate_type": self.rate_type.value,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "cost": self.cost,
            "vat_included": self.vat_included,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class CommissionSchedule:
    id: str
    store_id: str
    marketplace: str
    product_id: str | None
    normal_rate: float
    campaign_rate: float
    campaign_name: str
    valid_from: datetime
    valid_until: datetime
    seller_discount_share: float = 1.0
    marketplace_discount_share: float = 0.0
    is_active: bool = True

    @property
    def is_store_wide(self) -> bool:
        return self.product_id is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CommissionSchedule":
        """Build from a store row; timestamps must parse (raises ``ParseError``)."""
        return cls(
            id=str(_pick(row, "id", default="")),
            store_id=str(_pick(row, "store_id", "storeId", default="")),
            marketplace=normalize_marketplace(_pick(row, "marketplace")),
            product_id=to_optional_str(_pick(row, "product_id", "productId")),
            normal_rate=to_number(_pick(row, "normal_rate", "normalRate")),
            campaign_rate=to_number(_pick(row, "campaign_rate", "campaignRate")),
            campaign_name=to_optional_str(_pick(row, "campaign_name", "campaignName")) or "",
            valid_from=parse_timestamp(_pick(row, "valid_from", "validFrom")),
            valid_until=parse_timestamp(_pick(row, "valid_until", "validUntil")),
            seller_discount_share=to_number(
                _pick(row, "seller_discount_share", "sellerDiscountShare", default=1.0)
            ),
            marketplace_discount_share=to_number(
                _pick(row, "marketplace_discount_share", "marketplaceDiscountShare")
            ),
            is_active=to_bool(_pick(row, "is_active", "isActive"), default=True),
        )

    def as_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "marketplace": self.marketplace,
            "product_id": self.product_id,
            "normal_rate": self.normal_rate,
            "campaign_rate": self.campaign_rate,
            "campaign_name": self.campaign_name,
            "valid_from": self.valid_from.isoformat(),
            "valid_until": self.valid_until.isoformat(),
            "seller_discount_share": self.seller_discount_share,
            "marketplace_discount_share": self.marketplace_discount_share,
            "is_active": self.is_active,
        }


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    store_id: str | None = None
    category: str | None = None
    external_id: str | None = None
    buy_price: float = 0.0
    sales_price: float = 0.0
    commission_rate: float = 0.0
    vat_rate: float = 0.0
    desi: float = 0.0
    shipping_cost: float = 0.0
    extra_cost: float = 0.0
    ad_cost: float = 0.0
    packaging_cost: float = 0.0
    packaging_vat_included: bool = True
    return_rate: float = 0.0
    service_fee: float = 0.0
    stock_status: str | None = None

    @property
    def has_shipping_override(self) -> bool:
        return self.shipping_cost > 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Product":
        product_id = to_optional_str(_pick(row, "id"))
        if product_id is None:
            raise ValueError("product row has no id")
        return cls(
            id=product_id,
            name=to_optional_str(_pick(row, "name")) or "",
            store_id=to_optional_str(_pick(row, "store_id", "storeId")),
            category=to_optional_str(_pick(row, "category")),
            external_id=to_optional_str(_pick(row, "external_id", "externalId")),
            buy_price=to_number(_pick(row, "buy_price", "buyPrice")),
            sales_price=to_number(_pick(row, "sales_price", "salesPrice")),
            commission_rate=to_number(_pick(row, "commission_rate", "commissionRate")),
            vat_rate=to_number(_pick(row, "vat_rate", "vatRate")),
            desi=to_number(_pick(row, "desi")),
            shipping_cost=to_number(_pick(row, "shipping_cost", "shippingCost")),
            extra_cost=to_number(_pick(row, "extra_cost", "extraCost")),
            ad_cost=to_number(_pick(row, "ad_cost", "adCost")),
            packaging_cost=to_number(_pick(row, "packaging_cost", "packagingCost")),
            packaging_vat_included=to_bool(
                _pick(row, "packaging_vat_included", "packagingVatIncluded"), default=True
            ),
            return_rate=to_number(_pick(row, "return_rate", "returnRate")),
            service_fee=to_number(_pick(row, "service_fee", "serviceFee")),
            stock_status=to_optional_str(_pick(row, "stock_status", "stockStatus")),
        )


# ── Engine input / outputs ────────────────────────────────────────────────────

_INPUT_KEYS: dict[str, tuple[str, ...]] = {
    "sales_price": ("sales_price", "salesPrice"),
    "buy_price": ("buy_price", "buyPrice"),
    "commission_rate": ("commission_rate", "commissionRate"),
    "vat_rate": ("vat_rate", "vatRate"),
    "desi": ("desi",),
    "shipping_cost": ("shipping_cost", "shippingCost"),
    "extra_cost": ("extra_cost", "extraCost"),
    "ad_cost": ("ad_cost", "adCost"),
    "packaging_cost": ("packaging_cost", "packagingCost"),
    "return_rate": ("return_rate", "returnRate"),
    "service_fee": ("service_fee", "serviceFee"),
}


@dataclass(frozen=True)
class ProfitInput:
    """Fully resolved cost drivers for one unit.

    ``commission_rate`` is a fraction (0.15); ``vat_rate`` and ``return_rate``
    are percentages (20 means 20%). ``shipping_cost`` is already resolved.
    """

    sales_price: float = 0.0
    buy_price: float = 0.0
    commission_rate: float = 0.0
    vat_rate: float = 0.0
    desi: float = 0.0
    shipping_cost: float = 0.0
    extra_cost: float = 0.0
    ad_cost: float = 0.0
    packaging_cost: float = 0.0
    packaging_vat_included: bool = True
    return_rate: float = 0.0
    service_fee: float = 0.0

    def __post_init__(self) -> None:
        for name in _INPUT_KEYS:
            object.__setattr__(self, name, to_number(getattr(self, name)))
        object.__setattr__(self, "packaging_vat_included", to_bool(self.packaging_vat_included, default=True))

    def with_sales_price(self, sales_price: float) -> "ProfitInput":
        return replace(self, sales_price=to_number(sales_price))

    def with_commission_rate(self, commission_rate: float) -> "ProfitInput":
        return replace(self, commission_rate=to_number(commission_rate))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProfitInput":
        values: dict[str, Any] = {
            name: to_number(_pick(data, *keys)) for name, keys in _INPUT_KEYS.items()
        }
        values["packaging_vat_included"] = to_bool(
            _pick(data, "packaging_vat_included", "packagingVatIncluded"), default=True
        )
        return cls(**values)


@dataclass(frozen=True)
class ProfitResult:
    sales_price: float
    buy_price: float
    vat: float
    commission: float
    shipping_cost: float
    extra_cost: float
    ad_cost: float
    packaging_cost: float
    return_cost: float
    service_fee: float
    total_cost: float
    net_profit: float
    margin: float
    roi: float

    @property
    def is_loss(self) -> bool:
        return self.net_profit < 0

    def as_dict(self) -> dict[str, float]:
        return {
            "salesPrice": self.sales_price,
            "buyPrice": self.buy_price,
            "vat": self.vat,
            "commission": self.commission,
            "shippingCost": self.shipping_cost,
            "extraCost": self.extra_cost,
            "adCost": self.ad_cost,
            "packagingCost": self.packaging_cost,
            "returnCost": self.return_cost,
            "serviceFee": self.service_fee,
            "totalCost": self.total_cost,
            "netProfit": self.net_profit,
            "margin": self.margin,
            "roi": self.roi,
        }


@dataclass(frozen=True)
class CommissionResolution:
    rate: float
    is_campaign_active: bool
    campaign_name: str | None = None
    seller_discount_share: float = 1.0
    marketplace_discount_share: float = 0.0
    schedule_id: str | None = None
    valid_until: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "rate": self.rate,
            "isCampaignActive": self.is_campaign_active,
            "campaignName": self.campaign_name,
            "sellerDiscountShare": self.seller_discount_share,
            "marketplaceDiscountShare": self.marketplace_discount_share,
            "scheduleId": self.schedule_id,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
        }


@dataclass(frozen=True)
class ScenarioResult:
    current: ProfitResult
    simulated: ProfitResult
    profit_delta: float
    margin_delta: float

    def as_dict(self) -> dict[str, Any]:
        return {
            "current": self.current.as_dict(),
            "simulated": self.simulated.as_dict(),
            "profitDelta": self.profit_delta,
            "marginDelta": self.margin_delta,
        }


@dataclass(frozen=True)
class ProductView:
    """A product together with everything resolved for it at one instant."""

    product: Product
    commission: CommissionResolution
    shipping_cost: float
    shipping_source: str
    profit: ProfitResult
    resolved_at: datetime
    profit_input: ProfitInput = field(repr=False, default_factory=ProfitInput)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.product.id,
            "name": self.product.name,
            "category": self.product.category,
            "commission": self.commission.as_dict(),
            "shippingSource": self.shipping_source,
            "profit": self.profit.as_dict(),
            "resolvedAt": self.resolved_at.isoformat(),
        }
