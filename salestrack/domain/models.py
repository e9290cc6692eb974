from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from salestrack.domain.clock import as_utc, local_day, now_utc, to_local

DEFAULT_CURRENCY = "USD"


def normalize_currency(value: object) -> str:
    """Uppercase ISO 4217 code; anything missing or malformed becomes USD."""
    if not isinstance(value, str):
        return DEFAULT_CURRENCY
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        return DEFAULT_CURRENCY
    return code


class SalesProviderType(str, Enum):
    LEMONSQUEEZY = "lemonsqueezy"
    GUMROAD = "gumroad"
    STRIPE = "stripe"

    @property
    def display_name(self) -> str:
        return {
            SalesProviderType.LEMONSQUEEZY: "Lemon Squeezy",
            SalesProviderType.GUMROAD: "Gumroad",
            SalesProviderType.STRIPE: "Stripe",
        }[self]


class OrderStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"
    PENDING = "pending"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "OrderStatus":
        return cls.UNKNOWN


class ProductStatus(str, Enum):
    PUBLISHED = "published"
    DRAFT = "draft"
    ARCHIVED = "archived"
    # Stripe catalogs have no published/draft distinction.
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> "ProductStatus":
        return cls.UNKNOWN


class _DomainModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def _currency(cls, value: object) -> str:
        return normalize_currency(value)

    @field_validator("created_at", "refunded_at", mode="after", check_fields=False)
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class Order(_DomainModel):
    """One payment transaction as reported by one provider. Amounts are cents."""

    id: str
    order_number: int | None = None
    status: OrderStatus
    total: int = Field(ge=0)
    subtotal: int | None = None
    tax: int | None = None
    discount_total: int | None = None
    currency: str = DEFAULT_CURRENCY
    customer_email: str = ""
    customer_name: str = ""
    product_name: str
    variant_name: str | None = None
    created_at: datetime
    refunded_at: datetime | None = None
    refunded_amount: int | None = Field(default=None, ge=0)
    provider: SalesProviderType

    # Server-side formatted strings (Lemon Squeezy, Gumroad).
    total_formatted: str | None = None
    subtotal_formatted: str | None = None
    tax_formatted: str | None = None
    discount_total_formatted: str | None = None

    tax_name: str | None = None
    tax_rate: str | None = None
    tax_inclusive: bool | None = None

    receipt_url: str | None = None
    identifier: str | None = None

    gumroad_sale_id: str | None = None
    ip_country: str | None = None

    stripe_payment_intent_id: str | None = None
    payment_method: str | None = None

    @property
    def is_refunded(self) -> bool:
        return (
            self.status is OrderStatus.REFUNDED
            or self.refunded_at is not None
            or (self.refunded_amount or 0) > 0
        )

    @property
    def net_total(self) -> int:
        return max(0, self.total - (self.refunded_amount or 0))

    @property
    def is_today(self) -> bool:
        return local_day(self.created_at) == local_day(now_utc())

    @property
    def is_this_month(self) -> bool:
        created = to_local(self.created_at)
        current = to_local(now_utc())
        return (created.year, created.month) == (current.year, current.month)


class Product(_DomainModel):
    id: str
    name: str
    slug: str | None = None
    description: str | None = None
    price: int = Field(ge=0)
    currency: str = DEFAULT_CURRENCY
    status: ProductStatus
    created_at: datetime
    provider: SalesProviderType

    thumb_url: str | None = None
    large_thumb_url: str | None = None
    buy_now_url: str | None = None
    store_url: str | None = None

    price_formatted: str | None = None
    status_formatted: str | None = None

    total_sales: int | None = None
    total_revenue: int | None = None

    gumroad_product_id: str | None = None
    stripe_product_id: str | None = None
    stripe_default_price: str | None = None


class Store(_DomainModel):
    id: str
    name: str
    slug: str | None = None
    currency: str = DEFAULT_CURRENCY
    total_revenue: int = 0
    thirty_day_revenue: int = 0
    provider: SalesProviderType

    url: str | None = None
    avatar_url: str | None = None
    plan: str | None = None
    country: str | None = None
    country_nicename: str | None = None
    total_sales: int | None = None
    thirty_day_sales: int | None = None
    created_at: datetime | None = None

    gumroad_user_id: str | None = None
    stripe_account_id: str | None = None
    stripe_email: str | None = None
