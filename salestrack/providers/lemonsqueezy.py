from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from pydantic import BaseModel, Field

from salestrack.core.config import Settings, get_settings
from salestrack.domain.models import (
    DEFAULT_CURRENCY,
    Order,
    OrderStatus,
    Product,
    ProductStatus,
    SalesProviderType,
    Store,
)
from salestrack.providers.base import (
    APIKeySlot,
    DecodingError,
    InvalidAPIKeyError,
    ProviderHTTP,
    Timestamp,
    decode,
)

logger = logging.getLogger(__name__)


class LSFirstOrderItem(BaseModel):
    product_name: str
    variant_name: str | None = None


class LSOrderURLs(BaseModel):
    receipt: str | None = None


class LSOrderAttributes(BaseModel):
    status: str
    order_number: int | None = None
    identifier: str | None = None
    total: int
    subtotal: int | None = None
    tax: int | None = None
    discount_total: int | None = None
    currency: str | None = None
    user_email: str = ""
    user_name: str = ""
    tax_name: str | None = None
    tax_rate: str | None = None
    tax_inclusive: bool | None = None
    total_formatted: str | None = None
    subtotal_formatted: str | None = None
    tax_formatted: str | None = None
    discount_total_formatted: str | None = None
    refunded_at: Timestamp | None = None
    refunded_amount: int | None = None
    first_order_item: LSFirstOrderItem | None = None
    urls: LSOrderURLs | None = None
    created_at: Timestamp


class LSOrderItem(BaseModel):
    id: str
    attributes: LSOrderAttributes


class LSPageInfo(BaseModel):
    current_page: int | None = Field(default=None, alias="currentPage")
    last_page: int = Field(alias="lastPage")


class LSMeta(BaseModel):
    page: LSPageInfo


class LSOrdersResponse(BaseModel):
    data: list[LSOrderItem]
    meta: LSMeta


class LSProductAttributes(BaseModel):
    name: str
    slug: str | None = None
    description: str | None = None
    price: int
    status: str
    status_formatted: str | None = None
    price_formatted: str | None = None
    thumb_url: str | None = None
    large_thumb_url: str | None = None
    buy_now_url: str | None = None
    created_at: Timestamp


class LSProductItem(BaseModel):
    id: str
    attributes: LSProductAttributes


class LSProductsResponse(BaseModel):
    data: list[LSProductItem]


class LSStoreAttributes(BaseModel):
    name: str
    slug: str | None = None
    currency: str
    total_revenue: int = 0
    thirty_day_revenue: int = 0
    total_sales: int | None = None
    thirty_day_sales: int | None = None
    url: str | None = None
    avatar_url: str | None = None
    plan: str | None = None
    country: str | None = None
    country_nicename: str | None = None
    created_at: Timestamp | None = None


class LSStoreItem(BaseModel):
    id: str
    attributes: LSStoreAttributes


class LSStoresResponse(BaseModel):
    data: list[LSStoreItem]


@dataclass
class OrdersPage:
    orders: list[Order]
    current_page: int
    last_page: int

    @property
    def has_more(self) -> bool:
        return self.current_page < self.last_page


def _order_from_item(item: LSOrderItem) -> Order:
    attrs = item.attributes
    first_item = attrs.first_order_item
    return Order(
        id=item.id,
        order_number=attrs.order_number,
        status=OrderStatus(attrs.status),
        total=attrs.total,
        subtotal=attrs.subtotal,
        tax=attrs.tax,
        discount_total=attrs.discount_total,
        currency=attrs.currency or DEFAULT_CURRENCY,
        customer_email=attrs.user_email,
        customer_name=attrs.user_name,
        product_name=first_item.product_name if first_item else "Unknown",
        variant_name=first_item.variant_name if first_item else None,
        created_at=attrs.created_at,
        refunded_at=attrs.refunded_at,
        refunded_amount=attrs.refunded_amount if attrs.refunded_amount and attrs.refunded_amount > 0 else None,
        provider=SalesProviderType.LEMONSQUEEZY,
        total_formatted=attrs.total_formatted,
        subtotal_formatted=attrs.subtotal_formatted,
        tax_formatted=attrs.tax_formatted,
        discount_total_formatted=attrs.discount_total_formatted,
        tax_name=attrs.tax_name,
        tax_rate=attrs.tax_rate,
        tax_inclusive=attrs.tax_inclusive,
        receipt_url=attrs.urls.receipt if attrs.urls else None,
        identifier=attrs.identifier,
    )


class LemonSqueezyProvider:
    """JSON:API client; orders are paged by number until ``meta.page.lastPage``."""

    provider_type = SalesProviderType.LEMONSQUEEZY

    def __init__(
        self,
        api_key: str,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.http = ProviderHTTP(self.settings.lemonsqueezy_base_url, self.settings.http_timeout_seconds, transport)
        self.page_size = self.settings.orders_page_size
        self._api_key = APIKeySlot(api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/vnd.api+json",
            "Authorization": f"Bearer {self._api_key.value}",
        }

    def _get(self, path: str, params: dict[str, str] | None = None) -> bytes:
        return self.http.get(self.http.url(path), params=params, headers=self._headers())

    def fetch_orders(self, page: int = 1) -> OrdersPage:
        content = self._get("orders", {"page[number]": str(page), "page[size]": str(self.page_size)})
        response = decode(LSOrdersResponse, content)
        return OrdersPage(
            orders=[_order_from_item(item) for item in response.data],
            current_page=page,
            last_page=response.meta.page.last_page,
        )

    def fetch_all_orders(self) -> list[Order]:
        orders: list[Order] = []
        page = 1
        while True:
            result = self.fetch_orders(page)
            orders.extend(result.orders)
            logger.debug("lemonsqueezy orders page %s/%s: %s rows", page, result.last_page, len(result.orders))
            if not result.has_more:
                break
            page += 1
        return orders

    def fetch_products(self) -> list[Product]:
        response = decode(LSProductsResponse, self._get("products"))
        products: list[Product] = []
        for item in response.data:
            attrs = item.attributes
            products.append(
                Product(
                    id=item.id,
                    name=attrs.name,
                    slug=attrs.slug,
                    description=attrs.description,
                    price=attrs.price,
                    # Catalog endpoint has no currency; the manager backfills it from the store.
                    currency=DEFAULT_CURRENCY,
                    status=ProductStatus(attrs.status),
                    created_at=attrs.created_at,
                    provider=self.provider_type,
                    thumb_url=attrs.thumb_url,
                    large_thumb_url=attrs.large_thumb_url,
                    buy_now_url=attrs.buy_now_url,
                    price_formatted=attrs.price_formatted,
                    status_formatted=attrs.status_formatted,
                )
            )
        return products

    def fetch_store(self) -> Store:
        response = decode(LSStoresResponse, self._get("stores"))
        if not response.data:
            raise DecodingError("no store found")
        item = response.data[0]
        attrs = item.attributes
        return Store(
            id=item.id,
            name=attrs.name,
            slug=attrs.slug,
            currency=attrs.currency,
            total_revenue=attrs.total_revenue,
            thirty_day_revenue=attrs.thirty_day_revenue,
            provider=self.provider_type,
            url=attrs.url,
            avatar_url=attrs.avatar_url,
            plan=attrs.plan,
            country=attrs.country,
            country_nicename=attrs.country_nicename,
            total_sales=attrs.total_sales,
            thirty_day_sales=attrs.thirty_day_sales,
            created_at=attrs.created_at,
        )

    def validate_api_key(self, key: str) -> bool:
        try:
            with self._api_key.candidate(key):
                self._get("stores")
        except InvalidAPIKeyError:
            return False
        return True
