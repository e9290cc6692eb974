from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel

from salestrack.core.config import Settings, get_settings
from salestrack.domain.clock import now_utc
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
    InvalidAPIKeyError,
    ProviderHTTP,
    ServerError,
    Timestamp,
    decode,
)

logger = logging.getLogger(__name__)

# Gumroad reports HTTP 200 with "success": false for rejected requests.
UNSUCCESSFUL_STATUS = 400


class GumroadSale(BaseModel):
    id: str
    email: str | None = None
    full_name: str | None = None
    product_name: str | None = None
    variant_name: str | None = None
    price: int  # cents
    currency: str | None = None
    refunded: bool | None = None
    formatted_display_price: str | None = None
    order_id: str | int | None = None
    ip_country: str | None = None
    created_at: Timestamp


class GumroadSalesResponse(BaseModel):
    success: bool
    sales: list[GumroadSale] = []
    next_page_url: str | None = None


class GumroadMedia(BaseModel):
    url: str | None = None


class GumroadProduct(BaseModel):
    id: str
    name: str
    description: str | None = None
    custom_permalink: str | None = None
    price: int  # cents
    currency: str | None = None
    published: bool = False
    formatted_price: str | None = None
    short_url: str | None = None
    sales_count: int | None = None
    sales_usd_cents: int | None = None
    thumbnail: GumroadMedia | None = None
    preview: GumroadMedia | None = None


class GumroadProductsResponse(BaseModel):
    success: bool
    products: list[GumroadProduct] = []


class GumroadUser(BaseModel):
    user_id: str
    name: str | None = None
    display_name: str | None = None
    url: str | None = None
    profile_url: str | None = None


class GumroadUserResponse(BaseModel):
    success: bool
    user: GumroadUser | None = None


def _order_from_sale(sale: GumroadSale) -> Order:
    email = sale.email or ""
    return Order(
        id=sale.id,
        status=OrderStatus.REFUNDED if sale.refunded else OrderStatus.PAID,
        total=sale.price,
        currency=sale.currency or DEFAULT_CURRENCY,
        customer_email=email,
        customer_name=sale.full_name or email or "Unknown",
        product_name=sale.product_name or "Gumroad Sale",
        variant_name=sale.variant_name,
        created_at=sale.created_at,
        provider=SalesProviderType.GUMROAD,
        total_formatted=sale.formatted_display_price,
        identifier=str(sale.order_id) if sale.order_id is not None else None,
        gumroad_sale_id=sale.id,
        ip_country=sale.ip_country,
    )


class GumroadProvider:
    """v2 REST client; sales are paged by following ``next_page_url`` verbatim."""

    provider_type = SalesProviderType.GUMROAD

    def __init__(
        self,
        api_key: str,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.http = ProviderHTTP(self.settings.gumroad_base_url, self.settings.http_timeout_seconds, transport)
        self._api_key = APIKeySlot(api_key)

    def _get(self, url: httpx.URL) -> bytes:
        # Followed page URLs may already carry a stale token; always send the current one.
        authed = url.copy_set_param("access_token", self._api_key.value)
        return self.http.get(authed, headers={"Accept": "application/json"})

    def fetch_all_orders(self) -> list[Order]:
        orders: list[Order] = []
        url = self.http.url("sales")
        while True:
            response = decode(GumroadSalesResponse, self._get(url))
            if not response.success:
                raise ServerError(UNSUCCESSFUL_STATUS)
            orders.extend(_order_from_sale(sale) for sale in response.sales)
            logger.debug("gumroad sales page: %s rows", len(response.sales))
            if not response.next_page_url:
                break
            url = self.http.resolve(response.next_page_url)
        return orders

    def fetch_products(self) -> list[Product]:
        response = decode(GumroadProductsResponse, self._get(self.http.url("products")))
        if not response.success:
            raise ServerError(UNSUCCESSFUL_STATUS)

        # Products carry no creation date on this API.
        fetched_at = now_utc()
        return [
            Product(
                id=product.id,
                name=product.name,
                slug=product.custom_permalink,
                description=product.description,
                price=product.price,
                currency=product.currency or DEFAULT_CURRENCY,
                status=ProductStatus.PUBLISHED if product.published else ProductStatus.DRAFT,
                created_at=fetched_at,
                provider=self.provider_type,
                thumb_url=product.thumbnail.url if product.thumbnail else None,
                large_thumb_url=product.preview.url if product.preview else None,
                buy_now_url=product.short_url,
                price_formatted=product.formatted_price,
                status_formatted="Published" if product.published else "Draft",
                total_sales=product.sales_count,
                total_revenue=product.sales_usd_cents,
                gumroad_product_id=product.id,
            )
            for product in response.products
        ]

    def _fetch_user(self) -> GumroadUser:
        response = decode(GumroadUserResponse, self._get(self.http.url("user")))
        if not response.success or response.user is None:
            raise ServerError(UNSUCCESSFUL_STATUS)
        return response.user

    def fetch_store(self) -> Store:
        user = self._fetch_user()
        slug = user.url.rstrip("/").rsplit("/", 1)[-1] if user.url else None
        return Store(
            id=user.user_id,
            name=user.display_name or user.name or "Gumroad Store",
            slug=slug or None,
            # The user endpoint reports neither currency nor revenue.
            currency=DEFAULT_CURRENCY,
            total_revenue=0,
            thirty_day_revenue=0,
            provider=self.provider_type,
            url=user.url,
            avatar_url=user.profile_url,
            gumroad_user_id=user.user_id,
        )

    def validate_api_key(self, key: str) -> bool:
        try:
            with self._api_key.candidate(key):
                self._fetch_user()
        except InvalidAPIKeyError:
            return False
        return True
