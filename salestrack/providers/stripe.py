from __future__ import annotations

import base64
import logging
from typing import Generic, TypeVar

import httpx
from pydantic import BaseModel

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
    InvalidAPIKeyError,
    ProviderHTTP,
    ServerError,
    decode,
    from_epoch,
)

logger = logging.getLogger(__name__)

Item = TypeVar("Item", bound=BaseModel)


class StripeList(BaseModel, Generic[Item]):
    data: list[Item]
    has_more: bool


class StripeBillingDetails(BaseModel):
    email: str | None = None
    name: str | None = None


class StripeCardDetails(BaseModel):
    brand: str | None = None
    last4: str | None = None


class StripePaymentMethodDetails(BaseModel):
    card: StripeCardDetails | None = None


class StripeCharge(BaseModel):
    id: str
    amount: int
    amount_refunded: int = 0
    currency: str
    created: int
    description: str | None = None
    paid: bool
    refunded: bool = False
    status: str | None = None
    receipt_url: str | None = None
    payment_intent: str | None = None
    billing_details: StripeBillingDetails | None = None
    payment_method_details: StripePaymentMethodDetails | None = None


class StripeProduct(BaseModel):
    id: str
    name: str
    description: str | None = None
    active: bool
    default_price: str | None = None
    images: list[str] = []
    created: int


class StripeBusinessProfile(BaseModel):
    name: str | None = None
    url: str | None = None


class StripeAccount(BaseModel):
    id: str
    email: str | None = None
    country: str | None = None
    default_currency: str = DEFAULT_CURRENCY
    business_profile: StripeBusinessProfile | None = None
    created: int | None = None


class StripeBalanceAmount(BaseModel):
    amount: int
    currency: str


class StripeBalance(BaseModel):
    available: list[StripeBalanceAmount] = []
    pending: list[StripeBalanceAmount] = []


def _order_from_charge(charge: StripeCharge) -> Order | None:
    if not charge.paid:
        return None

    fully_refunded = charge.refunded or (charge.amount > 0 and charge.amount_refunded >= charge.amount)
    billing = charge.billing_details
    card = charge.payment_method_details.card if charge.payment_method_details else None
    return Order(
        id=charge.id,
        status=OrderStatus.REFUNDED if fully_refunded else OrderStatus.PAID,
        total=charge.amount,
        currency=charge.currency,
        customer_email=(billing.email if billing else None) or "",
        customer_name=(billing.name if billing else None) or "Unknown",
        product_name=charge.description or "Stripe Payment",
        created_at=from_epoch(charge.created),
        refunded_amount=charge.amount_refunded if charge.amount_refunded > 0 else None,
        provider=SalesProviderType.STRIPE,
        receipt_url=charge.receipt_url,
        stripe_payment_intent_id=charge.payment_intent,
        payment_method=card.brand if card else None,
    )


class StripeProvider:
    """Charges, products, account and balance over Basic auth.

    Lists are paged with ``starting_after=<last id>`` until ``has_more`` is false.
    """

    provider_type = SalesProviderType.STRIPE

    def __init__(
        self,
        api_key: str,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.http = ProviderHTTP(self.settings.stripe_base_url, self.settings.http_timeout_seconds, transport)
        self.page_size = self.settings.orders_page_size
        self._api_key = APIKeySlot(api_key)

    def _headers(self) -> dict[str, str]:
        token = base64.b64encode(f"{self._api_key.value}:".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {token}"}

    def _get(self, path: str, params: dict[str, str] | None = None) -> bytes:
        return self.http.get(self.http.url(path), params=params, headers=self._headers())

    def _list(self, path: str, item: type[Item], params: dict[str, str] | None = None) -> list[Item]:
        items: list[Item] = []
        cursor: str | None = None
        while True:
            query = {"limit": str(self.page_size), **(params or {})}
            if cursor:
                query["starting_after"] = cursor
            page = decode(StripeList[item], self._get(path, query))
            items.extend(page.data)
            logger.debug("stripe %s page: %s rows has_more=%s", path, len(page.data), page.has_more)
            if not page.has_more or not page.data:
                break
            cursor = page.data[-1].id
        return items

    def fetch_all_orders(self) -> list[Order]:
        orders: list[Order] = []
        for charge in self._list("charges", StripeCharge):
            order = _order_from_charge(charge)
            if order is not None:
                orders.append(order)
        return orders

    def fetch_products(self) -> list[Product]:
        products = self._list("products", StripeProduct, {"active": "true"})
        return [
            Product(
                id=product.id,
                name=product.name,
                description=product.description,
                # Prices are separate objects on this API.
                price=0,
                currency=DEFAULT_CURRENCY,
                status=ProductStatus.ACTIVE if product.active else ProductStatus.INACTIVE,
                created_at=from_epoch(product.created),
                provider=self.provider_type,
                thumb_url=product.images[0] if product.images else None,
                large_thumb_url=product.images[0] if product.images else None,
                price_formatted="-",
                status_formatted="Active" if product.active else "Inactive",
                stripe_product_id=product.id,
                stripe_default_price=product.default_price,
            )
            for product in products
        ]

    def fetch_store(self) -> Store:
        account = decode(StripeAccount, self._get("account"))
        balance = decode(StripeBalance, self._get("balance"))

        currency = account.default_currency.lower()
        available = next((row.amount for row in balance.available if row.currency.lower() == currency), 0)
        pending = next((row.amount for row in balance.pending if row.currency.lower() == currency), 0)
        profile = account.business_profile
        return Store(
            id=account.id,
            name=(profile.name if profile else None) or "Stripe Account",
            currency=account.default_currency,
            total_revenue=available + pending,
            # Not reported by Stripe.
            thirty_day_revenue=0,
            provider=self.provider_type,
            url=profile.url if profile else None,
            country=account.country,
            created_at=from_epoch(account.created) if account.created is not None else None,
            stripe_account_id=account.id,
            stripe_email=account.email,
        )

    def validate_api_key(self, key: str) -> bool:
        try:
            with self._api_key.candidate(key):
                try:
                    self._get("account")
                except ServerError as exc:
                    if exc.status_code != 404:
                        raise
                    # Restricted keys may not see /account.
                    self._get("charges", {"limit": "1"})
        except InvalidAPIKeyError:
            return False
        return True
