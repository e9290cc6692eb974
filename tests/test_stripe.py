from __future__ import annotations

import base64

import httpx
import pytest

from salestrack.domain.models import OrderStatus, ProductStatus
from salestrack.providers.base import NetworkError, ServerError
from salestrack.providers.stripe import StripeProvider


def _charge(charge_id: str, **fields) -> dict:
    charge = {
        "id": charge_id,
        "amount": 1000,
        "amount_refunded": 0,
        "currency": "usd",
        "created": 1772359200,
        "customer": None,
        "description": "Pro plan",
        "paid": True,
        "refunded": False,
        "status": "succeeded",
        "receipt_url": f"https://pay.stripe.com/receipts/{charge_id}",
        "payment_intent": f"pi_{charge_id}",
        "billing_details": {"email": "buyer@example.com", "name": "Buyer", "phone": None, "address": None},
        "payment_method_details": {"card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}},
    }
    charge.update(fields)
    return charge


def _provider(settings, handler) -> StripeProvider:
    return StripeProvider("sk_test_123", settings=settings, transport=httpx.MockTransport(handler))


def test_cursor_pagination_uses_last_id(settings):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "starting_after" not in request.url.params:
            return httpx.Response(200, json={"data": [_charge("ch_1"), _charge("ch_2")], "has_more": True})
        return httpx.Response(200, json={"data": [_charge("ch_3")], "has_more": False})

    orders = _provider(settings, handler).fetch_all_orders()

    assert len(requests) == 2
    assert requests[0].url.params["limit"] == "100"
    assert requests[1].url.params["starting_after"] == "ch_2"
    assert [order.id for order in orders] == ["ch_1", "ch_2", "ch_3"]


def test_basic_auth_header(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        expected = base64.b64encode(b"sk_test_123:").decode("ascii")
        assert request.headers["Authorization"] == f"Basic {expected}"
        return httpx.Response(200, json={"data": [], "has_more": False})

    assert _provider(settings, handler).fetch_all_orders() == []


def test_partial_refund_reduces_net_total(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": [_charge("ch_1", amount_refunded=250)], "has_more": False})

    (order,) = _provider(settings, handler).fetch_all_orders()
    assert order.status is OrderStatus.PAID
    assert order.total == 1000
    assert order.refunded_amount == 250
    assert order.net_total == 750
    assert order.currency == "USD"
    assert order.payment_method == "visa"
    assert order.stripe_payment_intent_id == "pi_ch_1"


def test_unpaid_charges_skipped_and_full_refunds_marked(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        rows = [
            _charge("ch_unpaid", paid=False, status="failed"),
            _charge("ch_full", amount_refunded=1000),
            _charge("ch_flag", refunded=True, amount_refunded=1000),
            _charge("ch_anon", billing_details=None, description=None, payment_method_details=None),
        ]
        return httpx.Response(200, json={"data": rows, "has_more": False})

    orders = {order.id: order for order in _provider(settings, handler).fetch_all_orders()}
    assert "ch_unpaid" not in orders
    assert orders["ch_full"].status is OrderStatus.REFUNDED
    assert orders["ch_flag"].status is OrderStatus.REFUNDED
    assert orders["ch_anon"].customer_name == "Unknown"
    assert orders["ch_anon"].product_name == "Stripe Payment"
    assert orders["ch_anon"].payment_method is None


def test_products_paginate_active_catalog(settings):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        seen.append(params)
        product = {
            "id": "prod_1" if "starting_after" not in params else "prod_2",
            "name": "Pro plan",
            "description": None,
            "active": True,
            "default_price": "price_1",
            "images": ["https://files.stripe.com/img.png"],
            "created": 1700000000,
        }
        return httpx.Response(200, json={"data": [product], "has_more": "starting_after" not in params})

    products = _provider(settings, handler).fetch_products()

    assert [p.id for p in products] == ["prod_1", "prod_2"]
    assert all(params["active"] == "true" for params in seen)
    assert seen[1]["starting_after"] == "prod_1"
    assert products[0].status is ProductStatus.ACTIVE
    assert products[0].price == 0
    assert products[0].currency == "USD"
    assert products[0].stripe_default_price == "price_1"


def test_store_from_account_and_balance(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/account":
            return httpx.Response(
                200,
                json={
                    "id": "acct_123",
                    "email": "owner@example.com",
                    "country": "DE",
                    "default_currency": "eur",
                    "charges_enabled": True,
                    "business_profile": {"name": "Owner GmbH", "url": "https://owner.example.com"},
                    "created": 1700000000,
                },
            )
        if request.url.path == "/v1/balance":
            return httpx.Response(
                200,
                json={
                    "available": [{"amount": 100, "currency": "eur"}, {"amount": 999, "currency": "usd"}],
                    "pending": [{"amount": 200, "currency": "eur"}],
                },
            )
        return httpx.Response(404)

    store = _provider(settings, handler).fetch_store()
    assert store.currency == "EUR"
    assert store.total_revenue == 300
    assert store.thirty_day_revenue == 0
    assert store.name == "Owner GmbH"
    assert store.stripe_account_id == "acct_123"


def test_validate_falls_back_to_charges_on_404(settings):
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/v1/account":
            return httpx.Response(404)
        return httpx.Response(200, json={"data": [], "has_more": False})

    provider = _provider(settings, handler)
    assert provider.validate_api_key("rk_live_restricted") is True
    assert paths == ["/v1/account", "/v1/charges"]
    assert provider._api_key.value == "rk_live_restricted"


def test_validate_restores_key_on_server_error(settings):
    provider = _provider(settings, lambda request: httpx.Response(500))
    with pytest.raises(ServerError) as excinfo:
        provider.validate_api_key("sk_other")
    assert excinfo.value.status_code == 500
    assert provider._api_key.value == "sk_test_123"


def test_transport_failure_is_a_network_error(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(NetworkError) as excinfo:
        _provider(settings, handler).fetch_all_orders()
    assert isinstance(excinfo.value.underlying, httpx.ConnectTimeout)
