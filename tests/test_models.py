from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from salestrack.domain.models import Order, OrderStatus, ProductStatus, SalesProviderType


def test_net_total_subtracts_partial_refund(make_order):
    order = make_order(total=1000, refunded_amount=250)
    assert order.net_total == 750
    assert order.net_total <= order.total
    assert order.is_refunded is True


def test_net_total_never_negative(make_order):
    order = make_order(total=500, refunded_amount=900)
    assert order.net_total == 0


def test_is_refunded_signals(make_order):
    assert make_order().is_refunded is False
    assert make_order(status=OrderStatus.REFUNDED).is_refunded is True
    assert make_order(refunded_at=datetime(2026, 1, 2, tzinfo=timezone.utc)).is_refunded is True
    assert make_order(refunded_amount=0).is_refunded is False


def test_unknown_status_values_map_to_unknown():
    assert OrderStatus("partial_refund") is OrderStatus.UNKNOWN
    assert ProductStatus("pending_review") is ProductStatus.UNKNOWN
    assert ProductStatus("active") is ProductStatus.ACTIVE


def test_currency_is_normalized_and_defaults_to_usd(make_order):
    assert make_order(currency="eur").currency == "EUR"
    assert make_order(currency=None).currency == "USD"
    assert make_order(currency="").currency == "USD"


def test_negative_total_rejected(make_order):
    with pytest.raises(ValidationError):
        make_order(total=-1)


def test_naive_timestamps_are_treated_as_utc(make_order):
    order = make_order(created_at=datetime(2026, 1, 1, 12, 0))
    assert order.created_at.tzinfo is not None
    assert order.created_at.utcoffset() == timedelta(0)


def test_orders_are_immutable(make_order):
    order = make_order()
    with pytest.raises(ValidationError):
        order.total = 5  # type: ignore[misc]


def test_is_today_and_this_month_follow_wall_clock(make_order):
    now = datetime.now(timezone.utc)
    assert make_order(created_at=now).is_today is True
    assert make_order(created_at=now).is_this_month is True
    assert make_order(created_at=now - timedelta(days=400)).is_this_month is False


def test_provider_display_names():
    assert SalesProviderType.LEMONSQUEEZY.display_name == "Lemon Squeezy"
    assert SalesProviderType("stripe") is SalesProviderType.STRIPE


def test_order_json_round_trip_keeps_every_field(make_order):
    order = make_order(
        refunded_amount=100,
        identifier="ABCD-1234",
        payment_method="visa",
        receipt_url="https://example.com/r/1",
    )
    assert Order.model_validate_json(order.model_dump_json()) == order


def test_negative_refund_rejected(make_order):
    with pytest.raises(ValidationError):
        make_order(total=100, refunded_amount=-50)
