from __future__ import annotations

from sqlalchemy import update

from salestrack.domain.models import SalesProviderType
from salestrack.persistence.models import CacheEntryModel
from salestrack.sales.cache import CACHED_ORDERS_KEY, CACHED_STORE_KEY, CacheService


def test_orders_round_trip_field_for_field(cache, make_order):
    orders = [
        make_order(refunded_amount=100, identifier="A-1", variant_name="Gold"),
        make_order(provider=SalesProviderType.STRIPE, currency="EUR", payment_method="visa"),
    ]
    cache.cache_orders(orders)
    assert cache.load_cached_orders() == orders


def test_products_and_store_round_trip(cache, make_product, make_store):
    products = [make_product(), make_product(id="prod-2", provider=SalesProviderType.GUMROAD)]
    store = make_store(currency="EUR", total_revenue=500)
    cache.cache_products(products)
    cache.cache_store(store)
    assert cache.load_cached_products() == products
    assert cache.load_cached_store() == store


def test_missing_entries_load_as_none(cache):
    assert cache.load_cached_orders() is None
    assert cache.load_cached_products() is None
    assert cache.load_cached_store() is None
    assert cache.last_updated is None


def test_only_order_writes_touch_last_updated(cache, make_order, make_product, make_store):
    cache.cache_products([make_product()])
    cache.cache_store(make_store())
    assert cache.last_updated is None

    cache.cache_orders([make_order()])
    first = cache.last_updated
    assert first is not None

    cache.cache_orders([])
    assert cache.last_updated >= first
    assert cache.load_cached_orders() == []


def test_clear_cache_removes_every_key(cache, make_order, make_product, make_store):
    cache.cache_orders([make_order()])
    cache.cache_products([make_product()])
    cache.cache_store(make_store())

    cache.clear_cache()

    assert cache.load_cached_orders() is None
    assert cache.load_cached_products() is None
    assert cache.load_cached_store() is None
    assert cache.last_updated is None


def test_corrupt_entries_degrade_to_none(cache, make_order, make_store):
    cache.cache_orders([make_order()])
    cache.cache_store(make_store())
    with cache.database.session_scope() as session:
        session.execute(update(CacheEntryModel).where(CacheEntryModel.key == CACHED_ORDERS_KEY).values(value="{not json"))
        session.execute(update(CacheEntryModel).where(CacheEntryModel.key == CACHED_STORE_KEY).values(value='{"id": 1}'))

    assert cache.load_cached_orders() is None
    assert cache.load_cached_store() is None


def test_second_reader_sees_persisted_snapshot(settings, cache, make_order):
    orders = [make_order()]
    cache.cache_orders(orders)

    reader = CacheService.from_settings(settings)
    try:
        assert reader.load_cached_orders() == orders
        assert reader.last_updated == cache.last_updated
    finally:
        reader.database.dispose()
