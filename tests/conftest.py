from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import pytest

from salestrack.core.config import Settings
from salestrack.domain.models import Order, OrderStatus, Product, ProductStatus, SalesProviderType, Store
from salestrack.sales.cache import CacheService


@pytest.fixture()
def cache_db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache.sqlite"


@pytest.fixture()
def settings(cache_db_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        cache_database_url=f"sqlite+pysqlite:///{cache_db_path}",
        timezone="UTC",
        http_timeout_seconds=5,
    )


@pytest.fixture()
def cache(settings: Settings) -> CacheService:
    service = CacheService.from_settings(settings)
    yield service
    service.database.dispose()


@pytest.fixture()
def make_order() -> Callable[..., Order]:
    counter = {"n": 0}

    def factory(**overrides: Any) -> Order:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"ord-{counter['n']}",
            "status": OrderStatus.PAID,
            "total": 1000,
            "currency": "USD",
            "customer_email": "buyer@example.com",
            "customer_name": "Buyer",
            "product_name": "Widget",
            "created_at": datetime(2026, 3, 15, 10, 0, tzinfo=timezone.utc),
            "provider": SalesProviderType.LEMONSQUEEZY,
        }
        fields.update(overrides)
        return Order(**fields)

    return factory


@pytest.fixture()
def make_product() -> Callable[..., Product]:
    def factory(**overrides: Any) -> Product:
        fields: dict[str, Any] = {
            "id": "prod-1",
            "name": "Widget",
            "price": 1500,
            "status": ProductStatus.PUBLISHED,
            "created_at": datetime(2025, 1, 1, tzinfo=timezone.utc),
            "provider": SalesProviderType.LEMONSQUEEZY,
        }
        fields.update(overrides)
        return Product(**fields)

    return factory


@pytest.fixture()
def make_store() -> Callable[..., Store]:
    def factory(**overrides: Any) -> Store:
        provider = overrides.get("provider", SalesProviderType.LEMONSQUEEZY)
        fields: dict[str, Any] = {
            "id": f"{SalesProviderType(provider).value}-store",
            "name": "Test Store",
            "currency": "USD",
            "provider": provider,
        }
        fields.update(overrides)
        return Store(**fields)

    return factory
