from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from salestrack.core.config import Settings, get_settings
from salestrack.domain.clock import as_utc, now_utc
from salestrack.domain.models import Order, Product, Store
from salestrack.persistence.db import Database
from salestrack.persistence.models import CacheEntryModel

logger = logging.getLogger(__name__)

CACHED_ORDERS_KEY = "cached_orders"
CACHED_PRODUCTS_KEY = "cached_products"
CACHED_STORE_KEY = "cached_store"
CACHE_LAST_UPDATED_KEY = "cache_last_updated"

CACHE_KEYS = (CACHED_ORDERS_KEY, CACHED_PRODUCTS_KEY, CACHED_STORE_KEY, CACHE_LAST_UPDATED_KEY)

_ORDERS = TypeAdapter(list[Order])
_PRODUCTS = TypeAdapter(list[Product])
_STORE = TypeAdapter(Store)
_TIMESTAMP = TypeAdapter(datetime)


class CacheService:
    """Last merged snapshot as JSON documents under fixed keys.

    Readers never see an error: missing or undecodable entries load as ``None``.
    """

    def __init__(self, database: Database):
        self.database = database
        self.database.init()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CacheService":
        cfg = settings or get_settings()
        return cls(Database(cfg.cache_database_url))

    def _write(self, entries: dict[str, bytes]) -> None:
        now = now_utc()
        with self.database.session_scope() as session:
            for key, value in entries.items():
                session.merge(CacheEntryModel(key=key, value=value.decode("utf-8"), updated_at=now))

    def _read(self, key: str) -> str | None:
        try:
            with self.database.session_scope() as session:
                return session.scalar(select(CacheEntryModel.value).where(CacheEntryModel.key == key))
        except SQLAlchemyError as exc:
            logger.warning("cache read failed key=%s: %s", key, exc)
            return None

    def _load(self, key: str, adapter: TypeAdapter) -> Any | None:
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("discarding undecodable cache entry key=%s: %s", key, exc.error_count())
            return None

    def cache_orders(self, orders: list[Order]) -> None:
        self._write(
            {
                CACHED_ORDERS_KEY: _ORDERS.dump_json(orders),
                CACHE_LAST_UPDATED_KEY: _TIMESTAMP.dump_json(now_utc()),
            }
        )

    def load_cached_orders(self) -> list[Order] | None:
        return self._load(CACHED_ORDERS_KEY, _ORDERS)

    def cache_products(self, products: list[Product]) -> None:
        self._write({CACHED_PRODUCTS_KEY: _PRODUCTS.dump_json(products)})

    def load_cached_products(self) -> list[Product] | None:
        return self._load(CACHED_PRODUCTS_KEY, _PRODUCTS)

    def cache_store(self, store: Store) -> None:
        self._write({CACHED_STORE_KEY: _STORE.dump_json(store)})

    def load_cached_store(self) -> Store | None:
        return self._load(CACHED_STORE_KEY, _STORE)

    @property
    def last_updated(self) -> datetime | None:
        value = self._load(CACHE_LAST_UPDATED_KEY, _TIMESTAMP)
        return as_utc(value) if value is not None else None

    def clear_cache(self) -> None:
        with self.database.session_scope() as session:
            session.execute(delete(CacheEntryModel).where(CacheEntryModel.key.in_(CACHE_KEYS)))
