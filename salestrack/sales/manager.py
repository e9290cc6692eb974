from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Iterable, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from salestrack.core.config import Settings, get_settings
from salestrack.domain.clock import now_utc, resolve_zone
from salestrack.domain.metrics import SalesMetrics, compute_metrics, primary_currency
from salestrack.domain.models import DEFAULT_CURRENCY, Order, Product, SalesProviderType, Store
from salestrack.providers import build_provider
from salestrack.providers.base import DecodingError, NetworkError, NoAPIKeyError, SalesAPIError, SalesProvider
from salestrack.sales.cache import CacheService
from salestrack.sales.credentials import CredentialStore, SettingsCredentialStore
from salestrack.sales.fixtures import load_fixture_snapshot

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[SalesProviderType, str, Settings], SalesProvider]

PROVIDER_ORDER: tuple[SalesProviderType, ...] = tuple(SalesProviderType)
FETCHES_PER_PROVIDER = 3


@dataclass(frozen=True)
class SalesSnapshot:
    """Merged view of every provider; replaced wholesale, never edited in place."""

    orders: tuple[Order, ...] = ()
    products: tuple[Product, ...] = ()
    stores: tuple[Store, ...] = ()
    metrics: SalesMetrics = field(default_factory=SalesMetrics.empty)
    last_updated: datetime | None = None
    error: SalesAPIError | None = None


@dataclass
class ProviderResult:
    provider: SalesProviderType
    orders: list[Order] = field(default_factory=list)
    products: list[Product] = field(default_factory=list)
    store: Store | None = None
    error: SalesAPIError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.store is not None


def as_api_error(exc: BaseException) -> SalesAPIError:
    if isinstance(exc, SalesAPIError):
        return exc
    if isinstance(exc, ValidationError):
        return DecodingError(exc)
    return NetworkError(exc)


def backfill_currency(products: Iterable[Product], store: Store) -> list[Product]:
    """Swap the USD placeholder for the store's currency on catalog rows that lack one."""
    if store.currency == DEFAULT_CURRENCY:
        return list(products)
    return [
        product.model_copy(update={"currency": store.currency})
        if product.currency == DEFAULT_CURRENCY
        else product
        for product in products
    ]


def fetch_provider(provider: SalesProvider) -> ProviderResult:
    """Run the three fetches of one provider concurrently; any failure drops all three."""
    result = ProviderResult(provider=provider.provider_type)
    with ThreadPoolExecutor(max_workers=FETCHES_PER_PROVIDER) as pool:
        orders_future = pool.submit(provider.fetch_all_orders)
        products_future = pool.submit(provider.fetch_products)
        store_future = pool.submit(provider.fetch_store)
        try:
            orders = orders_future.result()
            products = products_future.result()
            store = store_future.result()
        except Exception as exc:
            result.error = as_api_error(exc)
            return result

    result.orders = list(orders)
    result.store = store
    result.products = backfill_currency(products, store)
    return result


def merge_results(results: Sequence[ProviderResult]) -> tuple[list[Order], list[Product], list[Store]]:
    """Union of successful results; orders newest first.

    Results are concatenated in provider order so the outcome does not depend on
    which provider finished first. Within a provider, server order breaks ties.
    """
    orders: list[Order] = []
    products: list[Product] = []
    stores: list[Store] = []
    for result in sorted(results, key=lambda item: PROVIDER_ORDER.index(item.provider)):
        if not result.ok:
            continue
        orders.extend(result.orders)
        products.extend(result.products)
        if result.store is not None:
            stores.append(result.store)
    orders.sort(key=lambda order: order.created_at, reverse=True)
    return orders, products, stores


def filter_orders(
    orders: Iterable[Order],
    search: str = "",
    provider: SalesProviderType | None = None,
) -> list[Order]:
    selected = [order for order in orders if provider is None or order.provider == provider]
    query = search.strip().lower()
    if not query:
        return selected

    def matches(order: Order) -> bool:
        fields = (
            order.customer_name,
            order.customer_email,
            order.product_name,
            order.id,
            order.identifier,
            order.payment_method,
        )
        return any(value and query in value.lower() for value in fields)

    return [order for order in selected if matches(order)]


class SalesManager:
    """Owns the configured adapters and the merged snapshot.

    Only this class writes the snapshot. Readers take ``snapshot`` (or one of the
    convenience properties) and may subscribe to be told when it is replaced.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        credentials: CredentialStore | None = None,
        cache: CacheService | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.settings = settings or get_settings()
        self.credentials = credentials or SettingsCredentialStore(self.settings)
        self.cache = cache or CacheService.from_settings(self.settings)
        self.provider_factory = provider_factory or build_provider
        self.zone = resolve_zone(self.settings.timezone)

        self._providers: dict[SalesProviderType, SalesProvider] = {}
        self._snapshot = SalesSnapshot()
        self._state_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._subscribers: list[Callable[[SalesSnapshot], None]] = []

        if self.settings.demo_mode:
            self._load_demo()
            return
        self._load_cached_data()
        self.configure_providers()

    # -- read side ---------------------------------------------------------

    @property
    def snapshot(self) -> SalesSnapshot:
        return self._snapshot

    @property
    def orders(self) -> tuple[Order, ...]:
        return self._snapshot.orders

    @property
    def products(self) -> tuple[Product, ...]:
        return self._snapshot.products

    @property
    def stores(self) -> tuple[Store, ...]:
        return self._snapshot.stores

    @property
    def metrics(self) -> SalesMetrics:
        return self._snapshot.metrics

    @property
    def last_updated(self) -> datetime | None:
        return self._snapshot.last_updated

    @property
    def error(self) -> SalesAPIError | None:
        return self._snapshot.error

    @property
    def connected_providers(self) -> list[SalesProviderType]:
        configured = self._providers
        return [provider for provider in PROVIDER_ORDER if provider in configured]

    def is_connected(self, provider: SalesProviderType) -> bool:
        return provider in self._providers

    @property
    def is_any_connected(self) -> bool:
        return bool(self._providers)

    @property
    def primary_currency(self) -> str:
        snapshot = self._snapshot
        return primary_currency(snapshot.orders, snapshot.stores)

    def filtered_orders(self, search: str = "", provider: SalesProviderType | None = None) -> list[Order]:
        return filter_orders(self._snapshot.orders, search, provider)

    def store_for(self, provider: SalesProviderType) -> Store | None:
        return next((store for store in self._snapshot.stores if store.provider == provider), None)

    def subscribe(self, callback: Callable[[SalesSnapshot], None]) -> Callable[[], None]:
        with self._state_lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._state_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # -- configuration -----------------------------------------------------

    def configure_providers(self) -> None:
        with self._state_lock:
            for provider_type in PROVIDER_ORDER:
                key = self.credentials.load(provider_type)
                if key:
                    self._providers[provider_type] = self.provider_factory(provider_type, key, self.settings)
        logger.info("configured providers: %s", ", ".join(p.value for p in self.connected_providers) or "none")

    def connect(self, provider_type: SalesProviderType, key: str) -> bool:
        """Validate ``key`` with a fresh adapter; on success store it and refresh."""
        candidate = self.provider_factory(provider_type, key, self.settings)
        try:
            valid = candidate.validate_api_key(key)
        except SalesAPIError as exc:
            logger.warning("validating %s key failed: %s", provider_type.value, exc)
            self._publish(lambda current: replace(current, error=exc))
            return False
        if not valid:
            logger.info("%s rejected the supplied key", provider_type.value)
            return False

        self.credentials.save(provider_type, key)
        with self._state_lock:
            self._providers[provider_type] = candidate
        self.refresh()
        return True

    def disconnect(self, provider_type: SalesProviderType) -> None:
        self.credentials.delete(provider_type)

        def purge(current: SalesSnapshot) -> SalesSnapshot:
            self._providers.pop(provider_type, None)
            orders = tuple(order for order in current.orders if order.provider != provider_type)
            return replace(
                current,
                orders=orders,
                products=tuple(p for p in current.products if p.provider != provider_type),
                stores=tuple(s for s in current.stores if s.provider != provider_type),
                metrics=compute_metrics(orders, zone=self.zone),
            )

        self._publish(purge)
        if not self.is_any_connected:
            try:
                self.cache.clear_cache()
            except SQLAlchemyError as exc:
                logger.warning("offline cache clear failed: %s", exc)

    # -- refresh -----------------------------------------------------------

    def refresh(self) -> SalesSnapshot:
        with self._refresh_lock:
            if self.settings.demo_mode:
                self._load_demo()
                return self._snapshot

            providers = [self._providers[p] for p in self.connected_providers]
            if not providers:
                error = NoAPIKeyError()
                self._publish(lambda current: replace(current, error=error))
                raise error

            results, first_error = self._fetch_all(providers)
            return self._publish(lambda current: self._merge_into(current, results, first_error))

    def _fetch_all(self, providers: list[SalesProvider]) -> tuple[list[ProviderResult], SalesAPIError | None]:
        results: list[ProviderResult] = []
        first_error: SalesAPIError | None = None
        with ThreadPoolExecutor(max_workers=len(providers)) as pool:
            futures: dict[Future, SalesProviderType] = {
                pool.submit(fetch_provider, provider): provider.provider_type for provider in providers
            }
            for future in as_completed(futures):
                provider_type = futures[future]
                try:
                    result = future.result()
                except Exception as exc:  # pragma: no cover - fetch_provider captures adapter errors
                    result = ProviderResult(provider=provider_type, error=as_api_error(exc))
                if result.error is not None:
                    logger.warning("%s refresh failed: %s", provider_type.value, result.error)
                    first_error = first_error or result.error
                results.append(result)
        return results, first_error

    def _merge_into(
        self,
        current: SalesSnapshot,
        results: list[ProviderResult],
        first_error: SalesAPIError | None,
    ) -> SalesSnapshot:
        # Providers disconnected while the fetch was in flight do not come back.
        live = [result for result in results if result.ok and result.provider in self._providers]
        if not live:
            # Keep the stale snapshot visible when nothing succeeded.
            return replace(current, error=first_error)

        orders, products, stores = merge_results(live)
        snapshot = SalesSnapshot(
            orders=tuple(orders),
            products=tuple(products),
            stores=tuple(stores),
            metrics=compute_metrics(orders, zone=self.zone),
            last_updated=now_utc(),
            error=first_error,
        )
        self._persist(snapshot)
        logger.info(
            "refresh complete: providers=%s orders=%s products=%s errors=%s",
            len(live),
            len(orders),
            len(products),
            len(results) - len(live),
        )
        return snapshot

    def _persist(self, snapshot: SalesSnapshot) -> None:
        try:
            self.cache.cache_orders(list(snapshot.orders))
            self.cache.cache_products(list(snapshot.products))
            if snapshot.stores:
                self.cache.cache_store(snapshot.stores[0])
        except SQLAlchemyError as exc:
            logger.warning("offline cache write failed: %s", exc)

    def _publish(self, transform: Callable[[SalesSnapshot], SalesSnapshot]) -> SalesSnapshot:
        with self._state_lock:
            snapshot = transform(self._snapshot)
            self._snapshot = snapshot
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(snapshot)
        return snapshot

    # -- startup -----------------------------------------------------------

    def _load_cached_data(self) -> None:
        orders = self.cache.load_cached_orders() or []
        products = self.cache.load_cached_products() or []
        store = self.cache.load_cached_store()
        self._snapshot = SalesSnapshot(
            orders=tuple(orders),
            products=tuple(products),
            stores=(store,) if store is not None else (),
            metrics=compute_metrics(orders, zone=self.zone),
            last_updated=self.cache.last_updated,
        )

    def _load_demo(self) -> None:
        if self.settings.demo_fixture_path is None:
            raise ValueError("demo mode requires ST_DEMO_FIXTURE_PATH")
        fixture = load_fixture_snapshot(self.settings.demo_fixture_path)
        orders = sorted(fixture.orders, key=lambda order: order.created_at, reverse=True)
        self._publish(
            lambda _: SalesSnapshot(
                orders=tuple(orders),
                products=tuple(fixture.products),
                stores=tuple(fixture.stores),
                metrics=compute_metrics(orders, zone=self.zone),
                last_updated=now_utc(),
            )
        )
