from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from salestrack.core.config import get_settings
from salestrack.core.logging import configure_logging
from salestrack.domain.clock import resolve_zone
from salestrack.domain.metrics import SalesMetrics, compute_metrics, primary_currency
from salestrack.domain.models import Order, SalesProviderType
from salestrack.providers import SalesAPIError, build_provider
from salestrack.sales.cache import CacheService
from salestrack.sales.manager import SalesManager

logger = logging.getLogger(__name__)

PROVIDER_CHOICES = [provider.value for provider in SalesProviderType]


def _metrics_summary(metrics: SalesMetrics, currency: str) -> dict[str, Any]:
    return {
        "currency": currency,
        "today_revenue": metrics.today_revenue,
        "today_orders": metrics.today_orders,
        "thirty_day_revenue": metrics.thirty_day_revenue,
        "thirty_day_orders": metrics.thirty_day_orders,
        "month_revenue": metrics.month_revenue,
        "month_orders": metrics.month_orders,
        "all_time_revenue": metrics.all_time_revenue,
        "all_time_orders": metrics.all_time_orders,
        "top_products": [
            {"product_name": row.product_name, "revenue": row.revenue, "order_count": row.order_count}
            for row in metrics.product_breakdown[:5]
        ],
    }


def _print(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-provider sales tracker")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("refresh", help="Fetch every configured provider and update the offline cache")
    top.add_parser("summary", help="Summarise the offline cache without touching the network")

    orders = top.add_parser("orders", help="List merged orders, newest first")
    orders.add_argument("--search", default="", help="Match customer, email, product or order id")
    orders.add_argument("--provider", choices=PROVIDER_CHOICES, default=None)
    orders.add_argument("--refresh", action="store_true", help="Refresh before listing")
    orders.add_argument("--limit", type=int, default=50)

    validate = top.add_parser("validate", help="Check whether a provider accepts an API key")
    validate.add_argument("provider", choices=PROVIDER_CHOICES)
    validate.add_argument("key")

    return parser


def _run_refresh(args: argparse.Namespace) -> int:
    manager = SalesManager()
    try:
        snapshot = manager.refresh()
    except SalesAPIError as exc:
        _print({"status": "failed", "error": exc.kind.value, "message": exc.message})
        return 1

    payload: dict[str, Any] = {
        "status": "ok" if snapshot.error is None else "partial",
        "providers": [provider.value for provider in manager.connected_providers],
        "orders": len(snapshot.orders),
        "products": len(snapshot.products),
        "last_updated": snapshot.last_updated,
        "metrics": _metrics_summary(snapshot.metrics, manager.primary_currency),
    }
    if snapshot.error is not None:
        payload["error"] = snapshot.error.kind.value
        payload["message"] = snapshot.error.message
    _print(payload)
    return 0 if snapshot.error is None else 1


def _run_summary(args: argparse.Namespace) -> int:
    # Companion read path: cache only, never the network.
    cache = CacheService.from_settings()
    orders: list[Order] = cache.load_cached_orders() or []
    store = cache.load_cached_store()
    metrics = compute_metrics(orders, zone=resolve_zone(get_settings().timezone))
    currency = primary_currency(orders, [store] if store is not None else [])
    _print(
        {
            "last_updated": cache.last_updated,
            "cached_orders": len(orders),
            "metrics": _metrics_summary(metrics, currency),
        }
    )
    return 0


def _run_orders(args: argparse.Namespace) -> int:
    manager = SalesManager()
    if args.refresh:
        try:
            manager.refresh()
        except SalesAPIError as exc:
            logger.warning("refresh failed: %s", exc)
    provider = SalesProviderType(args.provider) if args.provider else None
    rows = manager.filtered_orders(args.search, provider)[: max(0, args.limit)]
    _print([order.model_dump(mode="json", exclude_none=True) for order in rows])
    return 0


def _run_validate(args: argparse.Namespace) -> int:
    provider_type = SalesProviderType(args.provider)
    adapter = build_provider(provider_type, args.key)
    try:
        valid = adapter.validate_api_key(args.key)
    except SalesAPIError as exc:
        _print({"provider": provider_type.value, "valid": False, "error": exc.kind.value, "message": exc.message})
        return 1
    _print({"provider": provider_type.value, "valid": valid})
    return 0 if valid else 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)

    handlers = {
        "refresh": _run_refresh,
        "summary": _run_summary,
        "orders": _run_orders,
        "validate": _run_validate,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error("unsupported command")
        return 2
    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
