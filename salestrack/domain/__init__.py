from salestrack.domain.metrics import DailySales, ProductSales, SalesMetrics, compute_metrics, primary_currency
from salestrack.domain.models import (
    DEFAULT_CURRENCY,
    Order,
    OrderStatus,
    Product,
    ProductStatus,
    SalesProviderType,
    Store,
)

__all__ = [
    "DEFAULT_CURRENCY",
    "DailySales",
    "Order",
    "OrderStatus",
    "Product",
    "ProductSales",
    "ProductStatus",
    "SalesMetrics",
    "SalesProviderType",
    "Store",
    "compute_metrics",
    "primary_currency",
]
