from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Iterable, Sequence

import pandas as pd

from salestrack.domain.clock import as_utc, days_before, local_day, now_utc, to_local
from salestrack.domain.models import DEFAULT_CURRENCY, Order, OrderStatus, Store

WINDOW_DAYS = 30


@dataclass(frozen=True)
class DailySales:
    date: date
    revenue: int
    order_count: int


@dataclass(frozen=True)
class ProductSales:
    product_name: str
    revenue: int
    order_count: int
    last_order_date: datetime


@dataclass(frozen=True)
class SalesMetrics:
    today_revenue: int = 0
    today_orders: int = 0
    thirty_day_revenue: int = 0
    thirty_day_orders: int = 0
    month_revenue: int = 0
    month_orders: int = 0
    all_time_revenue: int = 0
    all_time_orders: int = 0
    daily_breakdown: tuple[DailySales, ...] = field(default_factory=tuple)
    product_breakdown: tuple[ProductSales, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "SalesMetrics":
        return cls()


def _order_rows(orders: Iterable[Order], zone: tzinfo | None) -> list[dict]:
    rows: list[dict] = []
    for order in orders:
        if order.status is not OrderStatus.PAID:
            continue
        local = to_local(order.created_at, zone)
        rows.append(
            {
                "created_at": as_utc(order.created_at),
                "day": local.date(),
                "day_key": local.date().toordinal(),
                "month_key": local.year * 100 + local.month,
                "product_name": order.product_name,
                "net_total": order.net_total,
            }
        )
    return rows


def _bucket(frame: pd.DataFrame, mask: pd.Series) -> tuple[int, int]:
    scoped = frame[mask]
    return int(scoped["net_total"].sum()), int(len(scoped))


def _daily_breakdown(frame: pd.DataFrame) -> tuple[DailySales, ...]:
    grouped = (
        frame.groupby("day", sort=False)
        .agg(revenue=("net_total", "sum"), order_count=("net_total", "size"))
        .reset_index()
        .sort_values("day", ascending=False, kind="stable")
    )
    return tuple(
        DailySales(date=row.day, revenue=int(row.revenue), order_count=int(row.order_count))
        for row in grouped.itertuples(index=False)
    )


def _product_breakdown(frame: pd.DataFrame) -> tuple[ProductSales, ...]:
    # Grouped by the literal display name; providers do not expose a stable
    # product id on every order record.
    grouped = (
        frame.groupby("product_name", sort=False)
        .agg(
            revenue=("net_total", "sum"),
            order_count=("net_total", "size"),
            last_order_date=("created_at", "max"),
        )
        .reset_index()
        .sort_values("revenue", ascending=False, kind="stable")
    )
    return tuple(
        ProductSales(
            product_name=str(row.product_name),
            revenue=int(row.revenue),
            order_count=int(row.order_count),
            last_order_date=pd.Timestamp(row.last_order_date).to_pydatetime(),
        )
        for row in grouped.itertuples(index=False)
    )


def compute_metrics(
    orders: Sequence[Order],
    now: datetime | None = None,
    zone: tzinfo | None = None,
) -> SalesMetrics:
    """Aggregate paid orders into time buckets and per-day/per-product rollups.

    Revenue is always ``net_total`` (gross minus partial refunds). Day and month
    buckets use ``zone``; ``None`` means the system local zone at call time.
    The 30-day window starts 30 calendar days back in that zone, so a DST shift
    inside the window does not move its lower bound by an hour.
    Input order only matters for tie-breaking between equal product revenues.
    """
    rows = _order_rows(orders, zone)
    if not rows:
        return SalesMetrics.empty()

    current = as_utc(now) if now is not None else now_utc()
    today = local_day(current, zone)
    current_local = to_local(current, zone)
    month_key = current_local.year * 100 + current_local.month

    frame = pd.DataFrame(rows)
    today_revenue, today_orders = _bucket(frame, frame["day_key"] == today.toordinal())
    thirty_revenue, thirty_orders = _bucket(
        frame,
        (frame["created_at"] >= days_before(current, WINDOW_DAYS, zone)) & (frame["created_at"] <= current),
    )
    month_revenue, month_orders = _bucket(frame, frame["month_key"] == month_key)

    return SalesMetrics(
        today_revenue=today_revenue,
        today_orders=today_orders,
        thirty_day_revenue=thirty_revenue,
        thirty_day_orders=thirty_orders,
        month_revenue=month_revenue,
        month_orders=month_orders,
        all_time_revenue=int(frame["net_total"].sum()),
        all_time_orders=int(len(frame)),
        daily_breakdown=_daily_breakdown(frame),
        product_breakdown=_product_breakdown(frame),
    )


def primary_currency(orders: Sequence[Order], stores: Sequence[Store] = ()) -> str:
    """Most frequent order currency, else the first store's currency, else USD."""
    if not orders:
        return stores[0].currency if stores else DEFAULT_CURRENCY
    counts = Counter(order.currency for order in orders)
    # most_common keeps first-seen order on ties
    return counts.most_common(1)[0][0]
