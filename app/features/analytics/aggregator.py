"""Metrics aggregation over raw records.

Pure functions: no I/O, no shared state. Callers fetch the record windows and
pass them in.

Retention rule used everywhere: a customer is *returning* when its identifier
appears in the preceding window of the same granularity, otherwise *new*.

CRITICAL: every ratio goes through ``safe_divide`` - a zero denominator
yields 0, never NaN or infinity.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import TypeVar

from app.features.analytics.bucketing import bucket_start
from app.features.analytics.schemas import (
    CategoryBreakdown,
    CustomerRetention,
    GrowthRates,
    HistoryPoint,
    MetricsSnapshot,
    PerformanceRatios,
    Period,
    ProductBreakdown,
    RollupMetrics,
    SnapshotGrowth,
    YearSummary,
)
from app.features.records.schemas import RawRecord

T = TypeVar("T")


# =============================================================================
# Arithmetic helpers
# =============================================================================


def safe_divide(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def percentage_change(current: float, previous: float | None) -> float:
    """Unrounded percent change from ``previous`` to ``current``.

    Returns:
        0 when ``previous`` is absent; 100 when ``previous`` is 0 and
        ``current`` is positive; 0 when both are non-positive with a zero
        base; otherwise ``(current - previous) / previous * 100``.
    """
    if previous is None:
        return 0.0
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def calculate_growth_rate(current: float, previous: float | None) -> float:
    """Display-grade growth percentage, rounded to one decimal place.

    Examples:
        >>> calculate_growth_rate(150, 100)
        50.0
        >>> calculate_growth_rate(5, 0)
        100.0
        >>> calculate_growth_rate(0, 0)
        0.0
    """
    return round(percentage_change(current, previous), 1)


def rank_by_revenue(
    items: Iterable[T],
    revenue: Callable[[T], float],
    limit: int | None = None,
) -> list[T]:
    """Sort descending by revenue; equal revenues keep their input order.

    Args:
        items: Items in discovery order.
        revenue: Revenue accessor.
        limit: Optional truncation.

    Returns:
        Ranked items.
    """
    ranked = sorted(items, key=revenue, reverse=True)  # sorted() is stable under reverse
    return ranked if limit is None else ranked[:limit]


# =============================================================================
# Window totals
# =============================================================================


@dataclass
class WindowTotals:
    """Revenue, order and customer totals for one window of records."""

    revenue: float = 0.0
    orders: int = 0
    customers: set[str] = field(default_factory=lambda: set[str]())

    @property
    def unique_customers(self) -> int:
        return len(self.customers)


def window_totals(records: Iterable[RawRecord]) -> WindowTotals:
    """Accumulate totals over ``records`` in one pass."""
    totals = WindowTotals()
    for record in records:
        totals.revenue += record.revenue_value
        totals.orders += 1
        if record.customer_id:
            totals.customers.add(record.customer_id)
    return totals


def customer_ids(records: Iterable[RawRecord]) -> set[str]:
    """Distinct customer identifiers in ``records``."""
    return {r.customer_id for r in records if r.customer_id}


# =============================================================================
# Snapshot
# =============================================================================


@dataclass
class _ProductAcc:
    revenue: float = 0.0
    orders: int = 0
    quantity: int = 0


@dataclass
class _CategoryAcc:
    revenue: float = 0.0
    orders: int = 0


@dataclass
class _YearAcc:
    revenue: float = 0.0
    orders: int = 0
    customers: set[str] = field(default_factory=lambda: set[str]())
    products: set[str] = field(default_factory=lambda: set[str]())
    categories: set[str] = field(default_factory=lambda: set[str]())


def compute_snapshot(
    records: Sequence[RawRecord],
    previous_records: Sequence[RawRecord],
) -> MetricsSnapshot:
    """Compute live metrics for a window against the preceding window.

    Records without a date count toward every total and breakdown except the
    daily histogram and the yearly comparison.

    Args:
        records: Records of the current window (one account).
        previous_records: Records of the preceding window (same account).

    Returns:
        Metrics snapshot with breakdowns, ratios and growth.
    """
    previous = window_totals(previous_records)
    previous_customers = previous.customers

    total_revenue = 0.0
    customers: set[str] = set()
    products: dict[str, _ProductAcc] = {}
    categories: dict[str, _CategoryAcc] = {}
    daily_revenue: dict[str, float] = {}
    years: dict[str, _YearAcc] = {}
    returning_lines = 0
    new_lines = 0

    for record in records:
        revenue = record.revenue_value
        total_revenue += revenue

        if record.customer_id:
            customers.add(record.customer_id)
            if record.customer_id in previous_customers:
                returning_lines += 1
            else:
                new_lines += 1

        if record.product_id:
            product = products.setdefault(record.product_id, _ProductAcc())
            product.revenue += revenue
            product.orders += 1
            product.quantity += record.line_quantity

        if record.category:
            category = categories.setdefault(record.category, _CategoryAcc())
            category.revenue += revenue
            category.orders += 1

        if record.date is not None:
            day_key = record.date.date().isoformat()
            daily_revenue[day_key] = daily_revenue.get(day_key, 0.0) + revenue

            year = years.setdefault(str(record.date.year), _YearAcc())
            year.revenue += revenue
            year.orders += 1
            if record.customer_id:
                year.customers.add(record.customer_id)
            if record.product_id:
                year.products.add(record.product_id)
            if record.category:
                year.categories.add(record.category)

    total_orders = len(records)
    unique_customers = len(customers)
    avg_order_value = safe_divide(total_revenue, total_orders)
    conversion_rate = safe_divide(total_orders, unique_customers) * 100

    classified = returning_lines + new_lines

    top_products = rank_by_revenue(
        (
            ProductBreakdown(
                product_id=product_id,
                revenue=acc.revenue,
                orders=acc.orders,
                quantity=acc.quantity,
            )
            for product_id, acc in products.items()
        ),
        revenue=lambda p: p.revenue,
    )
    top_categories = rank_by_revenue(
        (
            CategoryBreakdown(
                name=name,
                revenue=acc.revenue,
                orders=acc.orders,
                avg_order_value=safe_divide(acc.revenue, acc.orders),
                percentage_of_total=safe_divide(acc.revenue, total_revenue) * 100,
            )
            for name, acc in categories.items()
        ),
        revenue=lambda c: c.revenue,
    )

    return MetricsSnapshot(
        total_revenue=total_revenue,
        total_orders=total_orders,
        unique_customers=unique_customers,
        avg_order_value=avg_order_value,
        new_customers=len(customers - previous_customers),
        returning_customers=len(customers & previous_customers),
        conversion_rate=conversion_rate,
        churn_rate=0.0,
        top_products=top_products,
        top_categories=top_categories,
        time_distribution=dict(sorted(daily_revenue.items())),
        yearly_comparison={
            key: YearSummary(
                revenue=acc.revenue,
                orders=acc.orders,
                customers=len(acc.customers),
                products=len(acc.products),
                categories=len(acc.categories),
            )
            for key, acc in sorted(years.items())
        },
        customer_retention=CustomerRetention(
            total=classified,
            returning=returning_lines,
            new=new_lines,
            rate=safe_divide(returning_lines, classified) * 100,
        ),
        performance=PerformanceRatios(
            conversion_rate=conversion_rate,
            avg_order_value=avg_order_value,
            revenue_per_customer=safe_divide(total_revenue, unique_customers),
        ),
        growth=SnapshotGrowth(
            revenue=calculate_growth_rate(total_revenue, previous.revenue),
            customers=calculate_growth_rate(unique_customers, previous.unique_customers),
            orders=calculate_growth_rate(total_orders, previous.orders),
        ),
    )


# =============================================================================
# Rollup summary
# =============================================================================


def summarize_rollup(
    records: Sequence[RawRecord],
    previous_customers: set[str],
) -> RollupMetrics:
    """Compact metric summary persisted for one bucket.

    Args:
        records: Records inside the bucket.
        previous_customers: Customer identifiers seen in the preceding bucket.

    Returns:
        Rollup metrics; conversion and churn stay 0.
    """
    totals = window_totals(records)
    return RollupMetrics(
        total_revenue=totals.revenue,
        total_orders=totals.orders,
        unique_customers=totals.unique_customers,
        avg_order_value=safe_divide(totals.revenue, totals.orders),
        new_customers=len(totals.customers - previous_customers),
        returning_customers=len(totals.customers & previous_customers),
        conversion_rate=0.0,
        churn_rate=0.0,
    )


def growth_between(current: RollupMetrics, previous: RollupMetrics | None) -> GrowthRates:
    """Growth of ``current`` over a stored ``previous`` bucket; zeros if absent."""
    if previous is None:
        return GrowthRates()
    return GrowthRates(
        revenue_growth=calculate_growth_rate(current.total_revenue, previous.total_revenue),
        customer_growth=calculate_growth_rate(current.unique_customers, previous.unique_customers),
        order_growth=calculate_growth_rate(current.total_orders, previous.total_orders),
    )


# =============================================================================
# History
# =============================================================================


@dataclass
class _HistoryAcc:
    revenue: float = 0.0
    orders: int = 0
    customers: set[str] = field(default_factory=lambda: set[str]())
    order_value: float = 0.0


def bucket_history(records: Iterable[RawRecord], period: Period) -> list[HistoryPoint]:
    """Group dated records by bucket start, oldest bucket first.

    Buckets without records are omitted.

    Args:
        records: Records of the history window.
        period: Bucket granularity.

    Returns:
        One point per non-empty bucket.
    """
    groups: dict[datetime, _HistoryAcc] = {}
    for record in records:
        if record.date is None:
            continue
        acc = groups.setdefault(bucket_start(period, record.date), _HistoryAcc())
        acc.revenue += record.revenue_value
        acc.orders += 1
        if record.customer_id:
            acc.customers.add(record.customer_id)
        acc.order_value += record.order_value

    return [
        HistoryPoint(
            date=start,
            revenue=acc.revenue,
            orders=acc.orders,
            customers=len(acc.customers),
            avg_order_value=safe_divide(acc.order_value, acc.orders),
        )
        for start, acc in sorted(groups.items())
    ]
