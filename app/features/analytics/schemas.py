"""Pydantic schemas for analytics endpoints.

Two metric shapes exist:
- ``RollupMetrics``: the compact summary persisted per (account, period, bucket).
- ``MetricsSnapshot``: the same fields plus breakdowns, computed on read and
  never persisted.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from app.features.records.schemas import CategoryTotal

# =============================================================================
# Enums
# =============================================================================


class Period(str, Enum):
    """Rollup granularity. Closed set; unknown values are rejected."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# =============================================================================
# Rollup Schemas
# =============================================================================


class RollupMetrics(BaseModel):
    """Persisted metric summary for one bucket.

    ``conversion_rate`` and ``churn_rate`` are placeholders and always 0:
    computing them needs longitudinal customer history the records lack.
    """

    total_revenue: float = Field(0.0, description="Sum of record revenue (missing = 0).")
    total_orders: int = Field(0, ge=0, description="Number of records in the bucket.")
    unique_customers: int = Field(0, ge=0, description="Distinct customer identifiers.")
    avg_order_value: float = Field(0.0, description="total_revenue / total_orders, 0 if no orders.")
    new_customers: int = Field(
        0,
        ge=0,
        description="Distinct customers absent from the preceding bucket.",
    )
    returning_customers: int = Field(
        0,
        ge=0,
        description="Distinct customers also present in the preceding bucket.",
    )
    conversion_rate: float = Field(0.0, description="Placeholder, always 0.")
    churn_rate: float = Field(0.0, description="Placeholder, always 0.")


class GrowthRates(BaseModel):
    """Percent change versus the preceding bucket, one decimal place.

    All zeros when no preceding bucket exists.
    """

    revenue_growth: float = 0.0
    customer_growth: float = 0.0
    order_growth: float = 0.0


class PeriodRollupResponse(BaseModel):
    """A stored rollup."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    period: Period
    bucket_start: datetime = Field(..., description="Inclusive bucket start (UTC).")
    metrics: RollupMetrics
    growth: GrowthRates = Field(default_factory=GrowthRates)
    updated_at: datetime | None = None


# =============================================================================
# Snapshot Schemas
# =============================================================================


class ProductBreakdown(BaseModel):
    """Per-product totals inside a snapshot."""

    product_id: str
    revenue: float
    orders: int
    quantity: int


class CategoryBreakdown(BaseModel):
    """Per-category totals inside a snapshot."""

    name: str
    revenue: float
    orders: int
    avg_order_value: float = Field(..., description="Category revenue / category orders.")
    percentage_of_total: float = Field(..., description="Share of snapshot revenue, 0-100.")


class YearSummary(BaseModel):
    """Totals for one calendar year (UTC) of dated records."""

    revenue: float = 0.0
    orders: int = 0
    customers: int = 0
    products: int = 0
    categories: int = 0


class CustomerRetention(BaseModel):
    """Order lines classified against the preceding window's customers.

    A line is returning when its customer appears anywhere in the preceding
    window; lines without a customer are not classified.
    """

    total: int = 0
    returning: int = 0
    new: int = 0
    rate: float = Field(0.0, description="returning / total * 100.")


class PerformanceRatios(BaseModel):
    """Derived ratios; every zero denominator yields 0."""

    conversion_rate: float = Field(0.0, description="total_orders / unique_customers * 100.")
    avg_order_value: float = 0.0
    revenue_per_customer: float = 0.0


class SnapshotGrowth(BaseModel):
    """Percent change of snapshot totals versus the preceding window."""

    revenue: float = 0.0
    customers: float = 0.0
    orders: float = 0.0


class MetricsSnapshot(RollupMetrics):
    """Live metrics for a window, with breakdowns.

    ``conversion_rate`` here is the performance ratio, not the rollup
    placeholder.
    """

    conversion_rate: float = Field(0.0, description="Equal to performance.conversion_rate.")
    top_products: list[ProductBreakdown] = Field(
        default_factory=list,
        description="Products by revenue, highest first; ties keep first-seen order.",
    )
    top_categories: list[CategoryBreakdown] = Field(
        default_factory=list,
        description="Categories by revenue, highest first; ties keep first-seen order.",
    )
    time_distribution: dict[str, float] = Field(
        default_factory=dict,
        description="Revenue per calendar day (YYYY-MM-DD, UTC), dated records only.",
    )
    yearly_comparison: dict[str, YearSummary] = Field(default_factory=dict)
    customer_retention: CustomerRetention = Field(default_factory=CustomerRetention)
    performance: PerformanceRatios = Field(default_factory=PerformanceRatios)
    growth: SnapshotGrowth = Field(default_factory=SnapshotGrowth)


# =============================================================================
# Dashboard / Trend Responses
# =============================================================================


class HistoryPoint(BaseModel):
    """One bucket of the dashboard history chart."""

    date: datetime = Field(..., description="Bucket start (UTC).")
    revenue: float
    orders: int
    customers: int
    avg_order_value: float = Field(
        ...,
        description="Mean of price * quantity per record; records without price count as 0.",
    )


class DashboardResponse(BaseModel):
    """Everything the dashboard renders for one period."""

    current_metrics: MetricsSnapshot
    historical_data: list[HistoryPoint]
    growth_rates: GrowthRates
    top_categories: list[CategoryTotal]
    period: Period
    timeframe: int


class GenerateRollupResponse(BaseModel):
    """Confirmation returned by POST /analytics/generate/{period}."""

    message: str
    rollup: PeriodRollupResponse


class RevenueTrendsResponse(BaseModel):
    """Stored rollups in a trailing window, oldest first."""

    period: Period
    days: int
    start: datetime
    end: datetime
    trends: list[PeriodRollupResponse]
