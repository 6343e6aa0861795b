"""Period rollups, live metrics and the analytics dashboard."""

from app.features.analytics.routes import router
from app.features.analytics.schemas import (
    DashboardResponse,
    GrowthRates,
    MetricsSnapshot,
    Period,
    PeriodRollupResponse,
    RollupMetrics,
)
from app.features.analytics.service import AnalyticsService

__all__ = [
    "AnalyticsService",
    "DashboardResponse",
    "GrowthRates",
    "MetricsSnapshot",
    "Period",
    "PeriodRollupResponse",
    "RollupMetrics",
    "router",
]
