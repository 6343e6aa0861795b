"""API routes for analytics endpoints.

Thin layer: resolves the account, builds an AnalyticsService per request and
returns its result. Every query is scoped to the calling account.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResultCache, get_result_cache
from app.core.database import get_db
from app.core.identity import get_account_id
from app.core.logging import get_logger
from app.features.analytics.persistence import SqlRollupStore
from app.features.analytics.schemas import (
    DashboardResponse,
    GenerateRollupResponse,
    Period,
    RevenueTrendsResponse,
)
from app.features.analytics.service import AnalyticsService
from app.features.records.service import SqlRecordStore

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


def get_analytics_service(
    db: AsyncSession = Depends(get_db),
    cache: ResultCache = Depends(get_result_cache),
) -> AnalyticsService:
    """Build the service over SQL-backed stores for this request."""
    return AnalyticsService(
        records=SqlRecordStore(db),
        rollups=SqlRollupStore(db),
        cache=cache,
    )


# =============================================================================
# Dashboard
# =============================================================================


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Dashboard metrics for the current period",
    description="""
Compute live metrics for the bucket containing now, with history and growth.

**Buckets** (UTC): `daily` starts at 00:00, `weekly` on Monday 00:00,
`monthly` on the 1st.

**Response**:
- `current_metrics`: snapshot of the current bucket, including top products,
  top categories, per-day revenue, per-year comparison, retention and ratios
- `historical_data`: one point per non-empty bucket over the last `timeframe`
  buckets plus the current one, oldest first
- `growth_rates`: current snapshot versus the stored rollup of the previous
  bucket (zeros when none was generated)
- `top_categories`: all-time category totals for the account

Responses are cached until the next write to records or rollups.
""",
)
async def get_dashboard(
    period: Period = Query(Period.MONTHLY, description="Bucket granularity."),
    timeframe: int | None = Query(
        None,
        description="Buckets of history before the current one (1-12, default 6).",
    ),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DashboardResponse:
    """Return the dashboard for the calling account.

    Raises:
        InvalidParameterError: timeframe out of range.
        UpstreamUnavailableError: A store was unreachable.
    """
    return await service.get_dashboard(account_id, period, timeframe)


# =============================================================================
# Rollups
# =============================================================================


@router.post(
    "/generate/{period}",
    response_model=GenerateRollupResponse,
    summary="Generate a period rollup",
    description="""
Compute and store the rollup of the bucket containing `reference`
(default: now).

Idempotent: the rollup is keyed by (account, period, bucket start) and
regeneration overwrites it in place. Concurrent calls on the same key never
create duplicate rows; the last writer wins.
""",
)
async def generate_rollup(
    period: Period = Path(..., description="Bucket granularity."),
    reference: datetime | None = Query(
        None,
        description="Any instant inside the target bucket (ISO 8601). Defaults to now.",
    ),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
) -> GenerateRollupResponse:
    """Generate and persist one rollup."""
    rollup = await service.generate_rollup(account_id, period, reference)
    return GenerateRollupResponse(
        message=f"{period.value.capitalize()} rollup generated",
        rollup=rollup,
    )


@router.get(
    "/revenue-trends",
    response_model=RevenueTrendsResponse,
    summary="Stored rollups over a trailing window",
    description="""
List stored rollups whose bucket start lies within the last `days` days,
oldest first. Buckets that were never generated are absent.
""",
)
async def get_revenue_trends(
    period: Period = Query(Period.DAILY, description="Rollup granularity."),
    days: int | None = Query(None, description="Trailing window in days (1-365, default 30)."),
    account_id: str = Depends(get_account_id),
    service: AnalyticsService = Depends(get_analytics_service),
) -> RevenueTrendsResponse:
    """Return stored rollups for the trailing window."""
    return await service.revenue_trends(account_id, period, days)
