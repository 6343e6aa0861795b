"""Service layer for analytics operations.

Composes the bucketer, the aggregator, the record/rollup stores and the
result cache. Holds no state between calls beyond the injected collaborators.

CRITICAL: Every store call goes through ``_io``: a timeout, a database error
or a cancelled fetch becomes UpstreamUnavailableError; cancellation of the
calling task itself is re-raised untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.core.cache import ResultCache, cache_get, cache_invalidate_all, cache_set
from app.core.config import Settings, get_settings
from app.core.exceptions import InvalidParameterError, UpstreamUnavailableError
from app.core.logging import get_logger
from app.features.analytics.aggregator import (
    bucket_history,
    compute_snapshot,
    customer_ids,
    growth_between,
    summarize_rollup,
)
from app.features.analytics.bucketing import (
    bucket_range,
    parse_period,
    previous_bucket_start,
    shift_back,
)
from app.features.analytics.persistence import RollupKey, RollupStore
from app.features.analytics.schemas import (
    DashboardResponse,
    GrowthRates,
    MetricsSnapshot,
    Period,
    PeriodRollupResponse,
    RevenueTrendsResponse,
)
from app.features.records.schemas import RawRecord
from app.features.records.service import RecordStore

logger = get_logger(__name__)

T = TypeVar("T")


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _split_window(
    records: list[RawRecord], boundary: datetime, lower: datetime
) -> tuple[list[RawRecord], list[RawRecord]]:
    """Split records into ``[boundary, ...)`` and ``[lower, boundary)``."""
    current: list[RawRecord] = []
    previous: list[RawRecord] = []
    for record in records:
        if record.date is None:
            continue
        if record.date >= boundary:
            current.append(record)
        elif record.date >= lower:
            previous.append(record)
    return current, previous


class AnalyticsService:
    """Dashboard, rollup generation and trend queries for one request.

    Args:
        records: Raw record store.
        rollups: Rollup store.
        cache: Result cache; failures degrade to direct computation.
        settings: Settings override (defaults to ``get_settings()``).
        clock: Returns the current UTC instant.
    """

    def __init__(
        self,
        records: RecordStore,
        rollups: RollupStore,
        cache: ResultCache,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.records = records
        self.rollups = rollups
        self.cache = cache
        self.settings = settings or get_settings()
        self.clock = clock or _utc_now

    # -------------------------------------------------------------------------
    # I/O boundary
    # -------------------------------------------------------------------------

    async def _io(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store call under the configured fetch timeout.

        Raises:
            UpstreamUnavailableError: On timeout, store failure or a fetch
                cancelled by something other than the caller.
        """
        timeout = self.settings.analytics_fetch_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                return await awaitable
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("analytics.fetch_cancelled", operation=operation)
            raise UpstreamUnavailableError(
                f"{operation} was cancelled",
                details={"operation": operation},
            ) from None
        except TimeoutError as e:
            logger.warning("analytics.fetch_timeout", operation=operation, timeout_seconds=timeout)
            raise UpstreamUnavailableError(
                f"{operation} timed out after {timeout}s",
                details={"operation": operation},
            ) from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "analytics.fetch_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise UpstreamUnavailableError(
                f"{operation} failed",
                details={"operation": operation, "error_type": type(e).__name__},
            ) from e

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate_timeframe(self, timeframe: int | None) -> int:
        if timeframe is None:
            return self.settings.analytics_default_timeframe
        maximum = self.settings.analytics_max_timeframe
        if not 1 <= timeframe <= maximum:
            raise InvalidParameterError(
                f"timeframe must be between 1 and {maximum}",
                details={"timeframe": timeframe, "min": 1, "max": maximum},
            )
        return timeframe

    def _validate_days(self, days: int | None) -> int:
        if days is None:
            return self.settings.analytics_default_trend_days
        maximum = self.settings.analytics_max_trend_days
        if not 1 <= days <= maximum:
            raise InvalidParameterError(
                f"days must be between 1 and {maximum}",
                details={"days": days, "min": 1, "max": maximum},
            )
        return days

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def _previous_rollup(
        self, account_id: str, period: Period, current_start: datetime
    ) -> PeriodRollupResponse | None:
        key = RollupKey(account_id, period, previous_bucket_start(period, current_start))
        return await self._io("find_rollup", self.rollups.find_rollup(key))

    async def current_snapshot(self, account_id: str, period: Period | str) -> MetricsSnapshot:
        """Live metrics for the current bucket against the preceding one.

        Args:
            account_id: Calling account.
            period: Bucket granularity.

        Returns:
            Snapshot of the bucket containing now.
        """
        period = parse_period(period)
        current_start, current_end = bucket_range(period, self.clock())
        prev_start = previous_bucket_start(period, current_start)

        records = await self._io(
            "find_records",
            self.records.find_records(account_id, prev_start, current_end),
        )
        current, previous = _split_window(records, current_start, prev_start)
        return compute_snapshot(current, previous)

    async def growth_rates_for(self, account_id: str, period: Period | str) -> GrowthRates:
        """Growth of the live snapshot over the stored previous-bucket rollup.

        A missing previous rollup is a cold start, not an error: all zeros.
        """
        period = parse_period(period)
        current_start, _ = bucket_range(period, self.clock())
        snapshot = await self.current_snapshot(account_id, period)
        previous = await self._previous_rollup(account_id, period, current_start)
        return growth_between(snapshot, previous.metrics if previous else None)

    async def get_dashboard(
        self,
        account_id: str,
        period: Period | str,
        timeframe: int | None = None,
    ) -> DashboardResponse:
        """Build the dashboard payload, served from cache when possible.

        Records of the whole history window are fetched once; the current and
        previous buckets are sliced out of them.

        Args:
            account_id: Calling account.
            period: Bucket granularity.
            timeframe: Number of buckets of history before the current one.

        Returns:
            Current metrics, history, growth and top categories.

        Raises:
            InvalidParameterError: Unknown period or timeframe out of range.
            UpstreamUnavailableError: A store call failed or timed out.
        """
        period = parse_period(period)
        timeframe = self._validate_timeframe(timeframe)

        current_start, current_end = bucket_range(period, self.clock())
        cache_key = (
            f"dashboard:{account_id}:{period.value}:{timeframe}:{current_start.isoformat()}"
        )

        cached = await cache_get(self.cache, cache_key)
        if cached is not None:
            try:
                response = DashboardResponse.model_validate(cached)
            except ValidationError:
                logger.warning("analytics.cache_entry_invalid", key=cache_key)
            else:
                logger.debug("analytics.dashboard_cache_hit", account_id=account_id)
                return response

        history_start = shift_back(period, current_start, timeframe)
        prev_start = previous_bucket_start(period, current_start)

        records = await self._io(
            "find_records",
            self.records.find_records(account_id, history_start, current_end),
        )
        current, previous = _split_window(records, current_start, prev_start)
        snapshot = compute_snapshot(current, previous)

        previous_rollup = await self._previous_rollup(account_id, period, current_start)
        top_categories = await self._io(
            "aggregate_by_category",
            self.records.aggregate_by_category(
                account_id, self.settings.analytics_top_categories_limit
            ),
        )

        response = DashboardResponse(
            current_metrics=snapshot,
            historical_data=bucket_history(records, period),
            growth_rates=growth_between(
                snapshot, previous_rollup.metrics if previous_rollup else None
            ),
            top_categories=top_categories,
            period=period,
            timeframe=timeframe,
        )

        await cache_set(
            self.cache,
            cache_key,
            response.model_dump(mode="json"),
            self.settings.analytics_cache_ttl_seconds,
        )

        logger.info(
            "analytics.dashboard_computed",
            account_id=account_id,
            period=period.value,
            timeframe=timeframe,
            record_count=len(records),
        )
        return response

    async def generate_rollup(
        self,
        account_id: str,
        period: Period | str,
        reference: datetime | None = None,
    ) -> PeriodRollupResponse:
        """Compute and upsert the rollup of the bucket containing ``reference``.

        Idempotent: regenerating over unchanged records stores identical
        metrics in the same row.

        Args:
            account_id: Calling account.
            period: Bucket granularity.
            reference: Any instant inside the target bucket (default now).

        Returns:
            The stored rollup.
        """
        period = parse_period(period)
        bucket_start, bucket_end = bucket_range(period, reference or self.clock())
        prev_start = previous_bucket_start(period, bucket_start)

        records = await self._io(
            "find_records",
            self.records.find_records(account_id, prev_start, bucket_end),
        )
        current, previous = _split_window(records, bucket_start, prev_start)
        metrics = summarize_rollup(current, customer_ids(previous))

        previous_rollup = await self._previous_rollup(account_id, period, bucket_start)
        growth = growth_between(metrics, previous_rollup.metrics if previous_rollup else None)

        stored = await self._io(
            "upsert_rollup",
            self.rollups.upsert_rollup(RollupKey(account_id, period, bucket_start), metrics, growth),
        )
        await cache_invalidate_all(self.cache)

        logger.info(
            "analytics.rollup_generated",
            account_id=account_id,
            period=period.value,
            bucket_start=bucket_start.isoformat(),
            total_orders=metrics.total_orders,
            total_revenue=metrics.total_revenue,
        )
        return stored

    async def revenue_trends(
        self,
        account_id: str,
        period: Period | str,
        days: int | None = None,
    ) -> RevenueTrendsResponse:
        """Stored rollups whose bucket start lies in the trailing ``days``.

        Args:
            account_id: Calling account.
            period: Rollup granularity.
            days: Trailing window length.

        Returns:
            Rollups oldest first. Buckets never generated are absent.
        """
        period = parse_period(period)
        days = self._validate_days(days)

        end = self.clock()
        start = end - timedelta(days=days)
        cache_key = f"revenue_trends:{account_id}:{period.value}:{days}:{end.date().isoformat()}"

        cached = await cache_get(self.cache, cache_key)
        if cached is not None:
            try:
                return RevenueTrendsResponse.model_validate(cached)
            except ValidationError:
                logger.warning("analytics.cache_entry_invalid", key=cache_key)

        trends = await self._io(
            "find_rollups_in_range",
            self.rollups.find_rollups_in_range(account_id, period, start, end),
        )
        response = RevenueTrendsResponse(
            period=period, days=days, start=start, end=end, trends=trends
        )
        await cache_set(
            self.cache,
            cache_key,
            response.model_dump(mode="json"),
            self.settings.analytics_cache_ttl_seconds,
        )
        return response
