"""Rollup store: upsert and range reads over ``period_rollup``."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.features.analytics.models import ROLLUP_UNIQUE_CONSTRAINT, PeriodRollup
from app.features.analytics.schemas import (
    GrowthRates,
    Period,
    PeriodRollupResponse,
    RollupMetrics,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RollupKey:
    """Identity of a stored rollup."""

    account_id: str
    period: Period
    bucket_start: datetime


@runtime_checkable
class RollupStore(Protocol):
    """Persistence for period rollups."""

    async def upsert_rollup(
        self, key: RollupKey, metrics: RollupMetrics, growth: GrowthRates
    ) -> PeriodRollupResponse:
        """Insert or overwrite the rollup at ``key``."""
        ...

    async def find_rollup(self, key: RollupKey) -> PeriodRollupResponse | None:
        """Rollup at ``key``, or None."""
        ...

    async def find_rollups_in_range(
        self, account_id: str, period: Period, start: datetime, end: datetime
    ) -> list[PeriodRollupResponse]:
        """Rollups with ``start <= bucket_start <= end``, oldest first."""
        ...


def _to_response(row: PeriodRollup) -> PeriodRollupResponse:
    return PeriodRollupResponse(
        account_id=row.account_id,
        period=Period(row.period),
        bucket_start=row.bucket_start,
        metrics=RollupMetrics.model_validate(row.metrics),
        growth=GrowthRates.model_validate(row.growth or {}),
        updated_at=row.updated_at,
    )


class SqlRollupStore:
    """RollupStore backed by PostgreSQL."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def upsert_rollup(
        self, key: RollupKey, metrics: RollupMetrics, growth: GrowthRates
    ) -> PeriodRollupResponse:
        """Write a rollup with INSERT ... ON CONFLICT DO UPDATE and commit.

        Args:
            key: Account, period and bucket start.
            metrics: Bucket metrics.
            growth: Growth versus the preceding bucket.

        Returns:
            The stored rollup.
        """
        insert_stmt = pg_insert(PeriodRollup).values(
            account_id=key.account_id,
            period=key.period.value,
            bucket_start=key.bucket_start,
            metrics=metrics.model_dump(mode="json"),
            growth=growth.model_dump(mode="json"),
        )
        upsert_stmt = insert_stmt.on_conflict_do_update(
            constraint=ROLLUP_UNIQUE_CONSTRAINT,
            set_={
                "metrics": insert_stmt.excluded.metrics,
                "growth": insert_stmt.excluded.growth,
                "updated_at": func.now(),
            },
        ).returning(PeriodRollup)

        result = await self.db.execute(
            upsert_stmt, execution_options={"populate_existing": True}
        )
        row = result.scalar_one()
        await self.db.commit()

        logger.info(
            "analytics.rollup_upserted",
            account_id=key.account_id,
            period=key.period.value,
            bucket_start=key.bucket_start.isoformat(),
        )
        return _to_response(row)

    async def find_rollup(self, key: RollupKey) -> PeriodRollupResponse | None:
        stmt = select(PeriodRollup).where(
            PeriodRollup.account_id == key.account_id,
            PeriodRollup.period == key.period.value,
            PeriodRollup.bucket_start == key.bucket_start,
        )
        result = await self.db.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_response(row) if row is not None else None

    async def find_rollups_in_range(
        self, account_id: str, period: Period, start: datetime, end: datetime
    ) -> list[PeriodRollupResponse]:
        """Fetch stored rollups whose bucket start falls in ``[start, end]``.

        Args:
            account_id: Owning account.
            period: Rollup granularity.
            start: Inclusive lower bound.
            end: Inclusive upper bound.

        Returns:
            Rollups ascending by bucket start.
        """
        stmt = (
            select(PeriodRollup)
            .where(PeriodRollup.account_id == account_id)
            .where(PeriodRollup.period == period.value)
            .where(PeriodRollup.bucket_start >= start)
            .where(PeriodRollup.bucket_start <= end)
            .order_by(PeriodRollup.bucket_start)
        )
        result = await self.db.execute(stmt)
        return [_to_response(row) for row in result.scalars()]
