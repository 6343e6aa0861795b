"""Rollup ORM model.

CRITICAL: (account_id, period, bucket_start) is unique; regeneration
overwrites the row in place.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.shared.models import TimestampMixin

ROLLUP_UNIQUE_CONSTRAINT = "uq_period_rollup_key"


class PeriodRollup(TimestampMixin, Base):
    """Persisted metric summary for one (account, period, bucket).

    Attributes:
        id: Primary key.
        account_id: Owning account.
        period: daily, weekly or monthly.
        bucket_start: Canonical UTC start of the bucket.
        metrics: RollupMetrics as JSONB.
        growth: GrowthRates versus the preceding bucket as JSONB.
    """

    __tablename__ = "period_rollup"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64))
    period: Mapped[str] = mapped_column(String(10))
    bucket_start: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True))

    metrics: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    growth: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "period", "bucket_start", name=ROLLUP_UNIQUE_CONSTRAINT),
        # Trend scans: account + period + bucket range
        Index("ix_period_rollup_lookup", "account_id", "period", "bucket_start"),
        CheckConstraint(
            "period IN ('daily', 'weekly', 'monthly')",
            name="ck_period_rollup_valid_period",
        ),
    )
