"""Record store: windowed reads for analytics and batch inserts for ingest."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.features.records.models import DataRecord
from app.features.records.schemas import CategoryTotal, RawRecord, RecordIn

logger = get_logger(__name__)

UNCATEGORIZED = "Uncategorized"


@runtime_checkable
class RecordStore(Protocol):
    """Read access to raw records, always scoped to one account."""

    async def find_records(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[RawRecord]:
        """Records with ``start <= date < end``, ascending by date."""
        ...

    async def aggregate_by_category(self, account_id: str, limit: int) -> list[CategoryTotal]:
        """Category totals sorted by revenue descending, top ``limit``."""
        ...


class SqlRecordStore:
    """RecordStore backed by the ``data_record`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_records(
        self, account_id: str, start: datetime, end: datetime
    ) -> list[RawRecord]:
        """Fetch an account's records in a half-open time window.

        Args:
            account_id: Owning account.
            start: Inclusive lower bound.
            end: Exclusive upper bound.

        Returns:
            Records ordered by date, then insertion order.
        """
        stmt = (
            select(DataRecord)
            .where(DataRecord.account_id == account_id)
            .where(DataRecord.date >= start)
            .where(DataRecord.date < end)
            .order_by(DataRecord.date, DataRecord.id)
        )
        result = await self.db.execute(stmt)
        return [RawRecord.model_validate(row) for row in result.scalars()]

    async def aggregate_by_category(self, account_id: str, limit: int) -> list[CategoryTotal]:
        """Group all of an account's records by category.

        Ties on revenue keep the category first seen (lowest record id).

        Args:
            account_id: Owning account.
            limit: Maximum number of categories returned.

        Returns:
            Category totals, highest revenue first.
        """
        total_revenue = func.coalesce(func.sum(DataRecord.revenue), 0)
        stmt = (
            select(
                DataRecord.category.label("category"),
                total_revenue.label("revenue"),
                func.count().label("orders"),
            )
            .where(DataRecord.account_id == account_id)
            .group_by(DataRecord.category)
            .order_by(total_revenue.desc(), func.min(DataRecord.id))
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [
            CategoryTotal(
                category=row.category or UNCATEGORIZED,
                revenue=float(row.revenue),
                orders=int(row.orders),
            )
            for row in result
        ]


async def insert_records(
    db: AsyncSession,
    account_id: str,
    records: Sequence[RecordIn],
) -> int:
    """Append a batch of records for one account.

    Records are immutable once stored; re-sending a batch appends again.

    Args:
        db: Async database session.
        account_id: Account resolved from the caller.
        records: Validated ingest rows.

    Returns:
        Number of rows inserted.
    """
    if not records:
        return 0

    rows = [{"account_id": account_id, **record.model_dump()} for record in records]
    await db.execute(insert(DataRecord), rows)

    logger.info("records.batch_inserted", account_id=account_id, inserted=len(rows))
    return len(rows)
