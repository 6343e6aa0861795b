"""Test fixtures for the analytics module.

Fakes implement the store and cache protocols in memory so service and
route tests run without PostgreSQL or Redis.
"""

import asyncio
from datetime import UTC, datetime

import pytest

from app.core.cache import InMemoryResultCache
from app.core.config import Settings
from app.features.analytics.persistence import RollupKey
from app.features.analytics.schemas import (
    GrowthRates,
    Period,
    PeriodRollupResponse,
    RollupMetrics,
)
from app.features.analytics.service import AnalyticsService
from app.features.records.schemas import CategoryTotal, RawRecord

ACCOUNT = "acct-test"

# Wednesday, mid-month: current daily/weekly/monthly buckets all differ
NOW = datetime(2024, 3, 13, 15, 30, tzinfo=UTC)


def make_record(
    date: datetime | None = None,
    revenue: float | None = None,
    customer_id: str | None = None,
    product_id: str | None = None,
    category: str | None = None,
    price: float | None = None,
    quantity: int | None = None,
    account_id: str = ACCOUNT,
) -> RawRecord:
    """Build a RawRecord with only the fields a test cares about."""
    return RawRecord(
        account_id=account_id,
        date=date,
        revenue=revenue,
        price=price,
        quantity=quantity,
        customer_id=customer_id,
        product_id=product_id,
        category=category,
    )


class FakeRecordStore:
    """RecordStore over a list, with call counting."""

    def __init__(self, records: list[RawRecord] | None = None) -> None:
        self.records = list(records or [])
        self.find_calls: list[tuple[str, datetime, datetime]] = []

    async def find_records(self, account_id: str, start: datetime, end: datetime) -> list[RawRecord]:
        self.find_calls.append((account_id, start, end))
        matching = [
            r
            for r in self.records
            if r.account_id == account_id and r.date is not None and start <= r.date < end
        ]
        return sorted(matching, key=lambda r: r.date)  # type: ignore[arg-type,return-value]

    async def aggregate_by_category(self, account_id: str, limit: int) -> list[CategoryTotal]:
        totals: dict[str, CategoryTotal] = {}
        for r in self.records:
            if r.account_id != account_id:
                continue
            name = r.category or "Uncategorized"
            current = totals.get(name, CategoryTotal(category=name, revenue=0.0, orders=0))
            totals[name] = CategoryTotal(
                category=name,
                revenue=current.revenue + r.revenue_value,
                orders=current.orders + 1,
            )
        ranked = sorted(totals.values(), key=lambda c: c.revenue, reverse=True)
        return ranked[:limit]


class FakeRollupStore:
    """RollupStore keyed by RollupKey; upsert overwrites."""

    def __init__(self) -> None:
        self.rows: dict[RollupKey, PeriodRollupResponse] = {}
        self.upsert_calls = 0

    async def upsert_rollup(
        self, key: RollupKey, metrics: RollupMetrics, growth: GrowthRates
    ) -> PeriodRollupResponse:
        self.upsert_calls += 1
        stored = PeriodRollupResponse(
            account_id=key.account_id,
            period=key.period,
            bucket_start=key.bucket_start,
            metrics=metrics,
            growth=growth,
            updated_at=NOW,
        )
        self.rows[key] = stored
        return stored

    async def find_rollup(self, key: RollupKey) -> PeriodRollupResponse | None:
        return self.rows.get(key)

    async def find_rollups_in_range(
        self, account_id: str, period: Period, start: datetime, end: datetime
    ) -> list[PeriodRollupResponse]:
        found = [
            row
            for key, row in self.rows.items()
            if key.account_id == account_id
            and key.period == period
            and start <= key.bucket_start <= end
        ]
        return sorted(found, key=lambda row: row.bucket_start)


class FailingRecordStore(FakeRecordStore):
    """Every fetch raises the given exception."""

    def __init__(self, exc: BaseException) -> None:
        super().__init__()
        self.exc = exc

    async def find_records(self, account_id: str, start: datetime, end: datetime) -> list[RawRecord]:
        raise self.exc


class SlowRecordStore(FakeRecordStore):
    """Fetch that never completes in time."""

    async def find_records(self, account_id: str, start: datetime, end: datetime) -> list[RawRecord]:
        await asyncio.sleep(60)
        return []


class CountingCache(InMemoryResultCache):
    """In-memory cache that counts invalidations."""

    def __init__(self) -> None:
        super().__init__()
        self.invalidations = 0

    async def invalidate_all(self) -> int:
        self.invalidations += 1
        return await super().invalidate_all()


class BrokenCache:
    """Cache backend that always fails."""

    async def get(self, key):
        raise ConnectionError("cache down")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("cache down")

    async def invalidate_all(self):
        raise ConnectionError("cache down")

    async def close(self):
        return None


@pytest.fixture
def settings() -> Settings:
    return Settings(analytics_fetch_timeout_seconds=0.05)


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def rollup_store() -> FakeRollupStore:
    return FakeRollupStore()


@pytest.fixture
def cache() -> CountingCache:
    return CountingCache()


@pytest.fixture
def service(record_store, rollup_store, cache, settings) -> AnalyticsService:
    """AnalyticsService over fakes, clock pinned to NOW."""
    return AnalyticsService(
        records=record_store,
        rollups=rollup_store,
        cache=cache,
        settings=settings,
        clock=lambda: NOW,
    )
