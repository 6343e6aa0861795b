"""Tests for the SQL record store and batch insert (mocked session)."""

from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from app.features.records.models import DataRecord
from app.features.records.service import (
    UNCATEGORIZED,
    RecordStore,
    SqlRecordStore,
    insert_records,
)
from app.features.records.schemas import RecordIn


def _session_returning(result: MagicMock) -> MagicMock:
    db = MagicMock()
    db.execute = AsyncMock(return_value=result)
    return db


def test_sql_store_satisfies_protocol():
    assert isinstance(SqlRecordStore(MagicMock()), RecordStore)


async def test_find_records_converts_rows():
    row = DataRecord(
        id=1,
        account_id="acct",
        date=datetime(2024, 3, 1, 9, tzinfo=UTC),
        revenue=Decimal("12.50"),
        price=Decimal("6.25"),
        quantity=2,
        customer_id="A",
        product_id="p1",
        category="tech",
    )
    result = MagicMock()
    result.scalars.return_value = [row]
    db = _session_returning(result)

    records = await SqlRecordStore(db).find_records(
        "acct", datetime(2024, 3, 1, tzinfo=UTC), datetime(2024, 3, 2, tzinfo=UTC)
    )

    assert len(records) == 1
    assert records[0].revenue == 12.5
    assert records[0].order_value == 12.5
    assert records[0].customer_id == "A"
    db.execute.assert_awaited_once()


async def test_aggregate_by_category_maps_missing_category():
    result = [
        SimpleNamespace(category="tech", revenue=Decimal("500"), orders=3),
        SimpleNamespace(category=None, revenue=Decimal("20"), orders=1),
    ]
    db = _session_returning(result)  # type: ignore[arg-type]

    totals = await SqlRecordStore(db).aggregate_by_category("acct", limit=5)

    assert [t.category for t in totals] == ["tech", UNCATEGORIZED]
    assert totals[0].revenue == 500.0
    assert totals[1].orders == 1


async def test_insert_records_scopes_rows_to_account():
    db = MagicMock()
    db.execute = AsyncMock()
    records = [RecordIn(revenue=10, customer_id="A"), RecordIn(revenue=5)]

    inserted = await insert_records(db, "acct-1", records)

    assert inserted == 2
    _, rows = db.execute.await_args.args
    assert [row["account_id"] for row in rows] == ["acct-1", "acct-1"]
    assert rows[0]["revenue"] == 10


async def test_insert_records_empty_batch_skips_database():
    db = MagicMock()
    db.execute = AsyncMock()

    assert await insert_records(db, "acct-1", []) == 0
    db.execute.assert_not_awaited()
