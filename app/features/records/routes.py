"""API routes for raw record ingestion."""

import time

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import ResultCache, cache_invalidate_all, get_result_cache
from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.identity import get_account_id
from app.core.logging import get_logger
from app.features.records.schemas import RecordIngestRequest, RecordIngestResponse
from app.features.records.service import insert_records

logger = get_logger(__name__)

router = APIRouter(prefix="/records", tags=["records"])


@router.post(
    "",
    response_model=RecordIngestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Append raw business records",
    description="""
Append a batch of order-line records for the calling account.

Each record is one order line: `revenue`, `price`, `quantity`, `customer_id`,
`product_id`, `category` and an event `date` are all optional. Records without
a date count toward category totals but never appear in time-bucketed output.

Every successful write invalidates all cached analytics responses.
""",
)
async def ingest_records(
    request: RecordIngestRequest,
    account_id: str = Depends(get_account_id),
    db: AsyncSession = Depends(get_db),
    cache: ResultCache = Depends(get_result_cache),
) -> RecordIngestResponse:
    """Insert records and invalidate the result cache.

    Args:
        request: Batch of records.
        account_id: Calling account.
        db: Async database session.
        cache: Result cache to invalidate.

    Returns:
        Inserted count and duration.

    Raises:
        DatabaseError: If the insert fails.
    """
    start_time = time.perf_counter()

    try:
        inserted = await insert_records(db, account_id, request.records)
        await db.commit()
    except SQLAlchemyError as e:
        logger.error(
            "records.ingest_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to store records",
            details={"error": str(e)},
        ) from e

    await cache_invalidate_all(cache)

    duration_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "records.ingest_completed",
        inserted=inserted,
        duration_ms=round(duration_ms, 2),
    )

    return RecordIngestResponse(inserted_count=inserted, duration_ms=round(duration_ms, 2))
