#!/usr/bin/env python
"""Generate period rollups from raw records.

Intended for cron: one invocation per period, after the bucket closes.

Usage:
    # Yesterday's daily rollup for two accounts
    uv run python scripts/generate_rollups.py --period daily --reference 2024-03-12 \
        --account acct-1 --account acct-2

    # Current month for every account with records
    uv run python scripts/generate_rollups.py --period monthly --all-accounts

    # Rebuild the last 6 weeks, oldest first
    uv run python scripts/generate_rollups.py --period weekly --all-accounts --backfill 6
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.cache import build_result_cache
from app.core.config import get_settings
from app.core.exceptions import AnalyticsAppError
from app.core.logging import configure_logging, get_logger
from app.features.analytics.bucketing import bucket_start, shift_back
from app.features.analytics.persistence import SqlRollupStore
from app.features.analytics.schemas import Period
from app.features.analytics.service import AnalyticsService
from app.features.records.models import DataRecord
from app.features.records.service import SqlRecordStore

logger = get_logger("scripts.generate_rollups")


def parse_reference(value: str) -> datetime:
    """Parse an ISO date or datetime; naive values are read as UTC.

    Raises:
        argparse.ArgumentTypeError: If the value is not ISO 8601.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Invalid reference '{value}'. Use YYYY-MM-DD or an ISO 8601 timestamp."
        ) from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Generate analytics rollups for one period granularity",
    )
    parser.add_argument(
        "--period",
        required=True,
        choices=[p.value for p in Period],
        help="Bucket granularity",
    )
    accounts = parser.add_mutually_exclusive_group(required=True)
    accounts.add_argument(
        "--account",
        action="append",
        dest="accounts",
        metavar="ACCOUNT_ID",
        help="Account to process (repeatable)",
    )
    accounts.add_argument(
        "--all-accounts",
        action="store_true",
        help="Process every account that has records",
    )
    parser.add_argument(
        "--reference",
        type=parse_reference,
        default=None,
        help="Instant inside the target bucket (default: now)",
    )
    parser.add_argument(
        "--backfill",
        type=int,
        default=0,
        metavar="N",
        help="Also regenerate the N buckets before the target, oldest first",
    )
    return parser


def target_buckets(period: Period, reference: datetime, backfill: int) -> list[datetime]:
    """Bucket starts to generate, oldest first, ending with the reference bucket."""
    current = bucket_start(period, reference)
    return [shift_back(period, current, n) for n in range(backfill, -1, -1)]


async def list_accounts(session: AsyncSession) -> list[str]:
    """Distinct account identifiers present in data_record."""
    result = await session.execute(
        select(DataRecord.account_id).distinct().order_by(DataRecord.account_id)
    )
    return list(result.scalars())


async def run(args: argparse.Namespace) -> int:
    """Generate the requested rollups; return a process exit code."""
    settings = get_settings()
    period = Period(args.period)
    if args.backfill < 0:
        print("ERROR: --backfill must be >= 0")
        return 1
    if settings.analytics_cache_backend == "memory":
        logger.error("rollups.cache_not_shared", backend=settings.analytics_cache_backend)
        print(
            "ERROR: ANALYTICS_CACHE_BACKEND=memory cannot invalidate the API server's cache. "
            "Use redis (or none) for rollup generation."
        )
        return 1

    reference = args.reference or datetime.now(UTC)
    buckets = target_buckets(period, reference, args.backfill)

    engine = create_async_engine(settings.database_url)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    cache = build_result_cache(settings)
    failures = 0

    try:
        async with session_maker() as session:
            accounts = args.accounts or await list_accounts(session)
            service = AnalyticsService(
                records=SqlRecordStore(session),
                rollups=SqlRollupStore(session),
                cache=cache,
                settings=settings,
            )

            for account_id in accounts:
                for start in buckets:
                    try:
                        rollup = await service.generate_rollup(account_id, period, start)
                    except AnalyticsAppError as e:
                        failures += 1
                        await session.rollback()
                        logger.error(
                            "rollups.generation_failed",
                            account_id=account_id,
                            bucket_start=start.isoformat(),
                            error=e.message,
                            error_code=e.code,
                        )
                        continue
                    print(
                        f"  {account_id:<24} {rollup.bucket_start:%Y-%m-%d}  "
                        f"orders={rollup.metrics.total_orders:>6}  "
                        f"revenue={rollup.metrics.total_revenue:>12,.2f}"
                    )
    finally:
        await cache.close()
        await engine.dispose()

    print()
    print(f"Generated {len(accounts) * len(buckets) - failures} rollup(s), {failures} failure(s)")
    return 1 if failures else 0


async def main() -> int:
    """Main entry point."""
    configure_logging()
    args = create_parser().parse_args()
    return await run(args)


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
