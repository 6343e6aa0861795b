#!/usr/bin/env python
"""Check database connectivity and schema.

Usage:
    uv run python scripts/check_db.py
"""

import asyncio
import sys

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from app.core.config import get_settings

REQUIRED_TABLES = ("data_record", "period_rollup")


async def check_database() -> int:
    """Verify connectivity and that the analytics tables exist."""
    settings = get_settings()

    print("SaaS Analytics - Database Check")
    print("=" * 45)
    print(f"Database URL: {settings.database_url.rsplit('@', 1)[-1]}")  # Hide credentials
    print()

    engine = create_async_engine(settings.database_url)

    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT version()"))
            version = result.scalar() or ""
            print(f"[OK] Connected: {version[:50]}...")

            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())

        missing = [name for name in REQUIRED_TABLES if name not in tables]
        for name in REQUIRED_TABLES:
            print(f"[{'FAIL' if name in missing else 'OK'}] table {name}")

        if missing:
            print()
            print("Run migrations: uv run alembic upgrade head")
            return 1

        print()
        print("Database check completed successfully!")
        return 0

    except (SQLAlchemyError, OSError) as e:
        print(f"[FAIL] Connection failed: {e}")
        print()
        print("Troubleshooting:")
        print("  1. Ensure PostgreSQL is running")
        print("  2. Check DATABASE_URL in .env file")
        return 1

    finally:
        await engine.dispose()


def main() -> None:
    sys.exit(asyncio.run(check_database()))


if __name__ == "__main__":
    main()
