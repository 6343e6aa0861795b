"""Period bucketing for time-based rollups.

Conventions (fixed, not configurable):
- All boundaries are computed in UTC; naive datetimes are read as UTC.
- Daily buckets start at 00:00.
- Weekly buckets start on Monday 00:00 (ISO weeks).
- Monthly buckets start on the 1st at 00:00.

Month arithmetic goes through ``relativedelta`` so shifting never drifts
across month lengths or year boundaries (Mar 31 - 1 month = Feb 29/28).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from dateutil.relativedelta import relativedelta

from app.core.exceptions import InvalidParameterError
from app.features.analytics.schemas import Period


def parse_period(value: str | Period) -> Period:
    """Convert a caller-supplied tag into a Period.

    Args:
        value: "daily", "weekly" or "monthly" (case-insensitive).

    Returns:
        The matching Period.

    Raises:
        InvalidParameterError: For any other value. There is no fallback period.
    """
    if isinstance(value, Period):
        return value
    try:
        return Period(str(value).strip().lower())
    except ValueError:
        raise InvalidParameterError(
            f"Unknown period '{value}'",
            details={"period": str(value), "allowed": [p.value for p in Period]},
        ) from None


def to_utc(instant: datetime) -> datetime:
    """Return ``instant`` as an aware UTC datetime."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def _step(period: Period, n: int) -> relativedelta:
    if period == Period.DAILY:
        return relativedelta(days=n)
    if period == Period.WEEKLY:
        return relativedelta(weeks=n)
    if period == Period.MONTHLY:
        return relativedelta(months=n)
    raise InvalidParameterError(f"Unknown period '{period}'")


def bucket_start(period: Period, instant: datetime) -> datetime:
    """Canonical start of the bucket containing ``instant``.

    Args:
        period: Bucket granularity.
        instant: Any point in time.

    Returns:
        Aware UTC datetime at the bucket boundary.
    """
    midnight = to_utc(instant).replace(hour=0, minute=0, second=0, microsecond=0)
    if period == Period.DAILY:
        return midnight
    if period == Period.WEEKLY:
        return midnight - timedelta(days=midnight.weekday())
    if period == Period.MONTHLY:
        return midnight.replace(day=1)
    raise InvalidParameterError(f"Unknown period '{period}'")


def bucket_end(period: Period, start: datetime) -> datetime:
    """Exclusive end of the bucket beginning at ``start``."""
    return to_utc(start) + _step(period, 1)


def bucket_range(period: Period, instant: datetime) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` of the bucket containing ``instant``."""
    start = bucket_start(period, instant)
    return start, bucket_end(period, start)


def previous_bucket_start(period: Period, start: datetime) -> datetime:
    """Start of the bucket immediately preceding the one containing ``start``."""
    return bucket_start(period, start) - _step(period, 1)


def shift_back(period: Period, instant: datetime, n: int) -> datetime:
    """``instant`` minus ``n`` buckets.

    Used for history windows ("last 6 months"). Month shifts clamp to the
    last valid day of the target month.

    Raises:
        InvalidParameterError: If ``n`` is negative.
    """
    if n < 0:
        raise InvalidParameterError("Cannot shift by a negative number of buckets", details={"n": n})
    return to_utc(instant) - _step(period, n)
