"""Pydantic schemas for raw records."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

MAX_INGEST_BATCH = 5000

# Largest magnitudes the data_record NUMERIC(14,2) and NUMERIC(12,2) columns hold
MAX_REVENUE = 999_999_999_999.99
MAX_PRICE = 9_999_999_999.99


def _as_utc(value: datetime | None) -> datetime | None:
    """Interpret naive timestamps as UTC and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class RawRecord(BaseModel):
    """One observed business event as seen by the aggregator.

    Read-only: the aggregator never mutates records.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    account_id: str
    date: datetime | None = None
    revenue: float | None = None
    price: float | None = None
    quantity: int | None = None
    customer_id: str | None = None
    product_id: str | None = None
    category: str | None = None

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime | None) -> datetime | None:
        """Store every timestamp in UTC."""
        return _as_utc(v)

    @property
    def revenue_value(self) -> float:
        """Revenue with missing treated as 0."""
        return self.revenue or 0.0

    @property
    def line_quantity(self) -> int:
        """Units on the line; a missing quantity counts as one unit."""
        return self.quantity if self.quantity is not None else 1

    @property
    def order_value(self) -> float:
        """price * quantity, or 0 when the record carries no price."""
        if self.price is None:
            return 0.0
        return self.price * self.line_quantity


class CategoryTotal(BaseModel):
    """Pre-grouped category revenue for top-category ranking."""

    model_config = ConfigDict(from_attributes=True)

    category: str = Field(..., description="Category name; 'Uncategorized' for records without one.")
    revenue: float = Field(..., description="Sum of revenue across the account's records.")
    orders: int = Field(..., ge=0, description="Number of records in the category.")


# =============================================================================
# Ingest
# =============================================================================


class RecordIn(BaseModel):
    """Single record in an ingest payload. The account comes from the caller."""

    date: datetime | None = Field(None, description="Event timestamp; naive values are read as UTC.")
    revenue: float | None = Field(
        None,
        ge=-MAX_REVENUE,
        le=MAX_REVENUE,
        allow_inf_nan=False,
        description="Line revenue in currency units, at most two decimals.",
    )
    price: float | None = Field(
        None,
        ge=0,
        le=MAX_PRICE,
        allow_inf_nan=False,
        description="Unit price, at most two decimals.",
    )
    quantity: int | None = Field(None, ge=0, description="Units sold; defaults to 1.")
    customer_id: str | None = Field(None, min_length=1, max_length=100)
    product_id: str | None = Field(None, min_length=1, max_length=100)
    category: str | None = Field(None, min_length=1, max_length=100)

    @field_validator("date")
    @classmethod
    def normalize_date(cls, v: datetime | None) -> datetime | None:
        """Store every timestamp in UTC."""
        return _as_utc(v)

    @field_validator("revenue", "price")
    @classmethod
    def reject_fractional_cents(cls, v: float | None) -> float | None:
        """Reject amounts the two-decimal columns would round on insert."""
        if v is not None and round(v, 2) != v:
            raise ValueError("amount must have at most two decimal places")
        return v


class RecordIngestRequest(BaseModel):
    """Request body for POST /records."""

    records: list[RecordIn] = Field(
        ...,
        min_length=1,
        max_length=MAX_INGEST_BATCH,
        description="Records to append for the calling account.",
    )


class RecordIngestResponse(BaseModel):
    """Response body for POST /records."""

    inserted_count: int = Field(..., ge=0, description="Number of records stored.")
    duration_ms: float = Field(..., ge=0, description="Processing duration in milliseconds.")
