"""ORM model for raw business records.

One row per observed order line, scoped to an account. Rows are written by
ingestion and only ever read by analytics.
"""

import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.shared.models import TimestampMixin


class DataRecord(TimestampMixin, Base):
    """Raw transactional record.

    Attributes:
        id: Surrogate primary key (also the discovery order for tie-breaks).
        account_id: Owning account; every query filters on it.
        date: Event timestamp (UTC). Undated rows never appear in windowed queries.
        revenue: Line revenue; NULL counts as 0.
        price: Unit price.
        quantity: Units; NULL means 1.
        customer_id: Customer identifier.
        product_id: Product identifier.
        category: Product category.
    """

    __tablename__ = "data_record"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    account_id: Mapped[str] = mapped_column(String(64), index=True)
    date: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revenue: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    product_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (
        # Window scans: account + date range
        Index("ix_data_record_account_date", "account_id", "date"),
        Index("ix_data_record_account_category", "account_id", "category"),
        CheckConstraint("quantity IS NULL OR quantity >= 0", name="ck_data_record_quantity"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_data_record_price"),
    )
