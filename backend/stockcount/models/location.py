"""Location model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockcount.db.base import Base, TimestampMixin


class Location(Base, TimestampMixin):
    """Physical location for stock (warehouse, shop, back room, etc.)."""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    stock_on_hand: Mapped[list["StockOnHand"]] = relationship(
        "StockOnHand", back_populates="location"
    )
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="location"
    )
    reconciliation_records: Mapped[list["ReconciliationRecord"]] = relationship(
        "ReconciliationRecord", back_populates="location"
    )


# Forward references
from stockcount.models.stock import StockOnHand, StockMovement
from stockcount.models.reconciliation import ReconciliationRecord
