"""Product model."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockcount.db.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    """Product in the catalog."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    reference: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    barcode: Mapped[Optional[str]] = mapped_column(String(50), unique=True, index=True, nullable=True)
    units_per_carton: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    min_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    stock_on_hand: Mapped[list["StockOnHand"]] = relationship(
        "StockOnHand", back_populates="product"
    )
    stock_movements: Mapped[list["StockMovement"]] = relationship(
        "StockMovement", back_populates="product"
    )

    @property
    def effective_units_per_carton(self) -> int:
        """Packing factor, 1 for products not tracked by the carton."""
        if not self.units_per_carton or self.units_per_carton < 1:
            return 1
        return self.units_per_carton


# Forward references
from stockcount.models.stock import StockOnHand, StockMovement
