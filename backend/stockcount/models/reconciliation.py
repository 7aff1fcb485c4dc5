"""Reconciliation record and line models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockcount.db.base import Base, TimestampMixin
from stockcount.services.unit_converter import (
    QuantityDelta,
    pairwise_delta,
    to_cartons_and_units,
    to_total_units,
)


class RecordStatus(str, Enum):
    """Lifecycle of a reconciliation record. CONFIRMED is terminal."""

    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"


class ConfirmationPolicy(str, Enum):
    """How confirmed counts are written back to stock."""

    BASELINE = "baseline"  # Scanned quantities become the new stock level
    DELTA = "delta"  # Stock is adjusted by the signed discrepancy


class UnitKind(str, Enum):
    """Unit a scanned quantity is expressed in."""

    CARTON = "carton"
    UNIT = "unit"


class ReconciliationRecord(Base, TimestampMixin):
    """A stock count at one location, compared against theoretical stock."""

    __tablename__ = "reconciliation_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    location_id: Mapped[int] = mapped_column(
        ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[RecordStatus] = mapped_column(
        SQLEnum(RecordStatus), default=RecordStatus.PENDING_CONFIRMATION, nullable=False, index=True
    )
    policy_hint: Mapped[Optional[ConfirmationPolicy]] = mapped_column(
        SQLEnum(ConfirmationPolicy), nullable=True
    )
    confirmed_policy: Mapped[Optional[ConfirmationPolicy]] = mapped_column(
        SQLEnum(ConfirmationPolicy), nullable=True
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Relationships
    location: Mapped["Location"] = relationship("Location", back_populates="reconciliation_records")
    lines: Mapped[list["ReconciliationLine"]] = relationship(
        "ReconciliationLine",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="ReconciliationLine.id",
    )

    @property
    def reference(self) -> str:
        """Display number, e.g. INV-00042."""
        return f"INV-{self.id:05d}" if self.id is not None else "INV-NEW"

    @property
    def is_pending(self) -> bool:
        return self.status == RecordStatus.PENDING_CONFIRMATION

    def line_for(self, product_id: int) -> Optional["ReconciliationLine"]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None


class ReconciliationLine(Base):
    """Count of one product within a record.

    Only the snapshot and the raw scanned buckets are stored. Every other
    quantity is derived from them on access.
    """

    __tablename__ = "reconciliation_lines"
    __table_args__ = (
        UniqueConstraint("record_id", "product_id", name="uq_reconciliation_line_product"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    record_id: Mapped[int] = mapped_column(
        ForeignKey("reconciliation_records.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    units_per_carton: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    before_scan_total_units: Mapped[int] = mapped_column(Integer, nullable=False)
    scanned_cartons: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    scanned_units: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    snapshot_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    record: Mapped["ReconciliationRecord"] = relationship("ReconciliationRecord", back_populates="lines")
    product: Mapped["Product"] = relationship("Product")

    @property
    def before_scan_cartons(self) -> int:
        return to_cartons_and_units(max(self.before_scan_total_units, 0), self.units_per_carton)[0]

    @property
    def before_scan_remaining_units(self) -> int:
        return to_cartons_and_units(max(self.before_scan_total_units, 0), self.units_per_carton)[1]

    @property
    def scanned_total_units(self) -> int:
        return to_total_units(self.scanned_cartons, self.scanned_units, self.units_per_carton)

    @property
    def scanned_normalized_cartons(self) -> int:
        return to_cartons_and_units(self.scanned_total_units, self.units_per_carton)[0]

    @property
    def scanned_remaining_units(self) -> int:
        return to_cartons_and_units(self.scanned_total_units, self.units_per_carton)[1]

    @property
    def delta(self) -> QuantityDelta:
        # Negative theoretical stock has no carton/unit split; its components count as zero.
        if self.before_scan_total_units < 0:
            return QuantityDelta(
                cartons=self.scanned_normalized_cartons,
                units=self.scanned_remaining_units,
                total_units=self.scanned_total_units - self.before_scan_total_units,
            )
        return pairwise_delta(self.before_scan_total_units, self.scanned_total_units, self.units_per_carton)

    @property
    def delta_cartons(self) -> int:
        return self.delta.cartons

    @property
    def delta_units(self) -> int:
        return self.delta.units

    @property
    def delta_total_units(self) -> int:
        return self.scanned_total_units - self.before_scan_total_units

    @property
    def product_name(self) -> Optional[str]:
        return self.product.name if self.product else None


# Forward references
from stockcount.models.location import Location
from stockcount.models.product import Product
