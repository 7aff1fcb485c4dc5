"""SQLAlchemy models."""

from stockcount.models.product import Product
from stockcount.models.location import Location
from stockcount.models.stock import MovementReason, StockOnHand, StockMovement
from stockcount.models.reconciliation import (
    ConfirmationPolicy,
    ReconciliationLine,
    ReconciliationRecord,
    RecordStatus,
    UnitKind,
)

__all__ = [
    "Product",
    "Location",
    "MovementReason",
    "StockOnHand",
    "StockMovement",
    "ConfirmationPolicy",
    "ReconciliationLine",
    "ReconciliationRecord",
    "RecordStatus",
    "UnitKind",
]
