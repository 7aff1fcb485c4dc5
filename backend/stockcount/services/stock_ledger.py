"""Stock ledger and product catalog used by the reconciliation workflow.

The abstract classes describe what the workflow needs from the outside
world; the ``Sql*`` implementations back them with the local database.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stockcount.models.location import Location
from stockcount.models.product import Product
from stockcount.models.stock import MovementReason, StockMovement, StockOnHand
from stockcount.services.errors import NotFoundError, StockApplyError

logger = logging.getLogger(__name__)


class MutationKind(str, Enum):
    SET = "set"  # Absolute stock level
    ADJUST = "adjust"  # Signed change


@dataclass(frozen=True)
class StockMutation:
    """One stock change requested by a confirmation."""

    kind: MutationKind
    product_id: int
    location_id: int
    quantity: int


class ProductCatalog(ABC):
    """Read-only access to products and locations."""

    @abstractmethod
    def get_product(self, product_id: int) -> Product:
        """Return the product or raise NotFoundError."""

    @abstractmethod
    def lookup_product_by_barcode(self, barcode: str) -> Product:
        """Return the product carrying barcode or raise NotFoundError."""

    @abstractmethod
    def location_exists(self, location_id: int) -> bool:
        """Whether the stock location exists."""


class StockLedger(ABC):
    """Theoretical stock per product and location, in total units."""

    @abstractmethod
    def get_theoretical_stock(self, product_id: int, location_id: int) -> int:
        """Current stock in total units (0 when never stocked)."""

    @abstractmethod
    def apply(
        self,
        mutations: Sequence[StockMutation],
        ref_id: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Apply all mutations as one unit or raise StockApplyError."""


class SqlProductCatalog(ProductCatalog):
    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> Product:
        product = self.db.query(Product).filter(Product.id == product_id).first()
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    def lookup_product_by_barcode(self, barcode: str) -> Product:
        code = (barcode or "").strip()
        product = None
        if code:
            product = (
                self.db.query(Product)
                .filter(Product.barcode == code, Product.active.is_(True))
                .first()
            )
        if not product:
            raise NotFoundError("Barcode", code)
        return product

    def location_exists(self, location_id: int) -> bool:
        return self.db.query(Location.id).filter(Location.id == location_id).first() is not None


class SqlStockLedger(StockLedger):
    """Stock ledger stored in ``stock_on_hand`` / ``stock_movements``.

    ``apply`` stages its changes in the caller's session and flushes them
    without committing: the caller commits or rolls back the whole unit
    together with its own state change.
    """

    ref_type = "reconciliation"

    def __init__(self, db: Session):
        self.db = db

    def _stock_row(self, product_id: int, location_id: int) -> Optional[StockOnHand]:
        return (
            self.db.query(StockOnHand)
            .filter(
                StockOnHand.product_id == product_id,
                StockOnHand.location_id == location_id,
            )
            .first()
        )

    def get_theoretical_stock(self, product_id: int, location_id: int) -> int:
        stock = self._stock_row(product_id, location_id)
        return int(stock.qty) if stock else 0

    def apply(
        self,
        mutations: Sequence[StockMutation],
        ref_id: Optional[int] = None,
        created_by: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        adjustments: List[Dict[str, Any]] = []
        try:
            for mutation in mutations:
                stock = self._stock_row(mutation.product_id, mutation.location_id)
                current_qty = int(stock.qty) if stock else 0

                if mutation.kind == MutationKind.SET:
                    new_qty = mutation.quantity
                elif mutation.kind == MutationKind.ADJUST:
                    new_qty = current_qty + mutation.quantity
                else:
                    raise ValueError(f"Unknown mutation kind: {mutation.kind}")

                if new_qty < 0:
                    logger.warning(
                        "Stock for product %s at location %s goes negative: %s -> %s",
                        mutation.product_id,
                        mutation.location_id,
                        current_qty,
                        new_qty,
                    )

                delta = new_qty - current_qty
                if delta == 0:
                    continue

                self.db.add(
                    StockMovement(
                        product_id=mutation.product_id,
                        location_id=mutation.location_id,
                        qty_delta=delta,
                        reason=MovementReason.INVENTORY_COUNT.value,
                        ref_type=self.ref_type,
                        ref_id=ref_id,
                        notes=f"{mutation.kind.value} {mutation.quantity}",
                        created_by=created_by,
                    )
                )
                if stock:
                    stock.qty = new_qty
                else:
                    self.db.add(
                        StockOnHand(
                            product_id=mutation.product_id,
                            location_id=mutation.location_id,
                            qty=new_qty,
                        )
                    )
                self.db.flush()

                adjustments.append(
                    {
                        "product_id": mutation.product_id,
                        "previous_qty": current_qty,
                        "new_qty": new_qty,
                        "delta": delta,
                    }
                )
        except (SQLAlchemyError, ValueError) as exc:
            raise StockApplyError(ref_id, str(exc)) from exc

        return adjustments
