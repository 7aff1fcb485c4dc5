"""Exceptions raised by the stock-count services."""

from typing import List, Optional


class ReconciliationError(Exception):
    """Base class for stock-count errors."""


class ValidationError(ReconciliationError):
    """Raised when a batch cannot be submitted (missing location, user, or lines)."""


class NotFoundError(ReconciliationError):
    """Raised when a product, location, or record does not exist."""

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} '{identifier}' not found")


class StaleRecordError(ReconciliationError):
    """Raised when a record is no longer in a state that allows the operation."""

    def __init__(self, record_id: int, message: Optional[str] = None):
        self.record_id = record_id
        super().__init__(message or f"Reconciliation {record_id} is no longer pending")


class AlreadyConfirmedError(StaleRecordError):
    """Raised on any edit or confirmation of a confirmed record."""

    def __init__(self, record_id: int):
        super().__init__(record_id, f"Reconciliation {record_id} is already confirmed")


class StaleBaselineError(StaleRecordError):
    """Raised when theoretical stock moved between snapshot and confirmation."""

    def __init__(self, record_id: int, product_ids: List[int]):
        self.product_ids = product_ids
        super().__init__(
            record_id,
            f"Theoretical stock changed since reconciliation {record_id} was counted "
            f"(products: {', '.join(str(p) for p in product_ids)})",
        )


class StockApplyError(ReconciliationError):
    """Raised when the stock ledger could not apply a confirmation as a whole."""

    def __init__(self, record_id: Optional[int], reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Stock update failed for reconciliation {record_id}: {reason}")


class SubmissionInProgressError(ReconciliationError):
    """Raised when a count is submitted while a previous submission is still running."""
