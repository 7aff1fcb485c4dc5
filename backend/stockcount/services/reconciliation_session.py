"""Counting session: one user counting one location, from first scan to confirmation."""

from dataclasses import dataclass
import logging
import threading
from typing import Dict, Optional

from stockcount.core.draft_store import DraftStore
from stockcount.models.product import Product
from stockcount.models.reconciliation import ConfirmationPolicy, ReconciliationRecord, UnitKind
from stockcount.services.errors import SubmissionInProgressError, ValidationError
from stockcount.services.observation_accumulator import EntryMode, ObservationAccumulator
from stockcount.services.reconciliation_service import ReconciliationService
from stockcount.services.scheduling import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanResult:
    product_id: int
    product_name: str
    unit_kind: UnitKind
    quantity: int  # Bucket quantity after the scan


class ReconciliationSession:
    """Owns the accumulator of an in-progress count and drives its submission.

    Counting stays possible while a submission runs; a second submission of
    the same count is refused until the first one returns.
    """

    def __init__(
        self,
        service: ReconciliationService,
        user_id: str,
        location_id: int,
        draft_store: Optional[DraftStore] = None,
        scheduler: Optional[Scheduler] = None,
        mode: EntryMode = EntryMode.SCAN,
        record_id: Optional[int] = None,
        policy_hint: Optional[ConfirmationPolicy] = None,
    ):
        self.service = service
        self.user_id = user_id
        self.location_id = location_id
        self.record_id = record_id
        self.confirmed = False
        self.accumulator = ObservationAccumulator(
            user_id=user_id,
            location_id=location_id,
            draft_store=draft_store,
            scheduler=scheduler,
            mode=mode,
            record_id=record_id,
            policy_hint=policy_hint,
        )
        self._product_cache: Dict[str, Product] = {}
        self._in_flight = threading.Lock()

    @classmethod
    def for_record(
        cls,
        service: ReconciliationService,
        user_id: str,
        record: ReconciliationRecord,
        draft_store: Optional[DraftStore] = None,
        scheduler: Optional[Scheduler] = None,
        mode: EntryMode = EntryMode.LIST,
    ) -> "ReconciliationSession":
        """Open an edit session on a pending record.

        A saved draft for the record wins over the stored counts.
        """
        session = cls(
            service,
            user_id,
            record.location_id,
            draft_store=draft_store,
            scheduler=scheduler,
            mode=mode,
            record_id=record.id,
            policy_hint=record.policy_hint,
        )
        if not session.restore_draft():
            for line in record.lines:
                session.accumulator.set_observation_quantity(line.product_id, UnitKind.CARTON, line.scanned_cartons)
                session.accumulator.set_observation_quantity(line.product_id, UnitKind.UNIT, line.scanned_units)
        return session

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------
    def scan(self, barcode: str, unit_kind: UnitKind = UnitKind.UNIT, quantity: int = 1) -> ScanResult:
        """Count quantity of the product carrying barcode.

        Raises NotFoundError for an unknown barcode; the batch is left as is.
        """
        code = (barcode or "").strip()
        product = self._product_cache.get(code)
        if product is None:
            product = self.service.catalog.lookup_product_by_barcode(code)
            self._product_cache[code] = product
        total = self.accumulator.record_observation(product.id, unit_kind, quantity)
        logger.debug(f"Scanned {code}: product={product.id}, {unit_kind}={total}")
        return ScanResult(product_id=product.id, product_name=product.name, unit_kind=UnitKind(unit_kind), quantity=total)

    def record_observation(self, product_id: int, unit_kind: UnitKind, quantity_delta: int) -> int:
        return self.accumulator.record_observation(product_id, unit_kind, quantity_delta)

    def set_observation_quantity(self, product_id: int, unit_kind: UnitKind, absolute_quantity: int) -> int:
        return self.accumulator.set_observation_quantity(product_id, unit_kind, absolute_quantity)

    @property
    def policy_hint(self) -> Optional[ConfirmationPolicy]:
        return self.accumulator.policy_hint

    @policy_hint.setter
    def policy_hint(self, value: Optional[ConfirmationPolicy]) -> None:
        self.accumulator.policy_hint = ConfirmationPolicy(value) if value else None

    @property
    def submitting(self) -> bool:
        return self._in_flight.locked()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit(self, notes: Optional[str] = None) -> ReconciliationRecord:
        """Create the record, or re-submit it once it exists.

        On failure the counted observations and their draft are kept so the
        submission can be retried as is.
        """
        if not self._in_flight.acquire(blocking=False):
            raise SubmissionInProgressError("A submission for this count is already in progress")
        try:
            observations = self.accumulator.observations()
            if self.record_id is None:
                record = self.service.build_record(
                    observations,
                    self.location_id,
                    self.user_id,
                    policy_hint=self.accumulator.policy_hint,
                    notes=notes,
                )
                self.record_id = record.id
                self.accumulator.bind_to_record(record.id)
            else:
                record = self.service.update_record(self.record_id, observations, notes=notes)
            return record
        except Exception:
            self.accumulator.flush()
            raise
        finally:
            self._in_flight.release()

    def confirm(self, policy: ConfirmationPolicy) -> ReconciliationRecord:
        """Apply the submitted record to stock, then drop the draft."""
        if self.record_id is None:
            raise ValidationError("The count must be submitted before it can be confirmed")
        if not self._in_flight.acquire(blocking=False):
            raise SubmissionInProgressError("A submission for this count is already in progress")
        try:
            record = self.service.confirm(self.record_id, policy, confirmed_by=self.user_id)
        finally:
            self._in_flight.release()
        self.confirmed = True
        self.accumulator.discard_draft()
        return record

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------
    def restore_draft(self) -> bool:
        return self.accumulator.restore()

    def close(self) -> None:
        """Persist any pending draft (window or tab closing)."""
        if not self.confirmed:
            self.accumulator.flush()
