"""Reconciliation service: build stock-count records and apply them to stock.

A record is built from a batch of counted observations at one location.
Each product gets a line that pins the theoretical stock read at build time
(the "before scan" snapshot) next to the scanned cartons and units. Lines
stay editable while the record is pending; confirming the record writes the
counts back to the stock ledger under one policy and makes it read-only.
"""

from collections import OrderedDict
from datetime import datetime, timezone
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from stockcount.core.config import settings
from stockcount.models.reconciliation import (
    ConfirmationPolicy,
    ReconciliationLine,
    ReconciliationRecord,
    RecordStatus,
    UnitKind,
)
from stockcount.services.errors import (
    AlreadyConfirmedError,
    NotFoundError,
    StaleBaselineError,
    StockApplyError,
    ValidationError,
)
from stockcount.services.observation_accumulator import ScannedObservation
from stockcount.services.stock_ledger import (
    MutationKind,
    ProductCatalog,
    SqlProductCatalog,
    SqlStockLedger,
    StockLedger,
    StockMutation,
)

logger = logging.getLogger(__name__)


class ReconciliationConfig:
    """Behaviour switches for edits and confirmation."""

    def __init__(
        self,
        rebaseline_on_edit: Optional[bool] = None,
        reject_stale_baseline: Optional[bool] = None,
    ):
        self.rebaseline_on_edit = (
            settings.rebaseline_on_edit if rebaseline_on_edit is None else rebaseline_on_edit
        )
        self.reject_stale_baseline = (
            settings.reject_stale_baseline if reject_stale_baseline is None else reject_stale_baseline
        )


def build_instruction(policy: ConfirmationPolicy, line: ReconciliationLine, location_id: int) -> StockMutation:
    """Stock change a confirmed line produces under policy."""
    if policy == ConfirmationPolicy.BASELINE:
        return StockMutation(
            kind=MutationKind.SET,
            product_id=line.product_id,
            location_id=location_id,
            quantity=line.scanned_total_units,
        )
    if policy == ConfirmationPolicy.DELTA:
        return StockMutation(
            kind=MutationKind.ADJUST,
            product_id=line.product_id,
            location_id=location_id,
            quantity=line.delta_total_units,
        )
    raise ValueError(f"Unknown confirmation policy: {policy!r}")


def sum_observations(observations: Sequence[ScannedObservation]) -> "OrderedDict[int, Tuple[int, int]]":
    """Fold observations into product_id -> (cartons, units), first-seen order."""
    totals: "OrderedDict[int, Tuple[int, int]]" = OrderedDict()
    for obs in observations:
        if obs.quantity < 0:
            raise ValidationError(f"Negative quantity for product {obs.product_id}")
        cartons, units = totals.get(obs.product_id, (0, 0))
        if UnitKind(obs.unit_kind) == UnitKind.CARTON:
            cartons += obs.quantity
        else:
            units += obs.quantity
        totals[obs.product_id] = (cartons, units)
    return totals


class ReconciliationService:
    """Service for building, editing and confirming reconciliation records."""

    def __init__(
        self,
        db: Session,
        config: Optional[ReconciliationConfig] = None,
        ledger: Optional[StockLedger] = None,
        catalog: Optional[ProductCatalog] = None,
    ):
        self.db = db
        self.config = config or ReconciliationConfig()
        self.ledger = ledger or SqlStockLedger(db)
        self.catalog = catalog or SqlProductCatalog(db)

    # ------------------------------------------------------------------
    # build_record
    # ------------------------------------------------------------------
    def build_record(
        self,
        observations: Sequence[ScannedObservation],
        location_id: Optional[int],
        created_by: Optional[str],
        policy_hint: Optional[ConfirmationPolicy] = None,
        notes: Optional[str] = None,
    ) -> ReconciliationRecord:
        """Create a pending record from a finalized batch of observations.

        Theoretical stock is read once per product, now, and pinned on the
        line. No lock is held between this read and confirmation.

        Raises:
            ValidationError: Missing user or location, empty batch, or
                observations taken at another location.
            NotFoundError: Unknown location or product.
        """
        if not created_by or not str(created_by).strip():
            raise ValidationError("An acting user is required to submit a count")
        if location_id is None:
            raise ValidationError("A stock location is required to submit a count")
        if not observations:
            raise ValidationError("At least one counted product is required")
        self._check_locations(observations, location_id)
        if not self.catalog.location_exists(location_id):
            raise NotFoundError("Location", location_id)

        totals = sum_observations(observations)
        now = datetime.now(timezone.utc)
        record = ReconciliationRecord(
            location_id=location_id,
            created_by=str(created_by).strip(),
            status=RecordStatus.PENDING_CONFIRMATION,
            policy_hint=ConfirmationPolicy(policy_hint) if policy_hint else None,
            notes=notes,
        )
        try:
            for product_id, (cartons, units) in totals.items():
                record.lines.append(self._new_line(product_id, location_id, cartons, units, now))
            self.db.add(record)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)

        logger.info(
            "Reconciliation created: ID=%s, location=%s, lines=%s, user=%s",
            record.id,
            location_id,
            len(record.lines),
            record.created_by,
        )
        return record

    def _check_locations(self, observations: Sequence[ScannedObservation], location_id: int) -> None:
        foreign = sorted({obs.location_id for obs in observations if obs.location_id != location_id})
        if foreign:
            raise ValidationError(
                f"Observations from location(s) {foreign} cannot be counted at location {location_id}"
            )

    def _new_line(
        self, product_id: int, location_id: int, cartons: int, units: int, now: datetime
    ) -> ReconciliationLine:
        product = self.catalog.get_product(product_id)
        return ReconciliationLine(
            product_id=product_id,
            units_per_carton=product.effective_units_per_carton,
            before_scan_total_units=self.ledger.get_theoretical_stock(product_id, location_id),
            scanned_cartons=cartons,
            scanned_units=units,
            snapshot_at=now,
        )

    # ------------------------------------------------------------------
    # update_record
    # ------------------------------------------------------------------
    def update_record(
        self,
        record_id: int,
        observations: Sequence[ScannedObservation],
        notes: Optional[str] = None,
    ) -> ReconciliationRecord:
        """Re-submit the counts of a pending record.

        Scanned quantities of every line are replaced; products of the
        record missing from the batch are counted as zero, new products get
        a line with a fresh snapshot. Existing snapshots stay pinned unless
        ``rebaseline_on_edit`` is enabled.
        """
        record = self.get_record(record_id)
        if not record.is_pending:
            raise AlreadyConfirmedError(record_id)
        if not observations:
            raise ValidationError("At least one counted product is required")
        self._check_locations(observations, record.location_id)

        totals = sum_observations(observations)
        now = datetime.now(timezone.utc)
        try:
            # Touch the row only while it is still pending; a confirm that
            # committed since the read above leaves nothing to edit.
            touched = (
                self.db.query(ReconciliationRecord)
                .filter(
                    ReconciliationRecord.id == record_id,
                    ReconciliationRecord.status == RecordStatus.PENDING_CONFIRMATION,
                )
                .update({ReconciliationRecord.updated_at: now}, synchronize_session=False)
            )
            if not touched:
                raise AlreadyConfirmedError(record_id)
            for line in record.lines:
                cartons, units = totals.pop(line.product_id, (0, 0))
                line.scanned_cartons = cartons
                line.scanned_units = units
                if self.config.rebaseline_on_edit:
                    product = self.catalog.get_product(line.product_id)
                    line.units_per_carton = product.effective_units_per_carton
                    line.before_scan_total_units = self.ledger.get_theoretical_stock(
                        line.product_id, record.location_id
                    )
                    line.snapshot_at = now
            for product_id, (cartons, units) in totals.items():
                record.lines.append(self._new_line(product_id, record.location_id, cartons, units, now))
            if notes is not None:
                record.notes = notes
            record.updated_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)

        logger.info(
            "Reconciliation recalculated: ID=%s, lines=%s, rebaseline=%s",
            record.id,
            len(record.lines),
            self.config.rebaseline_on_edit,
        )
        return record

    # ------------------------------------------------------------------
    # confirm
    # ------------------------------------------------------------------
    def find_stale_lines(self, record: ReconciliationRecord) -> List[int]:
        """Products whose theoretical stock moved since the snapshot."""
        return [
            line.product_id
            for line in record.lines
            if self.ledger.get_theoretical_stock(line.product_id, record.location_id)
            != line.before_scan_total_units
        ]

    def confirm(
        self,
        record_id: int,
        policy: ConfirmationPolicy,
        confirmed_by: Optional[str] = None,
    ) -> ReconciliationRecord:
        """Apply a pending record to stock and mark it confirmed.

        The status change and every stock mutation are committed together;
        on any failure nothing is applied and the record stays pending.

        Raises:
            NotFoundError: Unknown record.
            AlreadyConfirmedError: The record is not pending anymore.
            StaleBaselineError: Stock moved since the snapshot and
                ``reject_stale_baseline`` is enabled.
            StockApplyError: The ledger could not apply the mutations.
        """
        policy = ConfirmationPolicy(policy)
        record = self.get_record(record_id)
        if not record.is_pending:
            raise AlreadyConfirmedError(record_id)

        stale = self.find_stale_lines(record)
        if stale:
            if self.config.reject_stale_baseline:
                raise StaleBaselineError(record_id, stale)
            logger.warning(
                "Reconciliation %s confirmed against a moved baseline for products %s",
                record_id,
                stale,
            )

        now = datetime.now(timezone.utc)
        try:
            # Claim the transition first so concurrent confirms apply stock once.
            claimed = (
                self.db.query(ReconciliationRecord)
                .filter(
                    ReconciliationRecord.id == record_id,
                    ReconciliationRecord.status == RecordStatus.PENDING_CONFIRMATION,
                )
                .update(
                    {
                        ReconciliationRecord.status: RecordStatus.CONFIRMED,
                        ReconciliationRecord.confirmed_at: now,
                        ReconciliationRecord.confirmed_policy: policy,
                        ReconciliationRecord.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if not claimed:
                raise AlreadyConfirmedError(record_id)
            # Lines are read again under the claim so a concurrent edit is never half applied.
            for line in record.lines:
                self.db.expire(line)
            self.db.expire(record, ["lines"])
            mutations = [build_instruction(policy, line, record.location_id) for line in record.lines]
            adjustments = self.ledger.apply(
                mutations,
                ref_id=record_id,
                created_by=confirmed_by or record.created_by,
            )
            self.db.commit()
        except AlreadyConfirmedError:
            self.db.rollback()
            raise
        except StockApplyError as exc:
            self.db.rollback()
            logger.error("Reconciliation %s not applied: %s", record_id, exc.reason)
            raise
        except Exception as exc:
            self.db.rollback()
            logger.error("Reconciliation %s not applied: %s", record_id, exc)
            raise StockApplyError(record_id, str(exc)) from exc

        self.db.refresh(record)
        logger.info(
            "Reconciliation confirmed: ID=%s, location=%s, policy=%s, movements=%s",
            record.id,
            record.location_id,
            policy.value,
            len(adjustments),
        )
        if adjustments:
            logger.info("Stock adjustments for reconciliation %s: %s", record.id, adjustments)
        return record

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    def get_record(self, record_id: int) -> ReconciliationRecord:
        record = (
            self.db.query(ReconciliationRecord)
            .filter(ReconciliationRecord.id == record_id)
            .first()
        )
        if not record:
            raise NotFoundError("Reconciliation", record_id)
        return record

    def list_records(
        self,
        location_id: Optional[int] = None,
        status: Optional[RecordStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ReconciliationRecord], int]:
        """Records newest first, with the total count before paging."""
        query = self.db.query(ReconciliationRecord)
        if location_id is not None:
            query = query.filter(ReconciliationRecord.location_id == location_id)
        if status is not None:
            query = query.filter(ReconciliationRecord.status == status)
        total = query.count()
        records = (
            query.order_by(ReconciliationRecord.created_at.desc(), ReconciliationRecord.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )
        return records, total

    def get_summary(self, record_id: int) -> Dict[str, Any]:
        """Aggregate discrepancies of a record."""
        record = self.get_record(record_id)
        lines = record.lines

        return {
            "record_id": record.id,
            "reference": record.reference,
            "location_id": record.location_id,
            "status": record.status.value,
            "total_lines": len(lines),
            "lines_with_discrepancy": sum(1 for line in lines if line.delta_total_units != 0),
            "surplus_lines": sum(1 for line in lines if line.delta_total_units > 0),
            "shortage_lines": sum(1 for line in lines if line.delta_total_units < 0),
            "before_scan_total_units": sum(line.before_scan_total_units for line in lines),
            "scanned_total_units": sum(line.scanned_total_units for line in lines),
            "delta_total_units": sum(line.delta_total_units for line in lines),
            "delta_cartons": sum(line.delta_cartons for line in lines),
            "delta_units": sum(line.delta_units for line in lines),
        }
