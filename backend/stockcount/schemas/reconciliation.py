"""Reconciliation record and line schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from stockcount.models.reconciliation import ConfirmationPolicy, RecordStatus, UnitKind


class ObservationIn(BaseModel):
    """One counted quantity. location_id defaults to the record's location."""

    product_id: int
    unit_kind: UnitKind = UnitKind.UNIT
    quantity: int = Field(ge=0)
    location_id: Optional[int] = None


class ReconciliationCreate(BaseModel):
    """Reconciliation creation schema."""

    location_id: Optional[int] = None
    created_by: Optional[str] = None
    observations: List[ObservationIn] = []
    policy_hint: Optional[ConfirmationPolicy] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class ReconciliationUpdate(BaseModel):
    """Re-submission of the counts of a pending record."""

    observations: List[ObservationIn] = []
    notes: Optional[str] = Field(default=None, max_length=1000)


class ReconciliationLineResponse(BaseModel):
    """Reconciliation line with derived carton/unit figures."""

    id: int
    product_id: int
    product_name: Optional[str] = None
    units_per_carton: int
    snapshot_at: datetime

    before_scan_total_units: int
    before_scan_cartons: int
    before_scan_remaining_units: int

    scanned_cartons: int
    scanned_units: int
    scanned_total_units: int
    scanned_normalized_cartons: int
    scanned_remaining_units: int

    delta_cartons: int
    delta_units: int
    delta_total_units: int

    model_config = {"from_attributes": True}


class ReconciliationBrief(BaseModel):
    """Reconciliation list item."""

    id: int
    reference: str
    location_id: int
    created_by: str
    status: RecordStatus
    policy_hint: Optional[ConfirmationPolicy] = None
    confirmed_policy: Optional[ConfirmationPolicy] = None
    confirmed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ReconciliationResponse(ReconciliationBrief):
    """Reconciliation record with its lines."""

    notes: Optional[str] = None
    updated_at: datetime
    lines: List[ReconciliationLineResponse] = []


class ReconciliationSummaryResponse(BaseModel):
    record_id: int
    reference: str
    location_id: int
    status: RecordStatus
    total_lines: int
    lines_with_discrepancy: int
    surplus_lines: int
    shortage_lines: int
    before_scan_total_units: int
    scanned_total_units: int
    delta_total_units: int
    delta_cartons: int
    delta_units: int
