"""Reconciliation (stock count) routes."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from stockcount.core.rate_limit import limiter
from stockcount.core.responses import paginated_response
from stockcount.db.session import DbSession
from stockcount.models.reconciliation import ConfirmationPolicy, RecordStatus
from stockcount.schemas.reconciliation import (
    ObservationIn,
    ReconciliationBrief,
    ReconciliationCreate,
    ReconciliationResponse,
    ReconciliationSummaryResponse,
    ReconciliationUpdate,
)
from stockcount.services.errors import (
    NotFoundError,
    ReconciliationError,
    StaleRecordError,
    StockApplyError,
    SubmissionInProgressError,
    ValidationError,
)
from stockcount.services.export_service import ExportService
from stockcount.services.observation_accumulator import ScannedObservation
from stockcount.services.reconciliation_service import ReconciliationService

router = APIRouter()


def to_http_exception(exc: ReconciliationError) -> HTTPException:
    """Map a service error onto its HTTP status."""
    if isinstance(exc, ValidationError):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (StaleRecordError, SubmissionInProgressError)):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, StockApplyError):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(exc))


def _observations(items: List[ObservationIn], location_id: Optional[int]) -> List[ScannedObservation]:
    return [
        ScannedObservation(
            product_id=item.product_id,
            location_id=item.location_id if item.location_id is not None else location_id,
            quantity=item.quantity,
            unit_kind=item.unit_kind,
        )
        for item in items
    ]


@router.get("")
@limiter.limit("60/minute")
def list_reconciliations(
    request: Request,
    db: DbSession,
    location_id: Optional[int] = Query(None),
    status_filter: Optional[RecordStatus] = Query(None, alias="status"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    """List reconciliations, newest first."""
    records, total = ReconciliationService(db).list_records(
        location_id=location_id, status=status_filter, skip=skip, limit=limit
    )
    items = [ReconciliationBrief.model_validate(r).model_dump(mode="json") for r in records]
    return paginated_response(items, total, skip, limit)


@router.post("", response_model=ReconciliationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_reconciliation(request: Request, data: ReconciliationCreate, db: DbSession):
    """Build a pending reconciliation from a batch of counts."""
    try:
        return ReconciliationService(db).build_record(
            _observations(data.observations, data.location_id),
            data.location_id,
            data.created_by,
            policy_hint=data.policy_hint,
            notes=data.notes,
        )
    except ReconciliationError as e:
        raise to_http_exception(e)


@router.get("/{record_id}", response_model=ReconciliationResponse)
@limiter.limit("60/minute")
def get_reconciliation(request: Request, record_id: int, db: DbSession):
    """Get a reconciliation with its lines."""
    try:
        return ReconciliationService(db).get_record(record_id)
    except ReconciliationError as e:
        raise to_http_exception(e)


@router.put("/{record_id}", response_model=ReconciliationResponse)
@limiter.limit("30/minute")
def update_reconciliation(request: Request, record_id: int, data: ReconciliationUpdate, db: DbSession):
    """Re-submit the counts of a pending reconciliation."""
    service = ReconciliationService(db)
    try:
        record = service.get_record(record_id)
        return service.update_record(
            record_id,
            _observations(data.observations, record.location_id),
            notes=data.notes,
        )
    except ReconciliationError as e:
        raise to_http_exception(e)


@router.post("/{record_id}/confirm", response_model=ReconciliationResponse)
@limiter.limit("10/minute")
def confirm_reconciliation(
    request: Request,
    record_id: int,
    db: DbSession,
    policy: ConfirmationPolicy = Query(...),
    confirmed_by: Optional[str] = Query(None),
):
    """Apply a pending reconciliation to stock under the given policy."""
    try:
        return ReconciliationService(db).confirm(record_id, policy, confirmed_by=confirmed_by)
    except ReconciliationError as e:
        raise to_http_exception(e)


@router.get("/{record_id}/summary", response_model=ReconciliationSummaryResponse)
@limiter.limit("60/minute")
def get_reconciliation_summary(request: Request, record_id: int, db: DbSession):
    """Discrepancy totals of a reconciliation."""
    try:
        return ReconciliationService(db).get_summary(record_id)
    except ReconciliationError as e:
        raise to_http_exception(e)


@router.get("/{record_id}/export")
@limiter.limit("20/minute")
def export_reconciliation(request: Request, record_id: int, db: DbSession):
    """Download a reconciliation as CSV."""
    service = ExportService(db)
    try:
        content = service.export_to_csv(record_id)
        record = ReconciliationService(db).get_record(record_id)
    except ReconciliationError as e:
        raise to_http_exception(e)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{service.filename_for(record)}"'},
    )
