"""Export service: CSV rendering of reconciliation records."""

import csv
import io
import logging

from sqlalchemy.orm import Session

from stockcount.models.reconciliation import ReconciliationRecord
from stockcount.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Product ID",
    "Product Name",
    "Barcode",
    "Units/Carton",
    "Before (cartons)",
    "Before (units)",
    "Before (total)",
    "Scanned (cartons)",
    "Scanned (units)",
    "Scanned (total)",
    "Delta (cartons)",
    "Delta (units)",
    "Delta (total)",
]


class ExportService:
    """Service for exporting reconciliation records."""

    def __init__(self, db: Session):
        self.db = db

    def export_to_csv(self, record_id: int) -> str:
        """
        Render a record as CSV text.
        Raises NotFoundError for an unknown record.
        """
        record = ReconciliationService(self.db).get_record(record_id)
        content = render_csv(record)
        logger.info(f"Exported reconciliation {record.reference} to CSV ({len(record.lines)} lines)")
        return content

    @staticmethod
    def filename_for(record: ReconciliationRecord) -> str:
        return f"{record.reference}.csv"


def render_csv(record: ReconciliationRecord) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)

    writer.writerow(["Reference", record.reference])
    writer.writerow(["Location", record.location_id])
    writer.writerow(["Status", record.status.value])
    writer.writerow(["Created by", record.created_by])
    writer.writerow(["Confirmed policy", record.confirmed_policy.value if record.confirmed_policy else ""])
    writer.writerow([])

    writer.writerow(CSV_HEADER)
    for line in record.lines:
        product = line.product
        writer.writerow([
            line.product_id,
            product.name if product else "",
            product.barcode if product and product.barcode else "",
            line.units_per_carton,
            line.before_scan_cartons,
            line.before_scan_remaining_units,
            line.before_scan_total_units,
            line.scanned_normalized_cartons,
            line.scanned_remaining_units,
            line.scanned_total_units,
            line.delta_cartons,
            line.delta_units,
            line.delta_total_units,
        ])

    # Total row
    writer.writerow([])
    writer.writerow([
        "", "Total", "", "", "", "",
        sum(line.before_scan_total_units for line in record.lines),
        "", "",
        sum(line.scanned_total_units for line in record.lines),
        "", "",
        sum(line.delta_total_units for line in record.lines),
    ])
    return buffer.getvalue()
