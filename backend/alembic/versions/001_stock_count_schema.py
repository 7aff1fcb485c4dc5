"""Stock count schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Adds:
- products and locations
- stock_on_hand / stock_movements ledger
- reconciliation_records and reconciliation_lines
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Products table
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("reference", sa.String(50), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("barcode", sa.String(50), unique=True, nullable=True, index=True),
        sa.Column("units_per_carton", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Locations table
    op.create_table(
        "locations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
        sa.Column("code", sa.String(50), unique=True, nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Stock on hand, in total units
    op.create_table(
        "stock_on_hand",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("qty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
    )

    # Stock movements ledger
    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ts", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("qty_delta", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("ref_type", sa.String(50), nullable=True),
        sa.Column("ref_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(500), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
    )

    # Reconciliation records
    op.create_table(
        "reconciliation_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("location_id", sa.Integer(), sa.ForeignKey("locations.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("status", sa.Enum("PENDING_CONFIRMATION", "CONFIRMED", name="recordstatus"),
                  nullable=False, index=True, server_default="PENDING_CONFIRMATION"),
        sa.Column("policy_hint", sa.Enum("BASELINE", "DELTA", name="confirmationpolicy"), nullable=True),
        sa.Column("confirmed_policy", sa.Enum("BASELINE", "DELTA", name="confirmationpolicy"), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Reconciliation lines: snapshot + raw scanned buckets only
    op.create_table(
        "reconciliation_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("record_id", sa.Integer(), sa.ForeignKey("reconciliation_records.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("units_per_carton", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("before_scan_total_units", sa.Integer(), nullable=False),
        sa.Column("scanned_cartons", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scanned_units", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("snapshot_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("record_id", "product_id", name="uq_reconciliation_line_product"),
    )


def downgrade() -> None:
    op.drop_table("reconciliation_lines")
    op.drop_table("reconciliation_records")
    op.drop_table("stock_movements")
    op.drop_table("stock_on_hand")
    op.drop_table("locations")
    op.drop_table("products")
    sa.Enum(name="confirmationpolicy").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="recordstatus").drop(op.get_bind(), checkfirst=True)
