"""Product and stock level schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ProductResponse(BaseModel):
    """Product response schema."""

    id: int
    reference: str
    name: str
    barcode: Optional[str] = None
    units_per_carton: int = 1
    min_stock: int = 0
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StockLevelResponse(BaseModel):
    """Theoretical stock of one product at a location."""

    product_id: int
    product_name: str
    location_id: int
    units_per_carton: int
    quantity: int
    cartons: int
    units: int
    last_updated: Optional[datetime] = None
