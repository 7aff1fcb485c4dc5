"""Product routes."""

from fastapi import APIRouter, HTTPException, Request, status

from stockcount.core.rate_limit import limiter
from stockcount.db.session import DbSession
from stockcount.schemas.product import ProductResponse
from stockcount.services.errors import NotFoundError
from stockcount.services.stock_ledger import SqlProductCatalog

router = APIRouter()


@router.get("/barcode/{barcode}", response_model=ProductResponse)
@limiter.limit("120/minute")
def get_product_by_barcode(request: Request, barcode: str, db: DbSession):
    """Get an active product by barcode (EAN/UPC)."""
    try:
        return SqlProductCatalog(db).lookup_product_by_barcode(barcode)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
