"""Stock level routes."""

from fastapi import APIRouter, HTTPException, Query, Request, status

from stockcount.core.rate_limit import limiter
from stockcount.core.responses import paginated_response
from stockcount.db.session import DbSession
from stockcount.models.location import Location
from stockcount.models.product import Product
from stockcount.models.stock import StockOnHand
from stockcount.schemas.product import StockLevelResponse
from stockcount.services.unit_converter import to_cartons_and_units

router = APIRouter()


@router.get("/{location_id}")
@limiter.limit("60/minute")
def get_stock_levels(
    request: Request,
    location_id: int,
    db: DbSession,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Get theoretical stock at a location, in total units and cartons + units."""
    if not db.query(Location.id).filter(Location.id == location_id).first():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")

    query = (
        db.query(StockOnHand, Product)
        .join(Product, Product.id == StockOnHand.product_id)
        .filter(StockOnHand.location_id == location_id)
    )
    total = query.count()
    rows = query.order_by(Product.name).offset(skip).limit(limit).all()

    items = []
    for stock, product in rows:
        upc = product.effective_units_per_carton
        # Negative stock is not split into cartons and units.
        cartons, units = to_cartons_and_units(stock.qty, upc) if stock.qty > 0 else (0, 0)
        items.append(
            StockLevelResponse(
                product_id=product.id,
                product_name=product.name,
                location_id=stock.location_id,
                units_per_carton=upc,
                quantity=stock.qty,
                cartons=cartons,
                units=units,
                last_updated=stock.updated_at,
            ).model_dump()
        )
    return paginated_response(items, total, skip, limit)
