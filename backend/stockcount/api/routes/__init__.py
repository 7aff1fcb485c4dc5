"""API routes."""

from fastapi import APIRouter

from stockcount.api.routes import products, reconciliations, stock

api_router = APIRouter()

api_router.include_router(products.router, prefix="/products", tags=["products"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
api_router.include_router(reconciliations.router, prefix="/reconciliations", tags=["reconciliations"])
