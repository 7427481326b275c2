"""
Product endpoints — cached catalog reads and stock checks.

Catalog management (create/update/delete) lives outside this service.
"""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import get_cache
from domain.responses import success_response
from models import StockCheckRequest, StockCheckResponse
from services import inventory_service
from services.cache_service import ReadCache

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
async def list_products(
    include_out_of_stock: bool = Query(False, alias="includeOutOfStock"),
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    products = await inventory_service.list_products(db, cache, include_out_of_stock=include_out_of_stock)
    return success_response(data=products, meta={"total": len(products)})


@router.get("/{product_id}")
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    return success_response(data=await inventory_service.get_product(db, product_id, cache))


@router.post("/check-stock")
async def check_stock(request: StockCheckRequest, db: AsyncSession = Depends(get_db)):
    check = await inventory_service.check_availability(db, request.product_id, request.quantity)
    return success_response(
        data=StockCheckResponse(
            available=check.available,
            current_stock=check.current_stock,
            message=check.message,
        ).model_dump(by_alias=True)
    )
