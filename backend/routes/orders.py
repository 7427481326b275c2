"""
Order endpoints — order listing, lookup and fulfillment-status changes.
"""

import logging
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from deps import Pagination, get_cache, get_dispatcher, get_invalidator, pagination_params
from domain.responses import success_response
from models import OrderStatusUpdateRequest
from services import order_service
from services.cache_service import CacheInvalidator, ReadCache
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("")
async def list_orders(
    page: Pagination = Depends(pagination_params),
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    orders = await order_service.list_orders(db, cache, limit=page["limit"], offset=page["offset"])
    return success_response(data=orders, meta={"limit": page["limit"], "offset": page["offset"]})


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    cache: ReadCache = Depends(get_cache),
):
    return success_response(data=await order_service.get_order_snapshot(db, order_id, cache))


@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: int,
    request: OrderStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    order = await order_service.update_order_status(
        db,
        order_id=order_id,
        status=request.status,
        invalidator=invalidator,
        dispatcher=dispatcher,
    )
    return success_response(data=order_service.serialize_order(order))
