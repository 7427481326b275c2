"""
Order service — order reads and fulfillment-status changes.

Status changes never touch stock: inventory is adjusted exactly once, when
the order is created from its payment.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Order
from domain.constants import CACHE_KEY_ORDERS_ALL
from domain.enums import OrderStatus
from domain.errors import NotFoundError, ValidationError
from models import OrderResponse
from services.cache_service import CacheInvalidator, ReadCache, order_key
from services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


def serialize_order(order: Order) -> dict:
    return OrderResponse.model_validate(order).model_dump(by_alias=True, mode="json")


async def get_order(db: AsyncSession, order_id: int) -> Order:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .options(selectinload(Order.items), selectinload(Order.customer))
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order", str(order_id))
    return order


async def get_order_snapshot(db: AsyncSession, order_id: int, cache: ReadCache) -> dict:
    """Serialized order, served through the read cache."""

    async def _load():
        return serialize_order(await get_order(db, order_id))

    return await cache.get_or_load(order_key(order_id), _load)


async def list_orders(
    db: AsyncSession,
    cache: ReadCache,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> list[dict]:
    """Newest orders first. Only the default first page is cached."""

    async def _load():
        res = await db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .order_by(Order.ordered_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return [serialize_order(o) for o in res.scalars().all()]

    if limit == DEFAULT_PAGE_SIZE and offset == 0:
        return await cache.get_or_load(CACHE_KEY_ORDERS_ALL, _load)
    return await _load()


async def update_order_status(
    db: AsyncSession,
    *,
    order_id: int,
    status: str,
    invalidator: CacheInvalidator,
    dispatcher: NotificationDispatcher,
) -> Order:
    """
    Move an order to a new fulfillment status and tell the customer.

    Commits on `db`; caches are invalidated and the notification is sent
    only after the commit.
    """
    try:
        new_status = OrderStatus(status)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Unknown order status '{status}' (allowed: {allowed})", field="status")

    order = await get_order(db, order_id)
    previous_status = order.status
    if previous_status == new_status.value:
        return order

    order.status = new_status.value
    order.updated_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info(f"Order {order.id} status {previous_status} -> {order.status}")
    invalidator.invalidate_order(order.id)
    invalidator.invalidate_order_list()

    result = await dispatcher.notify_status_change(order, previous_status)
    if result.failed:
        logger.warning(f"Order {order.id}: status notification not delivered ({result.error})")
    return order
