"""
Idempotency guard — one order per external payment reference.

The lookup here is a fast path only. The authoritative guarantee is the
`uq_orders_payment_reference` constraint: when two attempts race past the
lookup, the loser's INSERT fails with an IntegrityError that
`is_duplicate_payment` recognises.
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from db_models import Order
from domain.constants import PAYMENT_REFERENCE_CONSTRAINT

logger = logging.getLogger(__name__)


async def find_by_payment_reference(db: AsyncSession, payment_reference: str) -> Order | None:
    """Return the order created for `payment_reference`, items and customer loaded."""
    res = await db.execute(
        select(Order)
        .where(Order.payment_reference == payment_reference)
        .options(selectinload(Order.items), selectinload(Order.customer))
    )
    return res.scalar_one_or_none()


def is_duplicate_payment(exc: IntegrityError) -> bool:
    """
    True if `exc` is a uniqueness violation on the payment reference.

    SQLite reports "UNIQUE constraint failed: orders.payment_reference";
    PostgreSQL names the constraint.
    """
    message = str(getattr(exc, "orig", None) or exc).lower()
    if PAYMENT_REFERENCE_CONSTRAINT in message:
        return True
    return "unique" in message and "payment_reference" in message
