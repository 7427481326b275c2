"""
Order fulfillment coordinator — turns a verified payment into exactly one order.

Flow for create_order_from_payment():
    1. Advisory lookup by payment reference → return the existing order.
    2. Pre-validation of every line item (fail fast, no transaction opened).
    3. One transaction: insert the order row and flush (a duplicate payment
       reference fails here, before any stock is touched), decrement stock
       per item (an unknown product fails here), insert the item snapshots,
       commit.
    4. After commit: invalidate read caches, dispatch notifications.

Step 2 is only an optimization. Correctness comes from step 3: the
conditional decrement rejects oversold items and the unique constraint on
payment_reference rejects a second order for the same payment. A commit that
loses the uniqueness race yields ConflictExisting and the winner's order is
returned instead.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from db_models import Customer, Order, OrderItem
from domain.enums import OrderStatus, PaymentStatus
from domain.errors import InsufficientStockError, NotFoundError, ProductNotFoundError, TransactionFailedError
from models import PaymentConfirmation, PaymentLineItem
from services import idempotency_service, inventory_service
from services.cache_service import CacheInvalidator, get_read_cache
from services.notification_service import NotificationDispatcher, NotificationResult, get_notification_dispatcher

logger = logging.getLogger(__name__)


# ── Commit outcomes ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Committed:
    order: Order


@dataclass(frozen=True)
class ConflictExisting:
    payment_reference: str


CommitOutcome = Committed | ConflictExisting


def _requested_quantities(items: list[PaymentLineItem]) -> dict[int, int]:
    """Total quantity per product, in first-seen order."""
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _items_total(items: list[PaymentLineItem]) -> Decimal:
    return sum((Decimal(i.unit_price) * i.quantity for i in items), Decimal("0"))


class FulfillmentCoordinator:
    """
    Orchestrates one fulfillment attempt per call.

    Collaborators are injected: a session factory (each attempt gets its own
    sessions), the cache invalidator and the notification dispatcher.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        invalidator: CacheInvalidator,
        dispatcher: NotificationDispatcher,
        *,
        precheck_enabled: bool | None = None,
        notify_in_background: bool | None = None,
        payment_method: str | None = None,
    ):
        self._session_factory = session_factory
        self._invalidator = invalidator
        self._dispatcher = dispatcher
        self.precheck_enabled = (
            settings.fulfillment_precheck_enabled if precheck_enabled is None else precheck_enabled
        )
        self.notify_in_background = (
            settings.notifications_in_background if notify_in_background is None else notify_in_background
        )
        self.payment_method = payment_method or settings.payment_method
        self._pending: set[asyncio.Task] = set()

    # ── Public API ──────────────────────────────────────────────────

    async def find_by_payment_reference(self, payment_reference: str) -> Order | None:
        async with self._session_factory() as db:
            return await idempotency_service.find_by_payment_reference(db, payment_reference)

    async def create_order_from_payment(self, payment: PaymentConfirmation) -> Order:
        """
        Create the order for a verified payment, or return the one that exists.

        Raises:
            InsufficientStockError: an item cannot be covered; nothing written.
            ProductNotFoundError: an item references an unknown product.
            NotFoundError: customer_id does not match a customer.
            TransactionFailedError: the datastore failed mid-transaction.
        """
        reference = payment.payment_reference

        existing = await self._find_existing(reference)
        if existing is not None:
            logger.info(f"Order {existing.id} already exists for payment {reference}, returning it")
            return existing

        if self.precheck_enabled:
            await self._prevalidate(payment)

        outcome = await self._commit(payment)
        if isinstance(outcome, ConflictExisting):
            return await self._resolve_conflict(outcome)

        order = outcome.order
        logger.info(
            f"Order {order.id} created for payment {reference} "
            f"({len(order.items)} item(s), total {order.total})"
        )
        self._invalidate(order)
        await self._dispatch(order)
        return order

    async def drain(self) -> None:
        """Wait for background notification tasks (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Steps ───────────────────────────────────────────────────────

    async def _find_existing(self, payment_reference: str) -> Order | None:
        return await self.find_by_payment_reference(payment_reference)

    async def _prevalidate(self, payment: PaymentConfirmation) -> None:
        async with self._session_factory() as db:
            for product_id, quantity in _requested_quantities(payment.items).items():
                check = await inventory_service.check_availability(db, product_id, quantity)
                if check.available:
                    continue
                if not check.found:
                    raise ProductNotFoundError(product_id)
                logger.warning(f"Payment {payment.payment_reference} rejected before commit: {check.message}")
                raise InsufficientStockError(
                    product_id=product_id,
                    product_name=check.product_name,
                    available=check.current_stock,
                    requested=quantity,
                )

    async def _commit(self, payment: PaymentConfirmation) -> CommitOutcome:
        declared = Decimal(payment.amount)
        computed = _items_total(payment.items)
        if declared != computed:
            logger.warning(
                f"Payment {payment.payment_reference} amount {declared} "
                f"differs from item total {computed}; keeping the paid amount"
            )

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    customer = None
                    if payment.customer_id is not None:
                        customer = await db.get(Customer, payment.customer_id)
                        if customer is None:
                            raise NotFoundError("Customer", str(payment.customer_id))

                    now = datetime.now(timezone.utc)
                    order = Order(
                        payment_reference=payment.payment_reference,
                        total=declared,
                        payment_status=PaymentStatus.SUCCEEDED.value,
                        payment_method=self.payment_method,
                        status=OrderStatus.PROCESSING.value,
                        customer=customer,
                        customer_email=payment.customer_email,
                        customer_name=payment.customer_name,
                        ordered_at=now,
                        updated_at=now,
                        items=[],
                    )
                    db.add(order)
                    # Surface a duplicate payment reference before touching stock
                    await db.flush()

                    for item in payment.items:
                        await inventory_service.decrement_stock(db, item.product_id, item.quantity)

                    # Every product exists once its decrement succeeded
                    order.items.extend(
                        OrderItem(
                            product_id=item.product_id,
                            quantity=item.quantity,
                            unit_price=Decimal(item.unit_price),
                        )
                        for item in payment.items
                    )
                    await db.flush()
        except IntegrityError as e:
            if idempotency_service.is_duplicate_payment(e):
                logger.info(f"Payment {payment.payment_reference} lost the commit race")
                return ConflictExisting(payment.payment_reference)
            logger.error(f"Order transaction failed for payment {payment.payment_reference}: {e}")
            raise TransactionFailedError(
                f"Order transaction failed for payment {payment.payment_reference}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Order transaction failed for payment {payment.payment_reference}: {e}")
            raise TransactionFailedError(
                f"Order transaction failed for payment {payment.payment_reference}"
            ) from e

        return Committed(order)

    async def _resolve_conflict(self, outcome: ConflictExisting) -> Order:
        order = await self.find_by_payment_reference(outcome.payment_reference)
        if order is None:
            raise TransactionFailedError(
                f"Duplicate payment {outcome.payment_reference} reported but no order found"
            )
        logger.info(f"Returning order {order.id} created by a concurrent attempt for {outcome.payment_reference}")
        return order

    def _invalidate(self, order: Order) -> None:
        for product_id in {item.product_id for item in order.items}:
            self._invalidator.invalidate_product(product_id)
        self._invalidator.invalidate_product_list()
        self._invalidator.invalidate_order(order.id)
        self._invalidator.invalidate_order_list()

    async def _dispatch(self, order: Order) -> None:
        if not self.notify_in_background:
            await self._send_notifications(order)
            return
        task = asyncio.create_task(self._send_notifications(order))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_notifications(self, order: Order) -> list[NotificationResult]:
        results = [
            await self._dispatcher.notify_customer(order),
            await self._dispatcher.notify_operator(order),
        ]
        for result in results:
            if result.failed:
                logger.warning(
                    f"Order {order.id}: {result.kind} to {result.recipient} not delivered ({result.error})"
                )
        return results


# Singleton coordinator instance
_coordinator: FulfillmentCoordinator | None = None


def get_fulfillment_coordinator() -> FulfillmentCoordinator:
    global _coordinator
    if _coordinator is None:
        from database import async_session

        _coordinator = FulfillmentCoordinator(
            async_session,
            CacheInvalidator(get_read_cache()),
            get_notification_dispatcher(),
        )
    return _coordinator
