"""
Pytest configuration and shared fixtures for the order fulfillment tests.

Provides a file-backed SQLite database per test (so concurrent sessions are
real connections with real locking), a coordinator wired to a recording
notifier, and small factories for products, customers and payments.
"""
import pytest
from decimal import Decimal
from typing import AsyncGenerator

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import db_models  # noqa: F401  (registers tables on Base.metadata)
from database import Base, build_engine, build_session_factory
from db_models import Customer, Product
from exceptions import NotificationDeliveryError
from models import PaymentConfirmation
from services.cache_service import CacheInvalidator, ReadCache
from services.fulfillment_service import FulfillmentCoordinator
from services.notification_service import NotificationDispatcher


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def engine(tmp_path):
    """Fresh SQLite database file for each test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'orders_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Collaborator Fixtures ────────────────────────────────────────────


class RecordingNotifier:
    """Notifier that records messages; kinds in `fail_kinds` raise instead."""

    def __init__(self, fail_kinds=()):
        self.sent = []
        self.fail_kinds = set(fail_kinds)

    async def send(self, notification) -> None:
        if notification.kind in self.fail_kinds:
            raise NotificationDeliveryError(f"relay rejected {notification.kind}")
        self.sent.append(notification)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier, operator_email="ops@example.com", timeout_seconds=1.0)


@pytest.fixture
def read_cache() -> ReadCache:
    return ReadCache(ttl_seconds=60)


@pytest.fixture
def invalidator(read_cache) -> CacheInvalidator:
    return CacheInvalidator(read_cache)


@pytest.fixture
def coordinator(session_factory, invalidator, dispatcher) -> FulfillmentCoordinator:
    return FulfillmentCoordinator(
        session_factory,
        invalidator,
        dispatcher,
        precheck_enabled=True,
        notify_in_background=False,
        payment_method="stripe",
    )


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest.fixture
def make_product(session_factory):
    """Insert a product and return it (detached, attributes loaded)."""

    async def _make(name: str = "Ethiopian Yirgacheffe", stock: int = 20, price: str = "12.50") -> Product:
        async with session_factory() as db:
            product = Product(name=name, price=Decimal(price), stock=stock)
            db.add(product)
            await db.commit()
            return product

    return _make


@pytest.fixture
def make_customer(session_factory):
    async def _make(email: str = "buyer@example.com", name: str = "Test Buyer") -> Customer:
        async with session_factory() as db:
            customer = Customer(email=email, name=name)
            db.add(customer)
            await db.commit()
            return customer

    return _make


@pytest.fixture
def read_stock(session_factory):
    """Current (stock, status) of a product, read in a fresh session."""

    async def _read(product_id: int) -> tuple[int, str]:
        async with session_factory() as db:
            res = await db.execute(
                select(Product.stock, Product.status).where(Product.id == product_id)
            )
            stock, status = res.one()
            return stock, status

    return _read


@pytest.fixture
def make_payment():
    """Build a PaymentConfirmation; `lines` is [(product, quantity), ...]."""

    def _make(reference: str, lines, **extra) -> PaymentConfirmation:
        items = [
            {"productId": product.id, "quantity": quantity, "unitPrice": str(product.price)}
            for product, quantity in lines
        ]
        amount = sum((Decimal(product.price) * quantity for product, quantity in lines), Decimal("0"))
        return PaymentConfirmation(paymentReference=reference, amount=amount, items=items, **extra)

    return _make
