"""
SQLAlchemy ORM models for the order fulfillment service.

Tables:
    customers    — registered buyers (read-only here; supplies e-mail address)
    products     — inventory units with stock count and derived stock status
    orders       — one row per confirmed payment (payment_reference is unique)
    order_items  — quantity/price snapshots owned by an order
"""
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import relationship

from config import settings
from database import Base
from domain.constants import PAYMENT_REFERENCE_CONSTRAINT
from domain.enums import OrderStatus, PaymentStatus, StockStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_stock_status(stock: int) -> StockStatus:
    """
    Classify remaining inventory.

    0 → Out of Stock, 1..threshold → Low Stock, above threshold → In Stock.
    """
    if stock < 0:
        raise ValueError(f"Stock cannot be negative: {stock}")
    if stock == 0:
        return StockStatus.OUT_OF_STOCK
    if stock <= settings.low_stock_threshold:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class Customer(Base):
    """Registered customers. Guest orders carry no customer."""
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)
    created_at = Column(DateTime, default=_utcnow)

    orders = relationship("Order", back_populates="customer", lazy="select")


class Product(Base):
    """
    Inventory unit.

    `stock` and `status` are read-only attributes; `set_stock()` is the only
    mutator and recomputes `status` together with `stock`. Bulk decrements in
    services/inventory_service.py write both columns in one UPDATE.
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    _stock = Column("stock", Integer, nullable=False, default=0)
    _status = Column("status", String(20), nullable=False, default=StockStatus.OUT_OF_STOCK.value, index=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )

    def __init__(self, *, stock: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.set_stock(stock)

    @hybrid_property
    def stock(self) -> int:
        return self._stock

    @hybrid_property
    def status(self) -> str:
        return self._status

    def set_stock(self, value: int) -> None:
        """Set the stock count and the status derived from it."""
        status = derive_stock_status(value)
        self._stock = value
        self._status = status.value


class Order(Base):
    """Order created from a confirmed payment."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_reference = Column(String(255), nullable=True)  # external payment id (idempotency key)
    total = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String(30), nullable=True)
    status = Column(String(30), nullable=False, default=OrderStatus.PROCESSING.value, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    customer_email = Column(String(255), nullable=True)  # guest checkout
    customer_name = Column(String(200), nullable=True)
    ordered_at = Column(DateTime, default=_utcnow, index=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    customer = relationship("Customer", back_populates="orders", lazy="selectin")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("payment_reference", name=PAYMENT_REFERENCE_CONSTRAINT),
        # For order listings: newest first, optionally filtered by status
        Index("ix_orders_status_ordered", "status", "ordered_at"),
    )

    @property
    def notification_email(self) -> str | None:
        """Customer e-mail if registered, otherwise the guest e-mail."""
        if self.customer is not None and self.customer.email:
            return self.customer.email
        return self.customer_email


class OrderItem(Base):
    """Quantity and unit price captured when the order was fulfilled."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity
