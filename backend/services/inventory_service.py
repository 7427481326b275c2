"""
Inventory ledger — stock checks, atomic decrements, cached product reads.

Stock and status are written together: `decrement_stock` issues a single
conditional UPDATE

    UPDATE products
       SET stock = stock - :q, status = CASE ... END
     WHERE id = :id AND stock >= :q

so two concurrent decrements can never both claim the same unit, and no
reader ever sees a stock value whose status disagrees with it. All functions
run on the caller's session, so a decrement participates in whatever
transaction the caller has open.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import Product, derive_stock_status
from domain.constants import CACHE_KEY_PRODUCTS_ALL
from domain.enums import StockStatus
from domain.errors import InsufficientStockError, ProductNotFoundError, ValidationError
from models import ProductResponse
from services.cache_service import ReadCache, product_key

logger = logging.getLogger(__name__)

__all__ = [
    "StockCheck",
    "derive_stock_status",
    "check_availability",
    "decrement_stock",
    "get_product",
    "list_products",
    "serialize_product",
]


@dataclass(frozen=True)
class StockCheck:
    """Outcome of an availability check. `found` is False for unknown products."""

    available: bool
    current_stock: int
    message: str
    product_id: int
    product_name: str | None = None
    found: bool = True


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Quantity must be positive", field="quantity")


def _status_after(quantity: int):
    """SQL expression for the status matching `stock - quantity`."""
    remaining = Product._stock - quantity
    return case(
        (remaining <= 0, StockStatus.OUT_OF_STOCK.value),
        (remaining <= settings.low_stock_threshold, StockStatus.LOW_STOCK.value),
        else_=StockStatus.IN_STOCK.value,
    )


async def check_availability(db: AsyncSession, product_id: int, quantity: int) -> StockCheck:
    """
    Check whether `quantity` units of a product are available.

    Never raises for a missing product: callers aggregate several checks
    before deciding whether to abort.
    """
    _require_positive(quantity)
    res = await db.execute(
        select(Product.name, Product._stock).where(Product.id == product_id)
    )
    row = res.one_or_none()
    if row is None:
        return StockCheck(
            available=False,
            current_stock=0,
            message=f"Product {product_id} not found",
            product_id=product_id,
            found=False,
        )

    name, stock = row
    if stock < quantity:
        return StockCheck(
            available=False,
            current_stock=stock,
            message=f"Insufficient stock for {name}: {stock} available, {quantity} requested",
            product_id=product_id,
            product_name=name,
        )
    return StockCheck(
        available=True,
        current_stock=stock,
        message="Stock available",
        product_id=product_id,
        product_name=name,
    )


async def decrement_stock(db: AsyncSession, product_id: int, quantity: int) -> int:
    """
    Atomically remove `quantity` units from a product's stock.

    Returns:
        The new stock value.

    Raises:
        ProductNotFoundError: the product does not exist.
        InsufficientStockError: fewer than `quantity` units remain.
    """
    _require_positive(quantity)
    res = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product._stock >= quantity)
        .values({
            Product._stock: Product._stock - quantity,
            Product._status: _status_after(quantity),
        })
        .execution_options(synchronize_session=False)
    )

    if res.rowcount == 0:
        # Re-read the live row to tell "missing" apart from "not enough"
        check = await check_availability(db, product_id, quantity)
        if not check.found:
            raise ProductNotFoundError(product_id)
        logger.warning(
            f"Stock rejected for product {product_id}: "
            f"{check.current_stock} available, {quantity} requested"
        )
        raise InsufficientStockError(
            product_id=product_id,
            product_name=check.product_name,
            available=check.current_stock,
            requested=quantity,
        )

    new_stock = (
        await db.execute(select(Product._stock).where(Product.id == product_id))
    ).scalar_one()
    logger.debug(f"Product {product_id} stock -{quantity} -> {new_stock}")
    return new_stock


# ── Cached reads ────────────────────────────────────────────────────

def serialize_product(product: Product) -> dict:
    return ProductResponse.model_validate(product).model_dump(mode="json")


async def get_product(db: AsyncSession, product_id: int, cache: ReadCache) -> dict:
    """Product snapshot, served through the read cache."""

    async def _load():
        product = await db.get(Product, product_id)
        return serialize_product(product) if product else None

    data = await cache.get_or_load(product_key(product_id), _load)
    if data is None:
        raise ProductNotFoundError(product_id)
    return data


async def list_products(
    db: AsyncSession,
    cache: ReadCache,
    *,
    include_out_of_stock: bool = False,
) -> list[dict]:
    """
    Catalog listing, newest first, served through the read cache.

    The cached entry always holds every product; out-of-stock products are
    filtered on the way out for storefront reads.
    """

    async def _load():
        res = await db.execute(select(Product).order_by(Product.created_at.desc(), Product.id.desc()))
        return [serialize_product(p) for p in res.scalars().all()]

    products = await cache.get_or_load(CACHE_KEY_PRODUCTS_ALL, _load) or []
    if include_out_of_stock:
        return list(products)
    return [p for p in products if p["status"] != StockStatus.OUT_OF_STOCK.value]
