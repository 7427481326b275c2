"""
Pydantic models for request/response validation.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiBase(BaseModel):
    """Shared base — allows construction by Python name or alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Payment confirmation (inbound) ──────────────────────────────────

class PaymentLineItem(ApiBase):
    """One line of a verified payment: what was bought and at what price."""
    product_id: int = Field(..., alias="productId", gt=0)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., alias="unitPrice", ge=0)


class PaymentConfirmation(ApiBase):
    """
    Verified payment tuple handed over by the payment-provider integration.

    The payment reference is the idempotency key: one order per reference.
    """
    payment_reference: str = Field(..., alias="paymentReference", min_length=1, max_length=255)
    amount: Decimal = Field(..., ge=0)
    items: List[PaymentLineItem] = Field(..., min_length=1)
    customer_id: Optional[int] = Field(default=None, alias="customerId")
    customer_email: Optional[str] = Field(default=None, alias="customerEmail", max_length=255)
    customer_name: Optional[str] = Field(default=None, alias="customerName", max_length=200)

    @field_validator("payment_reference")
    @classmethod
    def _strip_reference(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("paymentReference must not be blank")
        return value


# ── Orders (outbound) ───────────────────────────────────────────────

class OrderItemResponse(ApiBase):
    product_id: int = Field(..., alias="productId")
    quantity: int
    unit_price: Decimal = Field(..., alias="unitPrice")


class OrderResponse(ApiBase):
    id: int
    payment_reference: Optional[str] = Field(default=None, alias="paymentReference")
    total: Decimal
    payment_status: str = Field(..., alias="paymentStatus")
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")
    status: str
    customer_id: Optional[int] = Field(default=None, alias="customerId")
    ordered_at: Optional[datetime] = Field(default=None, alias="orderedAt")
    items: List[OrderItemResponse]


class OrderStatusUpdateRequest(ApiBase):
    status: str = Field(..., min_length=1, max_length=30)


# ── Products (outbound) ─────────────────────────────────────────────

class ProductResponse(ApiBase):
    id: int
    name: str
    price: Decimal
    stock: int
    status: str


class StockCheckRequest(ApiBase):
    product_id: int = Field(..., alias="productId", gt=0)
    quantity: int = Field(..., gt=0)


class StockCheckResponse(ApiBase):
    available: bool
    current_stock: int = Field(..., alias="currentStock")
    message: str
