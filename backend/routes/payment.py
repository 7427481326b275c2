"""
Payment endpoints — turn a verified payment into an order.

The payment-provider integration calls these after it has verified the
payment; no provider calls happen here.
"""

import logging
from fastapi import APIRouter, Depends

from deps import get_coordinator
from domain.errors import NotFoundError
from domain.responses import success_response
from models import OrderResponse, PaymentConfirmation
from services.fulfillment_service import FulfillmentCoordinator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/payment", tags=["payment"])


def _order_payload(order) -> dict:
    return OrderResponse.model_validate(order).model_dump(by_alias=True, mode="json")


@router.post("/create-order")
async def create_order_from_payment(
    request: PaymentConfirmation,
    coordinator: FulfillmentCoordinator = Depends(get_coordinator),
):
    # Redelivered webhooks usually stop here
    existing = await coordinator.find_by_payment_reference(request.payment_reference)
    if existing is not None:
        return success_response(data=_order_payload(existing), meta={"created": False})

    order = await coordinator.create_order_from_payment(request)
    return success_response(data=_order_payload(order))


@router.get("/orders/{payment_reference}")
async def get_order_by_payment(
    payment_reference: str,
    coordinator: FulfillmentCoordinator = Depends(get_coordinator),
):
    order = await coordinator.find_by_payment_reference(payment_reference)
    if order is None:
        raise NotFoundError("Order for payment", payment_reference)
    return success_response(data=_order_payload(order))
