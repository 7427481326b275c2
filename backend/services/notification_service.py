"""
Notification dispatcher — best-effort messages sent after an order commits.

Every public method returns a `NotificationResult` and never raises: a slow
or broken transport must not unwind or delay a committed order. Sends are
bounded by NOTIFICATION_TIMEOUT_SECONDS and attempted once (no retry).

Transports:
    LogNotifier      — writes the message to the application log (default)
    WebhookNotifier  — POSTs the message as JSON to NOTIFICATION_WEBHOOK_URL;
                       an e-mail relay behind the webhook does the delivery
"""
import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import httpx

from config import settings
from db_models import Order
from exceptions import NotificationDeliveryError, NotifierNotConfiguredError

logger = logging.getLogger(__name__)

KIND_ORDER_CONFIRMATION = "order_confirmation"
KIND_NEW_ORDER_ALERT = "new_order_alert"
KIND_STATUS_UPDATE = "status_update"


@dataclass(frozen=True)
class Notification:
    kind: str
    recipient: str
    subject: str
    body: str
    order_id: int


@dataclass(frozen=True)
class NotificationResult:
    """Typed outcome of a send; the caller logs it and carries on."""

    kind: str
    recipient: str | None
    delivered: bool
    skipped: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        return not self.delivered and not self.skipped


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None: ...


class LogNotifier:
    """Development transport: logs instead of delivering."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            f"[{notification.kind}] to={notification.recipient} "
            f"subject={notification.subject!r}"
        )


class WebhookNotifier:
    """Hands messages to an HTTP relay."""

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        if not url:
            raise NotifierNotConfiguredError("NOTIFICATION_WEBHOOK_URL is not set")
        self.url = url
        self.timeout_seconds = timeout_seconds

    async def send(self, notification: Notification) -> None:
        payload = {
            "kind": notification.kind,
            "to": notification.recipient,
            "subject": notification.subject,
            "body": notification.body,
            "orderId": notification.order_id,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(f"Webhook delivery failed: {e}") from e


def build_notifier() -> Notifier:
    """Transport selected by NOTIFICATION_TRANSPORT."""
    if settings.notification_transport == "webhook":
        return WebhookNotifier(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return LogNotifier()


# ── Message composition ─────────────────────────────────────────────

def _format_lines(order: Order) -> str:
    lines = []
    for item in order.items:
        lines.append(
            f"  - product #{item.product_id} x{item.quantity} @ {Decimal(item.unit_price):.2f}"
        )
    return "\n".join(lines)


def _confirmation_message(order: Order, recipient: str) -> Notification:
    body = (
        f"Thank you for your order #{order.id}.\n\n"
        f"Items:\n{_format_lines(order)}\n\n"
        f"Total: {Decimal(order.total):.2f}\n"
        f"Status: {order.status}\n"
    )
    return Notification(
        kind=KIND_ORDER_CONFIRMATION,
        recipient=recipient,
        subject=f"Order #{order.id} confirmed",
        body=body,
        order_id=order.id,
    )


def _operator_message(order: Order, recipient: str) -> Notification:
    buyer = order.notification_email or "guest"
    body = (
        f"New order #{order.id} from {buyer}.\n"
        f"Payment reference: {order.payment_reference}\n\n"
        f"Items:\n{_format_lines(order)}\n\n"
        f"Total: {Decimal(order.total):.2f}\n"
    )
    return Notification(
        kind=KIND_NEW_ORDER_ALERT,
        recipient=recipient,
        subject=f"New order #{order.id}",
        body=body,
        order_id=order.id,
    )


def _status_message(order: Order, recipient: str, previous_status: str) -> Notification:
    return Notification(
        kind=KIND_STATUS_UPDATE,
        recipient=recipient,
        subject=f"Order #{order.id} is now {order.status}",
        body=f"Your order #{order.id} changed from {previous_status} to {order.status}.\n",
        order_id=order.id,
    )


# ── Dispatcher ──────────────────────────────────────────────────────

class NotificationDispatcher:
    """Sends order notifications; each call either delivers or logs and returns."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        *,
        operator_email: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self._notifier = notifier if notifier is not None else build_notifier()
        self.operator_email = operator_email if operator_email is not None else settings.operator_email
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.notification_timeout_seconds
        )

    async def notify_customer(self, order: Order) -> NotificationResult:
        """Order confirmation to the buyer; skipped when no e-mail is known."""
        recipient = order.notification_email
        if not recipient:
            return NotificationResult(kind=KIND_ORDER_CONFIRMATION, recipient=None, delivered=False, skipped=True)
        return await self._deliver(_confirmation_message(order, recipient))

    async def notify_operator(self, order: Order) -> NotificationResult:
        """New-order alert to the fulfillment operator."""
        if not self.operator_email:
            return NotificationResult(kind=KIND_NEW_ORDER_ALERT, recipient=None, delivered=False, skipped=True)
        return await self._deliver(_operator_message(order, self.operator_email))

    async def notify_status_change(self, order: Order, previous_status: str) -> NotificationResult:
        recipient = order.notification_email
        if not recipient:
            return NotificationResult(kind=KIND_STATUS_UPDATE, recipient=None, delivered=False, skipped=True)
        return await self._deliver(_status_message(order, recipient, previous_status))

    async def _deliver(self, notification: Notification) -> NotificationResult:
        try:
            await asyncio.wait_for(self._notifier.send(notification), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                f"Notification {notification.kind} for order {notification.order_id} "
                f"timed out after {self.timeout_seconds}s"
            )
            return NotificationResult(
                kind=notification.kind,
                recipient=notification.recipient,
                delivered=False,
                error=f"timed out after {self.timeout_seconds}s",
            )
        except Exception as e:
            logger.error(
                f"Notification {notification.kind} for order {notification.order_id} failed: {e}"
            )
            return NotificationResult(
                kind=notification.kind,
                recipient=notification.recipient,
                delivered=False,
                error=str(e),
            )
        return NotificationResult(kind=notification.kind, recipient=notification.recipient, delivered=True)


# Singleton dispatcher instance
_dispatcher: NotificationDispatcher | None = None


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
