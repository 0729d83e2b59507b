# app/services/payment_service.py
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.domain.enums import OrderStatus
from app.domain.errors import (
    AlreadyPaid,
    Forbidden,
    InvalidArgument,
    InvalidState,
    NotFound,
    PaymentProviderError,
)
from app.domain.schemas import PaymentResult, PaypalWebhookEvent
from app.repos.order_repo import OrderRepo
from app.services.notification_service import NotificationService
from app.services.paypal_client import PaypalClient
from app.utils.settings import FRONTEND_URL, PAYPAL_CURRENCY, PAYPAL_WEBHOOK_ID
from app.utils.logging import get_logger

logger = get_logger(__name__)

CAPTURE_COMPLETED_EVENT = "PAYMENT.CAPTURE.COMPLETED"


class PaymentService:
    """
    Drives an order through PayPal checkout.

    Three entry points can report the same payment: the capture done on the
    browser return (confirm), the server to server webhook and, for the
    cancel path, nothing at all. They all converge on mark_paid, which flips
    is_paid at most once. Stock is never touched here, it moved at placement.
    """

    def __init__(
        self,
        db: Session,
        paypal_client: PaypalClient,
        notification_service: NotificationService | None = None,
        currency: str = PAYPAL_CURRENCY,
        webhook_id: str | None = PAYPAL_WEBHOOK_ID,
    ):
        self.repo = OrderRepo(db)
        self.paypal = paypal_client
        self.notification_service = notification_service or NotificationService()
        self.currency = currency
        self.webhook_id = webhook_id

    def initiate(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFound("Order not found")
        if order.user_id != user_id:
            raise Forbidden("Not authorized to pay for this order")
        if order.is_paid:
            raise AlreadyPaid("Order is already paid")
        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidState("Cancelled orders cannot be paid")

        # raises PaymentProviderError, order is untouched in that case
        checkout = self.paypal.create_checkout_order(
            reference_id=str(order.id),
            amount=order.total,
            currency=self.currency,
        )

        # a repeated initiate creates a new PayPal order and replaces the stored id
        if order.payment_provider_order_id:
            logger.info(
                f"Order {order.id} already had PayPal order {order.payment_provider_order_id}, "
                f"replacing it with {checkout.provider_order_id}"
            )
        order.payment_method = "PayPal"
        order.payment_provider_order_id = checkout.provider_order_id
        self.repo.commit()

        logger.info(f"Payment initiated for order {order_id}, PayPal order {checkout.provider_order_id}")
        return {
            "order_id": order_id,
            "paypal_order_id": checkout.provider_order_id,
            "approval_url": checkout.approval_url,
        }

    def confirm(self, token: str | None) -> str:
        """Browser came back from PayPal approval. Returns the redirect target."""
        order = self._by_token(token)

        if order.status == OrderStatus.CANCELLED.value and not order.is_paid:
            # stock is already back on the shelf, do not take the money
            logger.warning(f"Order {order.id} was cancelled during checkout, skipping capture for {token}")
            return self.cancel_url(order.id)

        if order.is_paid:
            logger.info(f"Order {order.id} already paid, skipping capture for {token}")
            return self.success_url(order.id)

        capture = self.paypal.capture_order(token)
        if capture.status != "COMPLETED":
            logger.error(f"Capture for PayPal order {token} returned status {capture.status}")
            raise PaymentProviderError(f"PayPal capture not completed (status {capture.status})")

        self.mark_paid(
            order,
            PaymentResult(
                id=capture.payment_id,
                status=capture.status,
                update_time=capture.update_time,
                email_address=capture.payer_email,
            ),
        )
        return self.success_url(order.id)

    def cancel(self, token: str | None) -> str:
        """User aborted on PayPal. The order stays payable, nothing is written."""
        order = self._by_token(token)
        logger.info(f"Checkout {token} for order {order.id} cancelled by the user")
        return self.cancel_url(order.id)

    def handle_webhook(self, event: PaypalWebhookEvent, headers: dict | None = None) -> None:
        if self.webhook_id:
            # exclude_unset gives back the payload as PayPal sent it
            verified = self.paypal.verify_webhook_signature(
                headers or {},
                event.model_dump(exclude_unset=True),
                self.webhook_id,
            )
            if not verified:
                logger.warning(f"Rejected PayPal webhook {event.id}: signature verification failed")
                raise Forbidden("Webhook signature verification failed")

        if event.event_type != CAPTURE_COMPLETED_EVENT:
            logger.info(f"Ignoring PayPal webhook {event.id} of type {event.event_type}")
            return

        provider_order_id = event.provider_order_id
        if not provider_order_id:
            raise InvalidArgument("PayPal order ID not found in webhook")

        order = self.repo.get_order_by_provider_id(provider_order_id)
        if not order:
            raise NotFound("Order not found")

        if order.is_paid:
            logger.info(f"Webhook for already paid order {order.id}, nothing to do")
            return

        self.mark_paid(
            order,
            PaymentResult(
                id=event.resource.id or provider_order_id,
                status=event.resource.status or "COMPLETED",
                update_time=datetime.now(timezone.utc).isoformat(),
            ),
        )

    def mark_paid(self, order: OrderModel, result: PaymentResult) -> bool:
        """
        Idempotent: the update only matches an unpaid row, so repeated or
        concurrent confirm/webhook deliveries apply once. Returns True for the
        delivery that actually changed the order.
        """
        order_id = order.id
        user_id = order.user_id
        if order.status == OrderStatus.CANCELLED.value:
            logger.warning(f"Payment {result.id} captured for cancelled order {order_id}")

        rowcount = self.repo.mark_paid(order_id, result, datetime.now(timezone.utc))
        if rowcount == 0:
            self.repo.rollback()
            logger.info(f"Order {order_id} was already marked paid, payment {result.id} ignored")
            return False

        self.repo.commit()
        logger.info(f"Order {order_id} marked paid with payment {result.id} ({result.status})")
        self.notification_service.send_order_notification(user_id, order_id, "paid")
        return True

    @staticmethod
    def success_url(order_id: int) -> str:
        return f"{FRONTEND_URL}/orders/{order_id}/confirmation"

    @staticmethod
    def cancel_url(order_id: int) -> str:
        return f"{FRONTEND_URL}/orders/{order_id}/cancelled"

    def _by_token(self, token: str | None) -> OrderModel:
        if not token:
            raise InvalidArgument("PayPal token is required")
        order = self.repo.get_order_by_provider_id(token)
        if not order:
            raise NotFound("Order not found")
        return order
