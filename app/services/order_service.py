# app/services/order_service.py
from collections import OrderedDict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.domain.enums import OrderStatus, STATUS_FLOW
from app.domain.errors import (
    Conflict,
    Forbidden,
    InsufficientStock,
    InvalidArgument,
    InvalidState,
    NotFound,
    Unavailable,
)
from app.domain.pricing import line_total, to_money
from app.domain.schemas import OrderCreate
from app.repos.cart_repo import CartRepo
from app.repos.order_repo import OrderRepo
from app.repos.product_repo import ProductRepo
from app.services.notification_service import NotificationService
from app.services.user_service import UserService
from app.utils.logging import get_logger

logger = get_logger(__name__)


class _LostRace(Exception):
    """A guarded write inside the order transaction matched no row."""


def serialize_order(order: OrderModel) -> Dict[str, Any]:
    payment_result = None
    if order.payment_id:
        payment_result = {
            "id": order.payment_id,
            "status": order.payment_status,
            "update_time": order.payment_update_time,
            "email_address": order.payment_email,
        }

    return {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "items": [
            {
                "product_id": i.product_id,
                "name": i.name,
                "quantity": i.quantity,
                "price": i.price,
                "total_price": i.total_price,
            }
            for i in order.items
        ],
        "shipping_address": {
            "address": order.shipping_address,
            "city": order.shipping_city,
            "postal_code": order.shipping_postal_code,
            "country": order.shipping_country,
            "state": order.shipping_state,
        },
        "payment_method": order.payment_method,
        "shipping_method": order.shipping_method,
        "shipping_price": order.shipping_price,
        "total": order.total,
        "is_paid": order.is_paid,
        "paid_at": order.paid_at,
        "is_shipped": order.is_shipped,
        "shipped_at": order.shipped_at,
        "is_delivered": order.is_delivered,
        "delivered_at": order.delivered_at,
        "payment_provider_order_id": order.payment_provider_order_id,
        "payment_result": payment_result,
        "created_at": order.created_at,
    }


class OrderService:
    """
    Order domain: placement, cancellation, queries and status administration.

    Placement and cancellation move product stock in the same transaction as
    the order rows, so an order and its stock effect are visible together or
    not at all.
    """

    def __init__(self, db: Session, notification_service: NotificationService | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.products = ProductRepo(db)
        self.carts = CartRepo(db)
        self.users = UserService(db)
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # COMMANDS
    # =====================================================
    def place_order(self, user_id: int, payload: OrderCreate) -> Dict[str, Any]:
        """
        Use case: place an order.

        1. collects the lines (payload or the caller's cart)
        2. validates every product before touching anything
        3. verifies the declared total against the snapshot prices
        4. creates order + items and decrements stock in one transaction
        """
        from_cart = not payload.order_items
        cart = None
        if from_cart:
            cart = self.carts.get_cart_by_user(user_id)
            requested = self._merge_lines(
                (i.product_id, i.quantity) for i in (self.carts.get_cart_items(cart.id) if cart else [])
            )
        else:
            requested = self._merge_lines((i.product_id, i.quantity) for i in payload.order_items)

        if not requested:
            raise InvalidArgument("No order items")

        # validation pass, no writes yet
        lines = []
        for product_id, quantity in requested.items():
            product = self.products.get_product(product_id)
            if not product:
                raise NotFound(f"Product not found: {product_id}")
            if not product.is_published:
                raise Unavailable(f"Product not available: {product.name}")
            if product.stock_quantity < quantity:
                raise InsufficientStock(f"Insufficient stock for product: {product.name}")
            lines.append((product, quantity))

        items_total = sum((line_total(q, p.price) for p, q in lines), Decimal("0.00"))
        expected_total = to_money(items_total + payload.shipping_price)
        if to_money(payload.total_price) != expected_total:
            raise InvalidArgument(
                f"Declared total {to_money(payload.total_price)} does not match "
                f"computed total {expected_total}"
            )

        address = payload.shipping_address
        order = OrderModel(
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            shipping_address=address.address,
            shipping_city=address.city,
            shipping_postal_code=address.postal_code,
            shipping_country=address.country,
            shipping_state=address.state,
            payment_method=payload.payment_method,
            shipping_method=payload.shipping_method,
            shipping_price=to_money(payload.shipping_price),
            total=expected_total,
            is_paid=False,
            items=[
                OrderItemModel(
                    product_id=product.id,
                    name=product.name,
                    quantity=quantity,
                    price=product.price,
                    total_price=line_total(quantity, product.price),
                )
                for product, quantity in lines
            ],
        )

        try:
            created_order = self.repo.create_order(order)

            # ascending product id, two racing orders lock rows in the same order
            for product, quantity in sorted(lines, key=lambda line: line[0].id):
                if not self.products.decrement_stock(product.id, quantity):
                    raise _LostRace(product.id)

            if from_cart:
                self.carts.delete_cart_items(cart.id)
                if self.carts.save_total(cart, Decimal("0.00")) == 0:
                    raise _LostRace(f"cart {cart.id}")

            self.repo.commit()
        except (_LostRace, IntegrityError) as e:
            self.repo.rollback()
            logger.warning(f"Order placement for user {user_id} lost a race: {e!r}")
            raise Conflict("Stock or cart changed while placing the order, please retry") from e

        logger.info(
            f"Order {created_order.id} placed by user {user_id}: "
            f"{len(lines)} lines, total {expected_total}"
        )
        self.notification_service.send_order_notification(user_id, created_order.id, "placed")

        return serialize_order(self._load(created_order.id))

    def cancel_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        """
        Use case: cancel an order (owner or admin).
        Restores the stock taken at placement, shipped/delivered orders stay as they are.
        """
        order = self._load(order_id)
        self._ensure_owner_or_admin(order, user_id, "cancel")

        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidState("Order is already cancelled")
        if order.is_shipped or order.is_delivered:
            raise InvalidState("Cannot cancel an order that has been shipped or delivered")

        items = [(i.product_id, i.quantity) for i in order.items]

        # guarded on "not cancelled, not shipped, not delivered"
        if self.repo.mark_cancelled(order_id) == 0:
            self.repo.rollback()
            raise InvalidState("Order can no longer be cancelled")

        for product_id, quantity in items:
            self.products.increment_stock(product_id, quantity)

        self.repo.commit()

        logger.info(f"Order {order_id} cancelled by user {user_id}, stock restored for {len(items)} lines")
        self.notification_service.send_order_notification(order.user_id, order_id, "cancelled")

        return serialize_order(self._load(order_id))

    def update_status(self, order_id: int, user_id: int, status: OrderStatus) -> Dict[str, Any]:
        """
        Use case: admin moves an order forward (PENDING -> PROCESSING -> SHIPPED -> DELIVERED).
        """
        if not self.users.is_admin(user_id):
            raise Forbidden("You do not have permission to perform this action")

        order = self._load(order_id)
        status = OrderStatus(status)

        if status == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, user_id)

        current = OrderStatus(order.status)
        if current == OrderStatus.CANCELLED:
            raise InvalidState("Cancelled orders cannot change status")
        if STATUS_FLOW.index(status) < STATUS_FLOW.index(current):
            raise InvalidState(f"Cannot move order from {current.value} back to {status.value}")

        now = datetime.now(timezone.utc)
        values = {"status": status.value, "updated_at": now}
        if status in (OrderStatus.SHIPPED, OrderStatus.DELIVERED) and not order.is_shipped:
            values.update(is_shipped=True, shipped_at=now)
        if status == OrderStatus.DELIVERED and not order.is_delivered:
            values.update(is_delivered=True, delivered_at=now)

        # guarded on the status read above, a concurrent cancel wins
        if self.repo.advance_status(order_id, current.value, values) == 0:
            self.repo.rollback()
            raise InvalidState(f"Order {order_id} changed while updating its status, reload and retry")

        self.repo.commit()
        logger.info(f"Order {order_id} status {current.value} -> {status.value}")

        return serialize_order(self._load(order_id))

    # =====================================================
    # QUERIES
    # =====================================================
    def get_order(self, order_id: int, user_id: int) -> Dict[str, Any]:
        order = self._load(order_id)
        self._ensure_owner_or_admin(order, user_id, "access")
        return serialize_order(order)

    def list_user_orders(self, user_id: int) -> List[Dict[str, Any]]:
        return [serialize_order(o) for o in self.repo.list_orders_by_user(user_id)]

    def list_all_orders(self, user_id: int) -> List[Dict[str, Any]]:
        if not self.users.is_admin(user_id):
            raise Forbidden("You do not have permission to perform this action")
        return [serialize_order(o) for o in self.repo.list_orders()]

    # helpers
    def _load(self, order_id: int) -> OrderModel:
        order = self.repo.get_order(order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def _ensure_owner_or_admin(self, order: OrderModel, user_id: int, action: str) -> None:
        if order.user_id != user_id and not self.users.is_admin(user_id):
            raise Forbidden(f"Not authorized to {action} this order")

    @staticmethod
    def _merge_lines(pairs) -> "OrderedDict[int, int]":
        merged: "OrderedDict[int, int]" = OrderedDict()
        for product_id, quantity in pairs:
            merged[product_id] = merged.get(product_id, 0) + quantity
        return merged
