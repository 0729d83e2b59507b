# app/api/deps.py
from fastapi import Depends
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.services.cart_service import CartService
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.payment_service import PaymentService
from app.services.paypal_client import PaypalClient
from app.services.token_cache import TokenCache
from app.services.user_service import UserService


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_paypal_client() -> PaypalClient:
    return PaypalClient(token_cache=TokenCache())


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(db)


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_order_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service),
) -> OrderService:
    return OrderService(db, notification_service=notifier)


def get_payment_service(
    db: Session = Depends(get_db),
    paypal: PaypalClient = Depends(get_paypal_client),
    notifier: NotificationService = Depends(get_notification_service),
) -> PaymentService:
    return PaymentService(db, paypal_client=paypal, notification_service=notifier)
