# app/api/__init__.py
from fastapi import FastAPI
from app.api.errors import register_error_handlers
from app.api.routers import carts, health, orders, paypal, users
from app.utils import settings
from app.utils.logging import get_logger

logger = get_logger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Shop Service",
        version="1.0.0",
    )

    if not settings.PAYPAL_WEBHOOK_ID:
        logger.warning(
            "PAYPAL_WEBHOOK_ID is not set: PayPal webhook signatures are NOT verified, "
            "any caller can report a capture as completed"
        )

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(carts.router)
    # paypal first: /orders/confirm and /orders/cancel must win over /orders/{order_id}
    app.include_router(paypal.router)
    app.include_router(orders.router)

    return app
