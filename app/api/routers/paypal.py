# app/api/routers/paypal.py
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.api.deps import get_payment_service
from app.domain.schemas import PaymentInitOut, PaypalWebhookEvent
from app.services.payment_service import PaymentService

router = APIRouter(prefix="/orders", tags=["paypal"])


@router.post("/webhook/paypal")
def paypal_webhook(
    event: PaypalWebhookEvent,
    request: Request,
    svc: PaymentService = Depends(get_payment_service),
):
    """
    Server to server push from PayPal. Events other than a completed capture
    are acknowledged with 200 so PayPal stops redelivering them.
    """
    svc.handle_webhook(event, headers=dict(request.headers))
    return {"success": True}


@router.get("/confirm")
def paypal_confirm(
    token: str | None = Query(None),
    svc: PaymentService = Depends(get_payment_service),
):
    return RedirectResponse(svc.confirm(token), status_code=302)


@router.get("/cancel")
def paypal_cancel(
    token: str | None = Query(None),
    svc: PaymentService = Depends(get_payment_service),
):
    return RedirectResponse(svc.cancel(token), status_code=302)


@router.post("/{order_id}/paypal", response_model=PaymentInitOut)
def initiate_paypal_payment(
    order_id: int,
    user_id: int = Query(...),
    svc: PaymentService = Depends(get_payment_service),
):
    return svc.initiate(order_id, user_id)
