# app/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_order_service
from app.domain.schemas import OrderCreate, OrderOut, OrderStatusUpdate
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("/", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    """
    Places an order from the submitted lines, or from the caller's cart when
    order_items is omitted. Stock is taken in the same transaction.
    """
    return svc.place_order(user_id, payload)


@router.get("/", response_model=List[OrderOut])
def list_my_orders(
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_user_orders(user_id)


@router.get("/admin/all", response_model=List[OrderOut])
def list_all_orders(
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_all_orders(user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    return svc.get_order(order_id, user_id)


@router.put("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(
    order_id: int,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    return svc.cancel_order(order_id, user_id)


@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    user_id: int = Query(...),
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_status(order_id, user_id, payload.status)
