#app/api/routers/carts.py
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_cart_service
from app.domain.schemas import CartOut, ItemIn, ItemUpdateIn
from app.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"])


@router.get("/", response_model=CartOut)
def get_cart(
    user_id: int = Query(...),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(...),
    svc: CartService = Depends(get_cart_service),
):
    return svc.add_item(
        user_id=user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
    )


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: ItemUpdateIn,
    user_id: int = Query(...),
    svc: CartService = Depends(get_cart_service),
):
    return svc.update_item(user_id, item_id, payload.quantity)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user_id: int = Query(...),
    svc: CartService = Depends(get_cart_service),
):
    return svc.remove_item(user_id, item_id)


@router.delete("/", response_model=CartOut)
def clear_cart(
    user_id: int = Query(...),
    svc: CartService = Depends(get_cart_service),
):
    return svc.clear_cart(user_id)
