# app/api/routers/users.py
from fastapi import APIRouter, Depends

from app.api.deps import get_user_service
from app.domain.schemas import UserCreate, UserRead
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/", response_model=UserRead)
def register_user(payload: UserCreate, svc: UserService = Depends(get_user_service)):
    return svc.create_user(payload)


@router.get("/{user_id}", response_model=UserRead)
def read_user(user_id: int, svc: UserService = Depends(get_user_service)):
    return svc.get_user(user_id)
