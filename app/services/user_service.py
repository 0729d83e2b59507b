# app/services/user_service.py
from sqlalchemy.orm import Session

from app.data.models.user import UserModel
from app.domain.enums import Role
from app.domain.errors import NotFound
from app.domain.schemas import UserCreate, UserRead
from app.repos.user_repo import UserRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.repo = UserRepo(db)

    def create_user(self, payload: UserCreate) -> UserRead:
        # registering an existing id returns the stored user unchanged
        existing = self.repo.get_user(payload.id)
        if existing:
            return UserRead.model_validate(existing)

        created = self.repo.create_user(
            UserModel(id=payload.id, name=payload.name, role=payload.role.value)
        )
        logger.info(f"Registered user {created.id} as {created.role}")
        return UserRead.model_validate(created)

    def get_user(self, user_id: int) -> UserRead:
        user = self.repo.get_user(user_id)
        if not user:
            raise NotFound(f"User {user_id} not found")
        return UserRead.model_validate(user)

    def is_admin(self, user_id: int) -> bool:
        return self.repo.get_role(user_id) == Role.ADMIN.value
