# app/data/seed.py
from decimal import Decimal

from app.data.database import Base, SessionLocal, engine
from app.data.models import ProductModel, UserModel
from app.domain.enums import Role
from app.utils.logging import get_logger

logger = get_logger(__name__)

USERS = [
    {"id": 1, "name": "Admin", "role": Role.ADMIN.value},
    {"id": 2, "name": "Customer", "role": Role.CUSTOMER.value},
]

PRODUCTS = [
    {"id": 1, "name": "Keyboard", "price": Decimal("199.99"), "stock_quantity": 25},
    {"id": 2, "name": "Mouse", "price": Decimal("49.50"), "stock_quantity": 100},
    {"id": 3, "name": "Monitor", "price": Decimal("899.00"), "stock_quantity": 5},
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(UserModel).first() or db.query(ProductModel).first():
            logger.info("Database already seeded")
            return
        db.add_all(UserModel(**u) for u in USERS)
        db.add_all(ProductModel(is_published=True, **p) for p in PRODUCTS)
        db.commit()
        logger.info(f"Seeded {len(USERS)} users and {len(PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
