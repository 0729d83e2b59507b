import os

# must be set before anything from app is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYPAL_WEBHOOK_ID"] = ""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api import create_app
from app.api.deps import get_notification_service, get_paypal_client
from app.data import models  # noqa: F401
from app.data.database import Base, get_db
from app.data.models import ProductModel, UserModel
from app.domain.enums import Role
from app.domain.schemas import OrderCreate
from app.services.notification_service import NotificationService
from app.services.paypal_client import PaypalClient


@pytest.fixture(scope="function")
def db_session():
    """
    Fresh in-memory database per test. StaticPool keeps a single connection,
    so the TestClient worker thread sees the same database.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(tmp_path):
    """
    File backed database for tests that need two independent sessions,
    e.g. a customer and an admin request interleaving.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'shop.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    sessions = []

    def _open():
        session = factory()
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        session.close()
    engine.dispose()


@pytest.fixture
def make_user(db_session):
    def _make(user_id: int, role: Role = Role.CUSTOMER, name: str | None = None) -> UserModel:
        user = UserModel(id=user_id, name=name or f"user-{user_id}", role=role.value)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def make_product(db_session):
    def _make(
        name: str = "Widget",
        price: str = "10.00",
        stock: int = 5,
        published: bool = True,
    ) -> ProductModel:
        product = ProductModel(
            name=name,
            price=Decimal(price),
            stock_quantity=stock,
            is_published=published,
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def customer(make_user):
    return make_user(1)


@pytest.fixture
def other_customer(make_user):
    return make_user(2)


@pytest.fixture
def admin(make_user):
    return make_user(99, role=Role.ADMIN, name="admin")


@pytest.fixture
def notifier():
    return MagicMock(spec=NotificationService)


@pytest.fixture
def paypal():
    return MagicMock(spec=PaypalClient)


@pytest.fixture
def order_payload():
    def _make(items, total, shipping="0.00") -> OrderCreate:
        return OrderCreate(
            order_items=[{"product_id": pid, "quantity": qty} for pid, qty in items] if items else None,
            shipping_address={
                "address": "1 Main St",
                "city": "Springfield",
                "postal_code": "12345",
                "country": "US",
            },
            payment_method="PayPal",
            shipping_method="standard",
            shipping_price=Decimal(shipping),
            total_price=Decimal(total),
        )

    return _make


@pytest.fixture
def client(db_session, notifier, paypal):
    """
    TestClient with the database and the outside world (PayPal, Celery) swapped
    for test doubles.
    """
    app = create_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier
    app.dependency_overrides[get_paypal_client] = lambda: paypal

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
