from decimal import Decimal

import pytest

from app.data.models import OrderModel, ProductModel, UserModel
from app.domain.enums import OrderStatus, Role
from app.domain.errors import (
    Conflict,
    Forbidden,
    InsufficientStock,
    InvalidArgument,
    InvalidState,
    NotFound,
    Unavailable,
)
from app.repos.product_repo import ProductRepo
from app.services.cart_service import CartService
from app.services.order_service import OrderService


def _stock(db_session, product_id: int) -> int:
    db_session.expire_all()
    return db_session.get(ProductModel, product_id).stock_quantity


@pytest.fixture
def service(db_session, notifier):
    return OrderService(db_session, notification_service=notifier)


def test_place_order_takes_stock(service, db_session, customer, make_product, order_payload, notifier):
    product = make_product(price="10.00", stock=5)

    order = service.place_order(customer.id, order_payload([(product.id, 2)], "20.00"))

    assert order["status"] == OrderStatus.PENDING.value
    assert order["is_paid"] is False
    assert order["total"] == Decimal("20.00")
    assert order["items"][0]["name"] == "Widget"
    assert order["items"][0]["total_price"] == Decimal("20.00")
    assert order["payment_result"] is None
    assert _stock(db_session, product.id) == 3
    notifier.send_order_notification.assert_called_once_with(customer.id, order["id"], "placed")


def test_cancel_restores_stock_once(service, db_session, customer, make_product, order_payload, notifier):
    product = make_product(price="10.00", stock=5)
    order = service.place_order(customer.id, order_payload([(product.id, 2)], "20.00"))

    cancelled = service.cancel_order(order["id"], customer.id)

    assert cancelled["status"] == OrderStatus.CANCELLED.value
    assert _stock(db_session, product.id) == 5

    with pytest.raises(InvalidState):
        service.cancel_order(order["id"], customer.id)
    assert _stock(db_session, product.id) == 5
    notifier.send_order_notification.assert_called_with(customer.id, order["id"], "cancelled")


def test_shipping_counts_towards_total(service, customer, make_product, order_payload):
    product = make_product(price="19.99", stock=5)

    order = service.place_order(customer.id, order_payload([(product.id, 3)], "64.97", shipping="5.00"))

    assert order["total"] == Decimal("64.97")
    assert order["shipping_price"] == Decimal("5.00")
    assert order["shipping_address"]["city"] == "Springfield"


def test_declared_total_must_match(service, db_session, customer, make_product, order_payload):
    product = make_product(price="10.00", stock=5)

    with pytest.raises(InvalidArgument):
        service.place_order(customer.id, order_payload([(product.id, 2)], "1.00"))

    assert db_session.query(OrderModel).count() == 0
    assert _stock(db_session, product.id) == 5


def test_rejected_products(service, db_session, customer, make_product, order_payload):
    hidden = make_product(name="Hidden", published=False)
    scarce = make_product(name="Scarce", stock=1)

    with pytest.raises(NotFound):
        service.place_order(customer.id, order_payload([(4242, 1)], "10.00"))
    with pytest.raises(Unavailable):
        service.place_order(customer.id, order_payload([(hidden.id, 1)], "10.00"))
    with pytest.raises(InsufficientStock):
        service.place_order(customer.id, order_payload([(scarce.id, 2)], "20.00"))
    with pytest.raises(InvalidArgument):
        service.place_order(customer.id, order_payload([], "0.00"))

    assert db_session.query(OrderModel).count() == 0
    assert _stock(db_session, scarce.id) == 1


def test_duplicate_lines_are_merged(service, db_session, customer, make_product, order_payload):
    product = make_product(price="10.00", stock=3)

    order = service.place_order(customer.id, order_payload([(product.id, 1), (product.id, 2)], "30.00"))

    assert len(order["items"]) == 1
    assert order["items"][0]["quantity"] == 3
    assert _stock(db_session, product.id) == 0


def test_lost_stock_race_rolls_everything_back(
    service, db_session, customer, make_product, order_payload, mocker
):
    first = make_product(name="First", price="1.00", stock=5)
    second = make_product(name="Second", price="2.00", stock=5)
    first_id, second_id = first.id, second.id
    original = ProductRepo.decrement_stock

    def racing_decrement(repo, product_id, amount):
        # somebody else bought the second product out in the meantime
        if product_id == second_id:
            return False
        return original(repo, product_id, amount)

    mocker.patch.object(ProductRepo, "decrement_stock", autospec=True, side_effect=racing_decrement)

    with pytest.raises(Conflict):
        service.place_order(customer.id, order_payload([(first_id, 1), (second_id, 1)], "3.00"))

    assert db_session.query(OrderModel).count() == 0
    assert _stock(db_session, first_id) == 5
    assert _stock(db_session, second_id) == 5


def test_decrement_stock_never_goes_negative(db_session, make_product):
    product = make_product(stock=2)
    repo = ProductRepo(db_session)

    assert repo.decrement_stock(product.id, 3) is False
    assert repo.decrement_stock(product.id, 2) is True
    db_session.commit()

    assert _stock(db_session, product.id) == 0


def test_order_from_cart_clears_the_cart(service, db_session, customer, make_product, order_payload):
    a = make_product(name="A", price="10.00", stock=5)
    b = make_product(name="B", price="2.50", stock=5)
    carts = CartService(db_session)
    carts.add_item(customer.id, a.id, 2)
    carts.add_item(customer.id, b.id, 2)

    order = service.place_order(customer.id, order_payload(None, "25.00"))

    assert sorted(i["product_id"] for i in order["items"]) == sorted([a.id, b.id])
    assert _stock(db_session, a.id) == 3
    assert _stock(db_session, b.id) == 3
    cart = carts.get_cart(customer.id)
    assert cart["items"] == []
    assert cart["total"] == Decimal("0.00")


def test_empty_cart_cannot_be_ordered(service, customer, order_payload):
    with pytest.raises(InvalidArgument):
        service.place_order(customer.id, order_payload(None, "0.00"))


def test_only_owner_or_admin_can_see_and_cancel(
    service, customer, other_customer, admin, make_product, order_payload
):
    product = make_product(price="10.00")
    order = service.place_order(customer.id, order_payload([(product.id, 1)], "10.00"))

    with pytest.raises(Forbidden):
        service.get_order(order["id"], other_customer.id)
    with pytest.raises(Forbidden):
        service.cancel_order(order["id"], other_customer.id)
    with pytest.raises(NotFound):
        service.get_order(999, customer.id)

    assert service.get_order(order["id"], admin.id)["id"] == order["id"]
    assert service.cancel_order(order["id"], admin.id)["status"] == OrderStatus.CANCELLED.value


def test_status_moves_forward_only(service, db_session, customer, admin, make_product, order_payload):
    product = make_product(price="10.00", stock=5)
    order = service.place_order(customer.id, order_payload([(product.id, 1)], "10.00"))

    shipped = service.update_status(order["id"], admin.id, OrderStatus.SHIPPED)
    assert shipped["status"] == OrderStatus.SHIPPED.value
    assert shipped["is_shipped"] is True
    assert shipped["shipped_at"] is not None

    with pytest.raises(InvalidState):
        service.update_status(order["id"], admin.id, OrderStatus.PENDING)
    with pytest.raises(InvalidState):
        service.cancel_order(order["id"], customer.id)
    assert _stock(db_session, product.id) == 4

    delivered = service.update_status(order["id"], admin.id, OrderStatus.DELIVERED)
    assert delivered["is_delivered"] is True


def test_status_update_to_cancelled_restores_stock(service, db_session, customer, admin, make_product, order_payload):
    product = make_product(stock=5)
    order = service.place_order(customer.id, order_payload([(product.id, 2)], "20.00"))

    result = service.update_status(order["id"], admin.id, OrderStatus.CANCELLED)

    assert result["status"] == OrderStatus.CANCELLED.value
    assert _stock(db_session, product.id) == 5
    with pytest.raises(InvalidState):
        service.update_status(order["id"], admin.id, OrderStatus.PROCESSING)


def test_admin_only_operations(service, customer, make_product, order_payload):
    product = make_product()
    order = service.place_order(customer.id, order_payload([(product.id, 1)], "10.00"))

    with pytest.raises(Forbidden):
        service.update_status(order["id"], customer.id, OrderStatus.SHIPPED)
    with pytest.raises(Forbidden):
        service.list_all_orders(customer.id)


def test_listings(service, customer, other_customer, admin, make_product, order_payload):
    product = make_product(price="1.00", stock=10)
    first = service.place_order(customer.id, order_payload([(product.id, 1)], "1.00"))
    second = service.place_order(customer.id, order_payload([(product.id, 2)], "2.00"))
    service.place_order(other_customer.id, order_payload([(product.id, 1)], "1.00"))

    mine = service.list_user_orders(customer.id)
    assert {o["id"] for o in mine} == {first["id"], second["id"]}
    assert len(service.list_all_orders(admin.id)) == 3


# two requests interleaving on separate sessions

def _seed(session, stock: int) -> int:
    session.add_all(
        [
            UserModel(id=1, name="customer", role=Role.CUSTOMER.value),
            UserModel(id=99, name="admin", role=Role.ADMIN.value),
        ]
    )
    product = ProductModel(name="Widget", price=Decimal("10.00"), stock_quantity=stock, is_published=True)
    session.add(product)
    session.commit()
    return product.id


def test_cancel_between_read_and_status_write_wins(session_factory, order_payload, notifier):
    setup = session_factory()
    product_id = _seed(setup, stock=5)
    customer_db, admin_db = session_factory(), session_factory()
    order = OrderService(customer_db, notifier).place_order(1, order_payload([(product_id, 2)], "20.00"))

    # admin request has already read the order as PENDING
    assert admin_db.get(OrderModel, order["id"]).status == OrderStatus.PENDING.value
    OrderService(customer_db, notifier).cancel_order(order["id"], 1)

    with pytest.raises(InvalidState):
        OrderService(admin_db, notifier).update_status(order["id"], 99, OrderStatus.SHIPPED)

    setup.expire_all()
    stored = setup.get(OrderModel, order["id"])
    assert stored.status == OrderStatus.CANCELLED.value
    assert stored.is_shipped is False
    assert setup.get(ProductModel, product_id).stock_quantity == 5


def test_last_unit_goes_to_exactly_one_order(session_factory, order_payload, notifier):
    setup = session_factory()
    product_id = _seed(setup, stock=1)
    first_db, second_db = session_factory(), session_factory()

    # both requests saw one unit in stock during validation
    assert first_db.get(ProductModel, product_id).stock_quantity == 1
    assert second_db.get(ProductModel, product_id).stock_quantity == 1

    OrderService(first_db, notifier).place_order(1, order_payload([(product_id, 1)], "10.00"))
    with pytest.raises(Conflict):
        OrderService(second_db, notifier).place_order(1, order_payload([(product_id, 1)], "10.00"))

    setup.expire_all()
    assert setup.get(ProductModel, product_id).stock_quantity == 0
    assert setup.query(OrderModel).count() == 1
