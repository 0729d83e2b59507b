from typing import Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain.errors import (
    Conflict,
    Forbidden,
    InsufficientStock,
    InvalidArgument,
    NotFound,
    Unavailable,
)
from app.domain.pricing import cart_total
from app.repos.cart_repo import CartRepo
from app.repos.product_repo import ProductRepo
from app.repos.user_repo import UserRepo
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases, one cart per owner.

    commands (add, update, remove, clear) write the item and the recomputed
    total in one transaction, guarded by the cart version (optimistic locking)
    query (get) only reads, except that it creates the cart on first access
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)
        self.products = ProductRepo(db)
        self.users = UserRepo(db)

    #query
    def get_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)
        items = self.repo.get_cart_items(cart.id)

        return {
            "id": cart.id,
            "user_id": cart.user_id,
            "items": [
                {
                    "id": i.id,
                    "product_id": i.product_id,
                    "quantity": i.quantity,
                    "price": i.price,
                }
                for i in items
            ],
            "total": cart.total,
        }

    #commands
    def add_item(self, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise InvalidArgument("Quantity must be greater than 0")

        cart = self._get_or_create_cart(user_id)

        product = self.products.get_product(product_id)
        if not product:
            raise NotFound(f"Product {product_id} not found")
        if not product.is_published:
            raise Unavailable(f"Product not available: {product.name}")

        existing_item = self.repo.get_cart_item(cart.id, product_id)
        new_quantity = quantity + (existing_item.quantity if existing_item else 0)
        if new_quantity > product.stock_quantity:
            raise InsufficientStock(
                f"Insufficient stock for product: {product.name} "
                f"(requested {new_quantity}, available {product.stock_quantity})"
            )

        try:
            if existing_item:
                logger.info(
                    f"Product {product_id} already in cart {cart.id}, raising quantity "
                    f"from {existing_item.quantity} to {new_quantity}"
                )
                # price snapshot stays as it was when the line was created
                existing_item.quantity = new_quantity
                self.repo.add_cart_item(existing_item)
            else:
                logger.info(f"Adding product {product_id} to cart {cart.id}")
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=product_id,
                        quantity=quantity,
                        price=product.price,
                    )
                )
            self._save_total(cart)
        except IntegrityError as e:
            # racing first add of the same product into the same cart
            self.repo.rollback()
            raise Conflict("Cart was modified by another request") from e

        return self.get_cart(user_id)

    def update_item(self, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        if quantity < 0:
            raise InvalidArgument("Quantity must be 0 or greater")

        cart, item = self._owned_item(user_id, item_id)

        if quantity == 0:
            logger.info(f"Quantity 0 for item {item_id}, removing it from cart {cart.id}")
            self.repo.delete_item(item)
            self._save_total(cart)
            return self.get_cart(user_id)

        product = self.products.get_product(item.product_id)
        if not product:
            raise NotFound(f"Product {item.product_id} not found")
        if quantity > product.stock_quantity:
            raise InsufficientStock(
                f"Insufficient stock for product: {product.name} "
                f"(requested {quantity}, available {product.stock_quantity})"
            )

        item.quantity = quantity
        self.repo.add_cart_item(item)
        self._save_total(cart)

        logger.info(f"Item {item_id} in cart {cart.id} set to quantity {quantity}")
        return self.get_cart(user_id)

    def remove_item(self, user_id: int, item_id: int) -> Dict[str, Any]:
        cart, item = self._owned_item(user_id, item_id)

        logger.info(f"Removing item {item_id} from cart {cart.id}")
        self.repo.delete_item(item)
        self._save_total(cart)

        return self.get_cart(user_id)

    def clear_cart(self, user_id: int) -> Dict[str, Any]:
        cart = self._get_or_create_cart(user_id)

        logger.info(f"Clearing cart {cart.id}")
        self.repo.delete_cart_items(cart.id)
        self._save_total(cart)

        return self.get_cart(user_id)

    # helpers
    def _get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart

        if not self.users.get_user(user_id):
            raise NotFound(f"User {user_id} not found")

        try:
            created = self.repo.create_cart(CartModel(user_id=user_id, version=1))
        except IntegrityError:
            # created meanwhile by a parallel request for the same owner
            self.repo.rollback()
            cart = self.repo.get_cart_by_user(user_id)
            if not cart:
                raise
            return cart

        logger.info(f"Created cart {created.id} for user {user_id}")
        return created

    def _owned_item(self, user_id: int, item_id: int):
        item = self.repo.get_item(item_id)
        if not item:
            raise NotFound(f"Cart item {item_id} not found")

        cart = self.repo.get_cart_by_user(user_id)
        if not cart or item.cart_id != cart.id:
            raise Forbidden("Not authorized to modify this cart item")

        return cart, item

    def _save_total(self, cart: CartModel) -> None:
        """
        Recompute the total from the stored item prices and commit it together
        with the pending item write. Stale version -> rollback + Conflict.
        """
        items = self.repo.get_cart_items(cart.id)
        total = cart_total(items)

        # update carts set total = ?, version = v + 1 where id = ? and version = v
        rowcount = self.repo.save_total(cart, total)
        if rowcount == 0:
            self.repo.rollback()
            raise Conflict("Cart was modified by another request")

        self.repo.commit()
        logger.info(f"Cart {cart.id} total is now {total}")
