# app/repos/product_repo.py
from sqlalchemy import update
from sqlalchemy.orm import Session

from app.data.models.product import ProductModel


class ProductRepo:
    """
    Catalog store boundary: read a product, move its stock counter.
    Never commits, the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def decrement_stock(self, product_id: int, amount: int) -> bool:
        # update products set stock_quantity = stock_quantity - n
        # where id = :id and stock_quantity >= n
        result = self.db.execute(
            update(ProductModel)
            .where(
                ProductModel.id == product_id,
                ProductModel.stock_quantity >= amount,
            )
            .values(stock_quantity=ProductModel.stock_quantity - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment_stock(self, product_id: int, amount: int) -> None:
        self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock_quantity=ProductModel.stock_quantity + amount)
            .execution_options(synchronize_session=False)
        )
