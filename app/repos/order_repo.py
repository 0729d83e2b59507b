# app/repos/order_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import select, update, case
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.domain.enums import OrderStatus
from app.domain.schemas import PaymentResult


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        # no commit here, the order is created in one transaction with the stock moves
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_order_by_provider_id(self, provider_order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_provider_order_id == provider_order_id)
        ).scalars().first()

    def list_orders_by_user(self, user_id: int) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def list_orders(self) -> List[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel).order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def mark_cancelled(self, order_id: int) -> int:
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status != OrderStatus.CANCELLED.value,
                OrderModel.is_shipped.is_(False),
                OrderModel.is_delivered.is_(False),
            )
            .values(status=OrderStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def advance_status(self, order_id: int, current: str, values: dict) -> int:
        # matches only if nobody moved or cancelled the order since it was read
        result = self.db.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                OrderModel.status == current,
                OrderModel.status != OrderStatus.CANCELLED.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def mark_paid(self, order_id: int, result: PaymentResult, paid_at: datetime) -> int:
        # only the first caller flips is_paid, later ones match zero rows
        res = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.is_paid.is_(False))
            .values(
                is_paid=True,
                paid_at=paid_at,
                status=case(
                    (OrderModel.status == OrderStatus.PENDING.value, OrderStatus.PROCESSING.value),
                    else_=OrderModel.status,
                ),
                payment_id=result.id,
                payment_status=result.status,
                payment_update_time=result.update_time,
                payment_email=result.email_address,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
