# marketplace/repos/order_repo.py
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from marketplace.data.models.order import OrderModel
from marketplace.data.models.order_item import OrderItemModel
from marketplace.utils.db import translate_db_errors
from marketplace.utils.settings import ORDER_REFERENCE_PREFIX


def format_reference(sequence: int, prefix: str = ORDER_REFERENCE_PREFIX) -> str:
    return f"{prefix}{sequence:06d}"


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    @translate_db_errors
    def stage_order(self, order: OrderModel) -> OrderModel:
        """
        Insert the order and its items without committing.

        The reference comes from the primary key sequence of the same insert,
        so two concurrent transactions can never get the same one.
        """
        self.db.add(order)
        self.db.flush()
        order.reference = format_reference(order.id)
        self.db.flush()
        return order

    @translate_db_errors
    def create_order(self, order: OrderModel) -> OrderModel:
        self.stage_order(order)
        self.db.commit()
        return order

    @translate_db_errors
    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    @translate_db_errors
    def get_order_by_reference(self, reference: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.reference == reference)
        ).scalar_one_or_none()

    @translate_db_errors
    def list_orders(
        self,
        buyer_id: int | None = None,
        seller_id: int | None = None,
        status: str | None = None,
    ) -> List[OrderModel]:
        query = select(OrderModel)

        if buyer_id is not None:
            query = query.where(OrderModel.buyer_id == buyer_id)
        if seller_id is not None:
            query = query.where(
                OrderModel.items.any(OrderItemModel.seller_id == seller_id)
            )
        if status is not None:
            query = query.where(OrderModel.status == status)

        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        return list(self.db.execute(query).scalars())

    @translate_db_errors
    def update_order(self, order_id: int, old_version: int, new_data: dict) -> int:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @translate_db_errors
    def commit(self) -> None:
        self.db.commit()

    @translate_db_errors
    def refresh(self, order: OrderModel) -> OrderModel:
        self.db.refresh(order)
        return order

    def rollback(self) -> None:
        self.db.rollback()
