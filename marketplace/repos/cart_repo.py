# marketplace/repos/cart_repo.py
from typing import List

from sqlalchemy import select, delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.utils.db import translate_db_errors


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    @translate_db_errors
    def get_cart_by_buyer(self, buyer_id: int) -> CartModel | None:
        return self.db.execute(
            select(CartModel).where(CartModel.buyer_id == buyer_id)
        ).scalar_one_or_none()

    @translate_db_errors
    def get_or_create_cart(self, buyer_id: int) -> CartModel:
        cart = self.get_cart_by_buyer(buyer_id)
        if cart:
            return cart

        try:
            cart = CartModel(buyer_id=buyer_id, version=1)
            self.db.add(cart)
            self.db.commit()
        except IntegrityError:
            #created concurrently, unique buyer_id won the race
            self.db.rollback()
            cart = self.get_cart_by_buyer(buyer_id)
        return cart

    @translate_db_errors
    def get_cart_items(self, cart_id: int) -> List[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.id)
            ).scalars()
        )

    @translate_db_errors
    def get_cart_item(self, cart_id: int, product_id: int) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
        ).scalar_one_or_none()

    @translate_db_errors
    def count_cart_items(self, buyer_id: int) -> int:
        cart = self.get_cart_by_buyer(buyer_id)
        if not cart:
            return 0
        return len(self.get_cart_items(cart.id))

    def add_cart_item(self, item: CartItemModel) -> CartItemModel:
        self.db.add(item)
        return item

    @translate_db_errors
    def delete_cart_item(self, cart_id: int, product_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @translate_db_errors
    def clear_cart_items(self, cart_id: int) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @translate_db_errors
    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        #UPDATE carts SET ... WHERE id = :id AND version = :old
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    @translate_db_errors
    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
