from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.domain.errors import (
    ConcurrencyConflict,
    ItemNotInCart,
    ProductNotFound,
    Unavailable,
    ValidationFailed,
)
from marketplace.repos.cart_repo import CartRepo
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.lock_service import LockService, cart_key
from marketplace.utils.retry import conflict_retry
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def empty_cart_view(buyer_id: int) -> Dict[str, Any]:
    return {
        "buyer_id": buyer_id,
        "items": [],
        "total": Decimal("0.00"),
        "updated_at": None,
    }


class CartService:
    """
    Use cases of the cart domain, commands and a query.

    commands (add, set quantity, remove, clear) run under the per buyer lock
    and bump the cart version, query (get, count) only reads
    """

    def __init__(
        self,
        db: Session,
        catalog: CatalogClient,
        lock_service: LockService,
    ):
        self.repo = CartRepo(db)
        self.catalog = catalog
        self.lock_service = lock_service

    #query
    def get_cart(self, buyer_id: int) -> Dict[str, Any]:
        cart = self.repo.get_cart_by_buyer(buyer_id)

        if not cart:
            return empty_cart_view(buyer_id)

        items = []
        for entry in self.repo.get_cart_items(cart.id):
            #display time tolerance: skip what the catalog can't resolve,
            #the stored entry stays
            try:
                product = self.catalog.fetch_product(entry.product_id)
            except (ProductNotFound, Unavailable) as e:
                logger.warning(f"Cart {cart.id}: hiding product {entry.product_id} from view ({e})")
                continue

            items.append(
                {
                    "product_id": entry.product_id,
                    "title": product.title,
                    "seller_id": product.seller_id,
                    "quantity": entry.quantity,
                    "price": product.price,
                    "subtotal": product.price * entry.quantity,
                    "is_active": product.is_active,
                    "added_at": entry.added_at,
                }
            )

        return {
            "buyer_id": cart.buyer_id,
            "items": items,
            "total": sum((i["subtotal"] for i in items), Decimal("0.00")),
            "updated_at": cart.updated_at,
        }

    def count_items(self, buyer_id: int) -> int:
        return self.repo.count_cart_items(buyer_id)

    #commands
    def add_item(self, buyer_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity <= 0:
            raise ValidationFailed("Quantity must be greater than 0")

        logger.info(f"Fetching product {product_id} from catalog")
        #raises ProductNotFound / ProductInactive
        self.catalog.fetch_active_product(product_id)

        with self.lock_service.hold(cart_key(buyer_id)):
            self._add(buyer_id, product_id, quantity)

        return self.get_cart(buyer_id)

    def set_quantity(self, buyer_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        with self.lock_service.hold(cart_key(buyer_id)):
            self._set_quantity(buyer_id, product_id, quantity)

        return self.get_cart(buyer_id)

    def remove_item(self, buyer_id: int, product_id: int) -> Dict[str, Any]:
        with self.lock_service.hold(cart_key(buyer_id)):
            self._remove(buyer_id, product_id)

        return self.get_cart(buyer_id)

    def clear(self, buyer_id: int) -> Dict[str, Any]:
        with self.lock_service.hold(cart_key(buyer_id)):
            self._clear(buyer_id)

        return self.get_cart(buyer_id)

    @conflict_retry()
    def _add(self, buyer_id: int, product_id: int, quantity: int) -> None:
        cart = self.repo.get_or_create_cart(buyer_id)
        existing_item = self.repo.get_cart_item(cart.id, product_id)

        if existing_item:
            logger.info(
                f"Product {product_id} already in cart {cart.id}, quantity "
                f"{existing_item.quantity} -> {existing_item.quantity + quantity}"
            )
            existing_item.quantity += quantity
        else:
            logger.info(f"Adding product {product_id} to cart {cart.id}")
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart.id,
                    product_id=product_id,
                    quantity=quantity,
                    added_at=datetime.now(timezone.utc),
                )
            )

        self._commit_new_version(cart)

    @conflict_retry()
    def _set_quantity(self, buyer_id: int, product_id: int, quantity: int) -> None:
        cart = self.repo.get_cart_by_buyer(buyer_id)
        item = self.repo.get_cart_item(cart.id, product_id) if cart else None

        if not item:
            raise ItemNotInCart(product_id)

        if quantity <= 0:
            #an entry is never stored with quantity < 1
            logger.info(f"Quantity {quantity} for product {product_id}, removing it from cart {cart.id}")
            self.repo.delete_cart_item(cart.id, product_id)
        else:
            logger.info(f"Cart {cart.id}: product {product_id} quantity {item.quantity} -> {quantity}")
            item.quantity = quantity

        self._commit_new_version(cart)

    @conflict_retry()
    def _remove(self, buyer_id: int, product_id: int) -> None:
        cart = self.repo.get_cart_by_buyer(buyer_id)
        if not cart:
            return

        removed = self.repo.delete_cart_item(cart.id, product_id)
        if not removed:
            #idempotent, nothing to do
            self.repo.rollback()
            return

        logger.info(f"Removed product {product_id} from cart {cart.id}")
        self._commit_new_version(cart)

    @conflict_retry()
    def _clear(self, buyer_id: int) -> None:
        cart = self.repo.get_cart_by_buyer(buyer_id)
        if not cart:
            return

        self.repo.clear_cart_items(cart.id)
        logger.info(f"Cleared cart {cart.id}")
        self._commit_new_version(cart)

    def _commit_new_version(self, cart: CartModel) -> None:
        old_version = cart.version

        #optimistic locking, UPDATE ... SET version = 2 WHERE id = 1 AND version = 1
        try:
            rowcount = self.repo.update_cart_version(
                cart_id=cart.id,
                old_version=old_version,
                new_data={
                    "version": old_version + 1,
                    "updated_at": datetime.now(timezone.utc),
                },
            )
            if rowcount == 0:
                self.repo.rollback()
                raise ConcurrencyConflict("Cart was modified by another operation")

            self.repo.commit()
        except IntegrityError as e:
            #same product inserted concurrently
            self.repo.rollback()
            raise ConcurrencyConflict("Cart was modified by another operation") from e

        logger.info(f"Cart {cart.id} saved, new version: {old_version + 1}")
