# marketplace/services/order_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping

from sqlalchemy.orm import Session

from marketplace.data.models.order import OrderModel
from marketplace.data.models.order_item import OrderItemModel
from marketplace.domain.access import authorize_read, authorize_status_change
from marketplace.domain.errors import (
    ConcurrencyConflict,
    EmptyOrder,
    OrderNotFound,
    ValidationFailed,
)
from marketplace.domain.projection import project_for_seller
from marketplace.domain.status import OrderStatus, PaymentStatus, Role
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.lock_service import LockService, order_key
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

_SHIPPING_FIELDS = {
    "address": "shipping_address",
    "city": "shipping_city",
    "state": "shipping_state",
    "country": "shipping_country",
    "zip_code": "shipping_zip_code",
}


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    shipping = {key: getattr(order, column) for key, column in _SHIPPING_FIELDS.items()}

    return {
        "order_id": order.reference,
        "buyer_id": order.buyer_id,
        "items": [
            {
                "product_id": i.product_id,
                "seller_id": i.seller_id,
                "quantity": i.quantity,
                "unit_price": Decimal(i.unit_price),
                "subtotal": Decimal(i.subtotal),
            }
            for i in order.items
        ],
        "total_amount": Decimal(order.total_amount),
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "shipping_address": shipping if any(v is not None for v in shipping.values()) else None,
        "notes": order.notes,
        "cancel_reason": order.cancel_reason,
        "completed_at": order.completed_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


class OrderService:
    """
    Order store use cases.

    Every read and status change goes through the authorization gate, seller
    reads come back projected to the seller's own line items.
    """

    def __init__(self, db: Session, lock_service: LockService):
        self.repo = OrderRepo(db)
        self.lock_service = lock_service

    #commands
    def create_order(
        self,
        buyer_id: int,
        items: Iterable[Mapping[str, Any]],
        payment_method: str | None = None,
        shipping_address: Mapping[str, Any] | None = None,
        notes: str | None = None,
        commit: bool = True,
    ) -> OrderModel:
        """
        Append a new pending order.

        Line items carry product_id, seller_id, quantity, unit_price and
        subtotal as frozen at checkout; total_amount is their sum. With
        commit=False the order is only staged in the current transaction.
        """
        items = list(items)
        if not items:
            raise EmptyOrder()

        order_items = []
        for item in items:
            if item["quantity"] < 1:
                raise ValidationFailed(f"Invalid quantity for product {item['product_id']}")
            order_items.append(
                OrderItemModel(
                    product_id=item["product_id"],
                    seller_id=item["seller_id"],
                    quantity=item["quantity"],
                    unit_price=item["unit_price"],
                    subtotal=item["subtotal"],
                )
            )

        total = sum((Decimal(i["subtotal"]) for i in items), Decimal("0.00")).quantize(CENT)

        order = OrderModel(
            buyer_id=buyer_id,
            total_amount=total,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            payment_method=payment_method,
            notes=notes,
            items=order_items,
        )
        for key, column in _SHIPPING_FIELDS.items():
            setattr(order, column, (shipping_address or {}).get(key))

        if commit:
            self.repo.create_order(order)
        else:
            self.repo.stage_order(order)

        logger.info(
            f"Order {order.reference} created for buyer {buyer_id}: "
            f"{len(order_items)} items, total {total}"
        )
        return order

    def update_status(
        self,
        reference: str,
        role: Role,
        actor_id: int,
        new_status: OrderStatus,
        cancel_reason: str | None = None,
        notes: str | None = None,
    ) -> Dict[str, Any]:
        new_status = OrderStatus(new_status)
        if cancel_reason and new_status is not OrderStatus.CANCELLED:
            raise ValidationFailed("cancel_reason is only accepted when cancelling an order")

        with self.lock_service.hold(order_key(reference)):
            order = self.get_order(reference)
            previous = order.status

            decision = authorize_status_change(role, actor_id, order_to_dict(order), new_status)

            now = datetime.now(timezone.utc)
            new_data = {
                "status": new_status.value,
                "version": order.version + 1,
                "updated_at": now,
            }
            if new_status is OrderStatus.COMPLETED:
                new_data["completed_at"] = now
            if new_status is OrderStatus.CANCELLED and cancel_reason:
                new_data["cancel_reason"] = cancel_reason
            if notes:
                new_data["notes"] = notes

            #optimistic locking on top of the order lock
            rowcount = self.repo.update_order(order.id, order.version, new_data)
            if rowcount == 0:
                self.repo.rollback()
                raise ConcurrencyConflict(f"Order {reference} was modified by another operation")

            self.repo.commit()
            order = self.repo.refresh(order)

        logger.info(
            f"Order {reference} status {previous} -> {new_status.value} "
            f"by {Role(role).value} {actor_id}"
        )

        view = order_to_dict(order)
        if decision.seller_scope is not None:
            return project_for_seller(view, decision.seller_scope)
        return view

    #queries
    def get_order(self, reference: str) -> OrderModel:
        """Raw order, unfiltered. Callers must pass it through the gate."""
        order = self.repo.get_order_by_reference(reference)
        if not order:
            raise OrderNotFound(reference)
        return order

    def get_order_for_actor(self, reference: str, role: Role, actor_id: int) -> Dict[str, Any]:
        view = order_to_dict(self.get_order(reference))
        decision = authorize_read(role, actor_id, view)

        if decision.seller_scope is not None:
            return project_for_seller(view, decision.seller_scope)
        return view

    def list_for_actor(
        self,
        role: Role,
        actor_id: int,
        status_filter: str | None = None,
    ) -> List[Dict[str, Any]]:
        role = Role(role)
        status = None
        if status_filter and status_filter != "all":
            try:
                status = OrderStatus(status_filter).value
            except ValueError:
                raise ValidationFailed(f"Unknown order status '{status_filter}'")

        if role is Role.BUYER:
            orders = self.repo.list_orders(buyer_id=actor_id, status=status)
            return [order_to_dict(o) for o in orders]

        if role is Role.SELLER:
            orders = self.repo.list_orders(seller_id=actor_id, status=status)
            return [project_for_seller(order_to_dict(o), actor_id) for o in orders]

        return [order_to_dict(o) for o in self.repo.list_orders(status=status)]
