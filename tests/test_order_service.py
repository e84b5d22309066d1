from decimal import Decimal

import pytest

from marketplace.domain.errors import (
    EmptyOrder,
    Forbidden,
    InvalidTransition,
    OrderNotFound,
    ValidationFailed,
)
from marketplace.domain.status import OrderStatus, Role
from marketplace.services.order_service import OrderService

BUYER = 1
OTHER_BUYER = 2
SELLER_A = 100
SELLER_B = 200


def _line(product_id, seller_id, quantity, unit_price):
    unit_price = Decimal(unit_price)
    return {
        "product_id": product_id,
        "seller_id": seller_id,
        "quantity": quantity,
        "unit_price": unit_price,
        "subtotal": unit_price * quantity,
    }


@pytest.fixture()
def service(db, locks):
    return OrderService(db, locks)


@pytest.fixture()
def order(service):
    created = service.create_order(
        BUYER,
        [_line(10, SELLER_A, 1, "100.00"), _line(20, SELLER_B, 2, "25.00")],
        shipping_address={"city": "Gdansk", "zip_code": "80-001"},
    )
    return created.reference


class TestCreate:
    def test_empty_items(self, service):
        with pytest.raises(EmptyOrder):
            service.create_order(BUYER, [])

    def test_total_and_defaults(self, service, order):
        stored = service.get_order(order)
        assert stored.total_amount == Decimal("150.00")
        assert stored.status == "pending"
        assert stored.payment_status == "pending"
        assert stored.shipping_city == "Gdansk"

    def test_zero_quantity_line_rejected(self, service):
        with pytest.raises(ValidationFailed):
            service.create_order(BUYER, [_line(10, SELLER_A, 0, "1.00")])

    def test_reference_format(self, service, order):
        assert order == "ORD-000001"
        second = service.create_order(OTHER_BUYER, [_line(10, SELLER_A, 1, "1.00")])
        assert second.reference == "ORD-000002"


class TestRead:
    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.get_order_for_actor("ORD-999999", Role.ADMIN, 1)

    def test_buyer_sees_full_order(self, service, order):
        view = service.get_order_for_actor(order, Role.BUYER, BUYER)
        assert len(view["items"]) == 2
        assert view["total_amount"] == Decimal("150.00")
        assert view["shipping_address"]["zip_code"] == "80-001"

    def test_other_buyer_forbidden(self, service, order):
        with pytest.raises(Forbidden):
            service.get_order_for_actor(order, Role.BUYER, OTHER_BUYER)

    def test_sellers_get_isolated_projections(self, service, order):
        view_a = service.get_order_for_actor(order, Role.SELLER, SELLER_A)
        view_b = service.get_order_for_actor(order, Role.SELLER, SELLER_B)

        assert [i["product_id"] for i in view_a["items"]] == [10]
        assert view_a["total_amount"] == Decimal("100.00")
        assert [i["product_id"] for i in view_b["items"]] == [20]
        assert view_b["total_amount"] == Decimal("50.00")

        #stored order is untouched by projections
        assert service.get_order(order).total_amount == Decimal("150.00")

    def test_unrelated_seller_forbidden(self, service, order):
        with pytest.raises(Forbidden):
            service.get_order_for_actor(order, Role.SELLER, 999)


class TestList:
    @pytest.fixture()
    def orders(self, service, order):
        second = service.create_order(OTHER_BUYER, [_line(30, SELLER_A, 1, "10.00")]).reference
        third = service.create_order(BUYER, [_line(40, SELLER_B, 1, "5.00")]).reference
        return [order, second, third]

    def test_buyer_lists_own_orders_newest_first(self, service, orders):
        listed = service.list_for_actor(Role.BUYER, BUYER)
        assert [o["order_id"] for o in listed] == [orders[2], orders[0]]

    def test_seller_lists_projected_orders(self, service, orders):
        listed = service.list_for_actor(Role.SELLER, SELLER_A)

        assert [o["order_id"] for o in listed] == [orders[1], orders[0]]
        assert all(i["seller_id"] == SELLER_A for o in listed for i in o["items"])
        assert listed[1]["total_amount"] == Decimal("100.00")

    def test_admin_lists_everything(self, service, orders):
        assert len(service.list_for_actor(Role.ADMIN, 1)) == 3

    def test_status_filter(self, service, orders):
        service.update_status(orders[0], Role.SELLER, SELLER_A, OrderStatus.CONFIRMED)

        confirmed = service.list_for_actor(Role.ADMIN, 1, "confirmed")
        assert [o["order_id"] for o in confirmed] == [orders[0]]
        assert len(service.list_for_actor(Role.ADMIN, 1, "all")) == 3
        assert len(service.list_for_actor(Role.ADMIN, 1, "pending")) == 2

    def test_unknown_status_filter(self, service, orders):
        with pytest.raises(ValidationFailed):
            service.list_for_actor(Role.ADMIN, 1, "shipped")


class TestUpdateStatus:
    def test_full_lifecycle_by_seller(self, service, order):
        service.update_status(order, Role.SELLER, SELLER_A, OrderStatus.CONFIRMED)
        service.update_status(order, Role.SELLER, SELLER_B, OrderStatus.IN_PROGRESS)
        view = service.update_status(order, Role.SELLER, SELLER_A, OrderStatus.COMPLETED)

        assert view["status"] == "completed"
        assert view["completed_at"] is not None
        #seller response is projected
        assert view["total_amount"] == Decimal("100.00")
        #status changes never recompute the stored total
        assert service.get_order(order).total_amount == Decimal("150.00")

    def test_buyer_cancels_pending_with_reason(self, service, order):
        view = service.update_status(
            order, Role.BUYER, BUYER, OrderStatus.CANCELLED, cancel_reason="changed my mind"
        )
        assert view["status"] == "cancelled"
        assert view["cancel_reason"] == "changed my mind"
        assert view["completed_at"] is None

    def test_buyer_cannot_cancel_confirmed(self, service, order):
        service.update_status(order, Role.SELLER, SELLER_B, OrderStatus.CONFIRMED)
        with pytest.raises(Forbidden):
            service.update_status(order, Role.BUYER, BUYER, OrderStatus.CANCELLED)
        assert service.get_order(order).status == "confirmed"

    @pytest.mark.parametrize(
        "role, actor_id",
        [(Role.ADMIN, 7), (Role.BUYER, BUYER), (Role.SELLER, SELLER_A)],
    )
    def test_pending_to_completed_invalid(self, service, order, role, actor_id):
        with pytest.raises(InvalidTransition):
            service.update_status(order, role, actor_id, OrderStatus.COMPLETED)
        assert service.get_order(order).status == "pending"

    def test_terminal_state_is_final(self, service, order):
        service.update_status(order, Role.ADMIN, 7, OrderStatus.CANCELLED)
        with pytest.raises(InvalidTransition):
            service.update_status(order, Role.ADMIN, 7, OrderStatus.CONFIRMED)

    def test_outsider_is_forbidden(self, service, order):
        with pytest.raises(Forbidden):
            service.update_status(order, Role.SELLER, 999, OrderStatus.CONFIRMED)
        with pytest.raises(Forbidden):
            service.update_status(order, Role.BUYER, OTHER_BUYER, OrderStatus.CANCELLED)

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.update_status("ORD-424242", Role.ADMIN, 7, OrderStatus.CONFIRMED)

    def test_cancel_reason_only_when_cancelling(self, service, order):
        with pytest.raises(ValidationFailed):
            service.update_status(
                order, Role.SELLER, SELLER_A, OrderStatus.CONFIRMED, cancel_reason="nope"
            )

    def test_notes_are_stored(self, service, order):
        service.update_status(order, Role.ADMIN, 7, OrderStatus.CONFIRMED, notes="priority")
        assert service.get_order(order).notes == "priority"

    def test_version_bumped(self, service, order):
        before = service.get_order(order).version
        service.update_status(order, Role.ADMIN, 7, OrderStatus.CONFIRMED)
        assert service.get_order(order).version == before + 1
