# marketplace/domain/access.py
"""
Authorization gate for order reads and writes.

A pure decision over (role, actor id, order). Nothing here is cached, every
request builds a fresh decision from the order it is about to touch.
"""
from dataclasses import dataclass
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from marketplace.domain.errors import Forbidden
from marketplace.domain.status import OrderStatus, Role, check_transition

Transition = Tuple[OrderStatus, OrderStatus]

BUYER_TRANSITIONS: FrozenSet[Transition] = frozenset({
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
})

SELLER_TRANSITIONS: FrozenSet[Transition] = frozenset({
    (OrderStatus.PENDING, OrderStatus.CONFIRMED),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS),
    (OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED),
})


@dataclass(frozen=True)
class AccessDecision:
    can_read: bool
    #set for sellers, reads must go through the seller projection
    seller_scope: Optional[int] = None
    #None means any transition allowed by the state machine
    transitions: Optional[FrozenSet[Transition]] = frozenset()

    def can_write(self, current: OrderStatus, requested: OrderStatus) -> bool:
        if not self.can_read:
            return False
        if self.transitions is None:
            return True
        return (OrderStatus(current), OrderStatus(requested)) in self.transitions


DENIED = AccessDecision(can_read=False)


def seller_ids(order: Mapping[str, Any]) -> set:
    return {item["seller_id"] for item in order["items"]}


def decide(role: Role, actor_id: int, order: Mapping[str, Any]) -> AccessDecision:
    role = Role(role)

    if role is Role.ADMIN:
        return AccessDecision(can_read=True, transitions=None)

    if role is Role.BUYER:
        if order["buyer_id"] != actor_id:
            return DENIED
        return AccessDecision(can_read=True, transitions=BUYER_TRANSITIONS)

    if role is Role.SELLER:
        if actor_id not in seller_ids(order):
            return DENIED
        return AccessDecision(
            can_read=True,
            seller_scope=actor_id,
            transitions=SELLER_TRANSITIONS,
        )

    return DENIED


def authorize_read(role: Role, actor_id: int, order: Mapping[str, Any]) -> AccessDecision:
    decision = decide(role, actor_id, order)
    if not decision.can_read:
        raise Forbidden("Not authorized to access this order")
    return decision


def authorize_status_change(
    role: Role,
    actor_id: int,
    order: Mapping[str, Any],
    requested: OrderStatus,
) -> AccessDecision:
    """
    Ownership first, then the state machine, then the role's own transitions.

    An actor outside the order always gets Forbidden. An actor inside it gets
    InvalidTransition for jumps off the graph (admin included) and Forbidden
    for legal transitions their role may not initiate.
    """
    decision = authorize_read(role, actor_id, order)
    current = OrderStatus(order["status"])

    check_transition(current, requested)

    if not decision.can_write(current, requested):
        raise Forbidden(
            f"Role '{Role(role).value}' may not change order status "
            f"from '{current.value}' to '{OrderStatus(requested).value}'"
        )
    return decision
