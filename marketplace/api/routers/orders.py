# marketplace/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from marketplace.api.deps import (
    Actor,
    get_actor,
    get_catalog_client,
    get_lock_service,
    get_sales_service,
    require_buyer,
)
from marketplace.data.database import get_db
from marketplace.domain.errors import MarketplaceError
from marketplace.domain.schemas import CheckoutIn, OrderOut, StatusUpdateIn
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.checkout_service import CheckoutService
from marketplace.services.lock_service import LockService
from marketplace.services.order_service import OrderService
from marketplace.services.sales_service import SalesService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(
    db: Session = Depends(get_db),
    lock_service: LockService = Depends(get_lock_service),
) -> OrderService:
    return OrderService(db, lock_service)


def get_checkout_service(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    lock_service: LockService = Depends(get_lock_service),
    sales: SalesService = Depends(get_sales_service),
) -> CheckoutService:
    return CheckoutService(db, catalog, lock_service, sales)


@router.post("", response_model=OrderOut, status_code=201)
def checkout(
    payload: CheckoutIn,
    actor: Actor = Depends(require_buyer),
    svc: CheckoutService = Depends(get_checkout_service),
):
    """
    Creates an order from the buyer's server side cart and empties the cart.
    """
    try:
        return svc.checkout(
            buyer_id=actor.id,
            shipping_address=payload.shipping_address.model_dump() if payload.shipping_address else None,
            payment_method=payload.payment_method.value if payload.payment_method else None,
            notes=payload.notes,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=List[OrderOut])
def list_orders(
    status: str | None = Query(None, description="Exact status or 'all'"),
    actor: Actor = Depends(get_actor),
    svc: OrderService = Depends(get_service),
):
    """
    Role scoped listing, newest first. Sellers get each order projected to
    their own line items.
    """
    try:
        return svc.list_for_actor(actor.role, actor.id, status)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{reference}", response_model=OrderOut)
def get_order(
    reference: str,
    actor: Actor = Depends(get_actor),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.get_order_for_actor(reference, actor.role, actor.id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{reference}/status", response_model=OrderOut)
def update_order_status(
    reference: str,
    payload: StatusUpdateIn,
    actor: Actor = Depends(get_actor),
    svc: OrderService = Depends(get_service),
):
    try:
        return svc.update_status(
            reference,
            actor.role,
            actor.id,
            payload.status,
            cancel_reason=payload.cancel_reason,
            notes=payload.notes,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
