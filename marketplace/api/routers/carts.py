#marketplace/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from marketplace.api.deps import (
    Actor,
    get_catalog_client,
    get_lock_service,
    require_buyer,
)
from marketplace.data.database import get_db
from marketplace.domain.errors import MarketplaceError
from marketplace.domain.schemas import (
    CartCountOut,
    CartOut,
    ItemIn,
    QuantityIn,
)
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.lock_service import LockService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog_client),
    lock_service: LockService = Depends(get_lock_service),
) -> CartService:
    return CartService(db=db, catalog=catalog, lock_service=lock_service)


@router.get("", response_model=CartOut)
def get_cart(
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.get_cart(actor.id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/count", response_model=CartCountOut)
def get_cart_count(
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return {"count": svc.count_items(actor.id)}
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.add_item(
            buyer_id=actor.id,
            product_id=payload.product_id,
            quantity=payload.quantity,
        )
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.put("/items/{product_id}", response_model=CartOut)
def update_item_quantity(
    product_id: int,
    payload: QuantityIn,
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.set_quantity(actor.id, product_id, payload.quantity)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(
    product_id: int,
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.remove_item(actor.id, product_id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("", response_model=CartOut)
def clear_cart(
    actor: Actor = Depends(require_buyer),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.clear(actor.id)
    except MarketplaceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
