# marketplace/api/deps.py
from dataclasses import dataclass
from functools import lru_cache

from fastapi import Depends, Header, HTTPException

from marketplace.domain.status import Role
from marketplace.services.catalog_client import CatalogClient
from marketplace.services.lock_service import LockService
from marketplace.services.sales_service import SalesService


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role


def get_actor(
    x_actor_id: str | None = Header(None),
    x_actor_role: str | None = Header(None),
) -> Actor:
    """
    Identity resolved upstream by the auth layer, passed in as headers.
    Nothing here verifies credentials.
    """
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor identity")

    try:
        actor_id = int(x_actor_id)
        role = Role(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(status_code=401, detail="Malformed actor identity")

    if actor_id <= 0:
        raise HTTPException(status_code=401, detail="Malformed actor identity")

    return Actor(id=actor_id, role=role)


def require_buyer(actor: Actor = Depends(get_actor)) -> Actor:
    if actor.role is not Role.BUYER:
        raise HTTPException(status_code=403, detail="Only buyers have a cart")
    return actor


def get_catalog_client() -> CatalogClient:
    return CatalogClient()


@lru_cache(maxsize=1)
def get_lock_service() -> LockService:
    #one redis connection pool per process
    return LockService()


def get_sales_service() -> SalesService:
    return SalesService()
