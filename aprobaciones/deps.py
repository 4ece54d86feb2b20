from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .db import make_engine
from .services.definitions import DefinitionStore
from .services.delegations import DelegationService
from .services.gateway import ApprovalGateway


@dataclass
class Actor:
    user_id: str
    organization_id: str


async def auth_bearer(
    authorization: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
    x_organization_id: Optional[str] = Header(default=None),
) -> Actor:
    # El token lo valida la capa de autenticación previa; aquí solo se exige su presencia
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")
    if not x_actor_id or not x_organization_id:
        raise HTTPException(status_code=401, detail="Missing actor or organization")
    return Actor(user_id=x_actor_id, organization_id=x_organization_id)


_gateway: Optional[ApprovalGateway] = None


def get_gateway() -> ApprovalGateway:
    global _gateway
    if _gateway is None:
        _gateway = ApprovalGateway(make_engine())
        _gateway.definitions.create_schema()
    return _gateway


def get_store(gateway: ApprovalGateway = Depends(get_gateway)) -> DefinitionStore:
    return gateway.definitions


def get_delegations(gateway: ApprovalGateway = Depends(get_gateway)) -> DelegationService:
    return gateway.delegations
