from fastapi import APIRouter, Depends, status

from ..deps import Actor, auth_bearer, get_delegations
from ..schemas import DelegationCreate, DelegationOut
from ..services.delegations import DelegationService

router = APIRouter()


def _out(delegation) -> dict:
    return DelegationOut.model_validate(delegation).model_dump(mode="json")


@router.post("/delegations", status_code=status.HTTP_201_CREATED)
def create_delegation(body: DelegationCreate, actor: Actor = Depends(auth_bearer),
                      service: DelegationService = Depends(get_delegations)):
    delegation = service.crear(
        actor.organization_id,
        delegator_id=actor.user_id,
        delegate_id=body.delegate_id,
        starts_at=body.starts_at,
        ends_at=body.ends_at,
        entity_type=body.entity_type,
        reason=body.reason,
    )
    return _out(delegation)


@router.get("/delegations", status_code=status.HTTP_200_OK)
def list_delegations(as_delegate: bool = False, actor: Actor = Depends(auth_bearer),
                     service: DelegationService = Depends(get_delegations)):
    items = service.listar(actor.organization_id, actor.user_id, as_delegate=as_delegate)
    return {"items": [_out(d) for d in items], "total": len(items)}


@router.post("/delegations/{delegation_id}:deactivate", status_code=status.HTTP_200_OK)
def deactivate_delegation(delegation_id: str, actor: Actor = Depends(auth_bearer),
                          service: DelegationService = Depends(get_delegations)):
    return _out(service.desactivar(actor.organization_id, delegation_id, actor.user_id))
