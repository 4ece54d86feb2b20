from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..config import settings
from ..deps import Actor, auth_bearer, get_gateway
from ..models import InstanceState
from ..schemas import (
    CancelIn,
    DecisionIn,
    InstanceDetailOut,
    InstanceOut,
    PendingItemOut,
    RejectIn,
    RequiresApprovalIn,
    StartApproval,
)
from ..services.gateway import ApprovalGateway

router = APIRouter()


def _out(instance) -> dict:
    return InstanceOut.model_validate(instance).model_dump(mode="json")


@router.post("/approvals", status_code=status.HTTP_201_CREATED)
def start_approval(body: StartApproval, actor: Actor = Depends(auth_bearer),
                   gateway: ApprovalGateway = Depends(get_gateway)):
    instance = gateway.iniciar(
        actor.organization_id,
        body.entity_type,
        body.entity_id,
        requester_id=actor.user_id,
        entity_snapshot=body.entity_snapshot,
        priority=body.priority,
    )
    return _out(instance)


@router.post("/approvals:check", status_code=status.HTTP_200_OK)
def requires_approval(body: RequiresApprovalIn, actor: Actor = Depends(auth_bearer),
                      gateway: ApprovalGateway = Depends(get_gateway)):
    required = gateway.requiere_aprobacion(actor.organization_id, body.entity_type, body.entity_snapshot)
    return {"entity_type": body.entity_type, "requires_approval": required}


@router.get("/approvals/pending", status_code=status.HTTP_200_OK)
def pending_approvals(
    entity_type: Optional[str] = None,
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(auth_bearer),
    gateway: ApprovalGateway = Depends(get_gateway),
):
    items = gateway.obtener_pendientes(
        actor.organization_id, actor.user_id, entity_type=entity_type, limit=limit, offset=offset
    )
    return {
        "items": [PendingItemOut.model_validate(i).model_dump(mode="json") for i in items],
        "limit": limit,
        "offset": offset,
    }


@router.get("/approvals/pending/count", status_code=status.HTTP_200_OK)
def pending_count(entity_type: Optional[str] = None, actor: Actor = Depends(auth_bearer),
                  gateway: ApprovalGateway = Depends(get_gateway)):
    return {"total": gateway.contar_pendientes(actor.organization_id, actor.user_id, entity_type)}


@router.get("/approvals/history", status_code=status.HTTP_200_OK)
def approval_history(
    entity_type: Optional[str] = None,
    state: Optional[InstanceState] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=settings.default_page_limit, ge=1, le=settings.max_page_limit),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(auth_bearer),
    gateway: ApprovalGateway = Depends(get_gateway),
):
    items, total = gateway.obtener_historial(
        actor.organization_id,
        entity_type=entity_type,
        state=state,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return {"items": [_out(i) for i in items], "limit": limit, "offset": offset, "total": total}


@router.get("/approvals/{instance_id}", status_code=status.HTTP_200_OK)
def get_approval(instance_id: str, actor: Actor = Depends(auth_bearer),
                 gateway: ApprovalGateway = Depends(get_gateway)):
    detail = gateway.obtener_instancia(actor.organization_id, instance_id)
    return InstanceDetailOut.model_validate(detail).model_dump(mode="json")


@router.post("/approvals/{instance_id}:approve", status_code=status.HTTP_200_OK)
def approve(instance_id: str, body: Optional[DecisionIn] = None, actor: Actor = Depends(auth_bearer),
            gateway: ApprovalGateway = Depends(get_gateway)):
    comment = body.comment if body else None
    return _out(gateway.aprobar(actor.organization_id, instance_id, actor.user_id, comment))


@router.post("/approvals/{instance_id}:reject", status_code=status.HTTP_200_OK)
def reject(instance_id: str, body: RejectIn, actor: Actor = Depends(auth_bearer),
           gateway: ApprovalGateway = Depends(get_gateway)):
    return _out(gateway.rechazar(actor.organization_id, instance_id, actor.user_id, body.motivo))


@router.post("/approvals/{instance_id}:cancel", status_code=status.HTTP_200_OK)
def cancel(instance_id: str, body: Optional[CancelIn] = None, actor: Actor = Depends(auth_bearer),
           gateway: ApprovalGateway = Depends(get_gateway)):
    motivo = body.motivo if body else None
    return _out(gateway.cancelar(actor.organization_id, instance_id, actor.user_id, motivo))


@router.post("/approvals/{instance_id}:retry", status_code=status.HTTP_200_OK)
def retry_action(instance_id: str, actor: Actor = Depends(auth_bearer),
                 gateway: ApprovalGateway = Depends(get_gateway)):
    return _out(gateway.reintentar_accion(actor.organization_id, instance_id, actor.user_id))
